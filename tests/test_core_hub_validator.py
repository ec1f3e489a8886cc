# tests/test_core_hub_validator.py
"""
Testes da validação de tokens junto ao Hub (`isw_sso.core.hub_validator`).

Os testes utilizam `respx` para mockar o endpoint de validação do Hub,
cobrindo a resposta `liberado`, outras respostas, erros HTTP, timeout e
erros de rede.
"""

# ========================
# --- Importações ---
# ========================
from urllib.parse import parse_qs

import httpx
import pytest
import respx

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings
from isw_sso.core.hub_validator import validate_with_hub

# ====================================
# --- Marcador Global de Teste ---
# ====================================
pytestmark = pytest.mark.asyncio

RAW_TOKEN = "dG9rZW4tZGUtdGVzdGU7aXY="


# ========================
# --- Testes ---
# ========================
@respx.mock
async def test_validate_with_hub_liberado_returns_true():
    route = respx.post(settings.HUB_VALIDATE_URL).mock(return_value=httpx.Response(200, text="liberado"))

    assert await validate_with_hub(RAW_TOKEN) is True

    assert route.call_count == 1
    sent_form = parse_qs(route.calls.last.request.content.decode())
    assert sent_form == {"token": [RAW_TOKEN]}, "O Hub deve receber o token original, sem alterações."


@respx.mock
async def test_validate_with_hub_ignores_surrounding_whitespace():
    respx.post(settings.HUB_VALIDATE_URL).mock(return_value=httpx.Response(200, text="  liberado\n"))

    assert await validate_with_hub(RAW_TOKEN) is True


@pytest.mark.parametrize("body", ["negado", "LIBERADO", "liberado!", "", "<html>erro</html>"])
async def test_validate_with_hub_other_bodies_return_false(respx_mock, body):
    respx_mock.post(settings.HUB_VALIDATE_URL).mock(return_value=httpx.Response(200, text=body))

    assert await validate_with_hub(RAW_TOKEN) is False


@pytest.mark.parametrize("status_code", [400, 403, 500, 502])
async def test_validate_with_hub_non_2xx_returns_false_even_if_body_is_liberado(respx_mock, status_code):
    respx_mock.post(settings.HUB_VALIDATE_URL).mock(return_value=httpx.Response(status_code, text="liberado"))

    assert await validate_with_hub(RAW_TOKEN) is False


@respx.mock
async def test_validate_with_hub_timeout_returns_false():
    respx.post(settings.HUB_VALIDATE_URL).mock(side_effect=httpx.ReadTimeout("timeout"))

    assert await validate_with_hub(RAW_TOKEN) is False


@respx.mock
async def test_validate_with_hub_network_error_returns_false():
    respx.post(settings.HUB_VALIDATE_URL).mock(side_effect=httpx.ConnectError("connection refused"))

    assert await validate_with_hub(RAW_TOKEN) is False


@respx.mock
async def test_validate_with_hub_uses_provided_client():
    route = respx.post(settings.HUB_VALIDATE_URL).mock(return_value=httpx.Response(200, text="liberado"))

    async with httpx.AsyncClient() as client:
        assert await validate_with_hub(RAW_TOKEN, client=client) is True

    assert route.called


async def test_validate_with_hub_empty_token_skips_network_call(mocker):
    mock_client = mocker.AsyncMock(spec=httpx.AsyncClient)

    assert await validate_with_hub("", client=mock_client) is False
    mock_client.post.assert_not_called()
