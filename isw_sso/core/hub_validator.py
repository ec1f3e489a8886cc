# isw_sso/core/hub_validator.py
"""
Validação server-side do token SSO junto ao Hub emissor.

O Hub é a fonte da verdade sobre revogação, expiração e reuso: a resposta
literal `liberado` autoriza o token; qualquer outra coisa (inclusive erro de
rede ou timeout) é tratada como negação.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Optional

import httpx

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings
from isw_sso.core.security import token_fingerprint

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Constantes ---
# ========================
HUB_AUTHORIZED = "liberado"
HUB_USER_AGENT = "ISW-SSO-Bridge/1.0"


# ========================
# --- Função de Validação ---
# ========================
async def validate_with_hub(
    raw_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """
    Pergunta ao Hub se o token (ainda criptografado) está liberado.

    Args:
        raw_token: O token exatamente como recebido no callback.
        client: Cliente httpx opcional (reuso de conexões ou testes).
                Se None, um cliente efêmero é criado.

    Returns:
        True somente se o Hub respondeu 2xx com corpo `liberado`.
    """
    if not raw_token:
        return False

    validate_url = settings.HUB_VALIDATE_URL
    fingerprint = token_fingerprint(raw_token)
    headers = {"User-Agent": HUB_USER_AGENT, "Accept": "text/plain"}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.HUB_TIMEOUT_SECONDS) as own_client:
                response = await own_client.post(validate_url, data={"token": raw_token}, headers=headers)
        else:
            response = await client.post(
                validate_url,
                data={"token": raw_token},
                headers=headers,
                timeout=settings.HUB_TIMEOUT_SECONDS,
            )
        response.raise_for_status()
    except httpx.TimeoutException:
        logger.error(f"Timeout ao validar token {fingerprint} no Hub ({validate_url})")
        return False
    except httpx.HTTPStatusError as exc:
        logger.error(f"Hub respondeu status {exc.response.status_code} ao validar token {fingerprint}")
        return False
    except httpx.RequestError as exc:
        logger.error(f"Erro de rede ao validar token {fingerprint} no Hub: {exc.__class__.__name__}")
        return False

    verdict = response.text.strip()
    if verdict == HUB_AUTHORIZED:
        logger.info(f"Hub liberou o token {fingerprint}")
        return True

    # O corpo não é logado por inteiro para não vazar mensagens internas do Hub
    logger.warning(f"Hub negou o token {fingerprint} (resposta com {len(verdict)} caracteres)")
    return False
