# isw_sso/routers/sso.py
"""
Este módulo define as rotas de entrada do SSO vindas do Hub:

* `GET /sso/callback`: troca o token criptografado por uma sessão local.
* `GET /`: relay que encaminha `?sso=1&token=...&ts=...` para o callback,
  sem nunca interpretar o token.
* `GET /login`: página de entrada com a mensagem genérica de falha.
"""

# ========================
# --- Importações ---
# ========================
import html
import logging
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings
from isw_sso.core.dependencies import DbDep
from isw_sso.core.sso_flow import SsoCallbackFlow

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Configuração do Router ---
# ========================
router = APIRouter(
    tags=["SSO"],
)

CALLBACK_PATH = "/sso/callback"
FAILURE_MESSAGE = "Não foi possível autenticar, tente novamente."

_LANDING_TEMPLATE = """<!DOCTYPE html>
<html lang="pt-BR">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
</head>
<body>
<main>
<h1>{title}</h1>
{alert}<p>O acesso a esta aplicação é feito pelo Hub.</p>
<p><a href="{hub_url}">Acessar pelo Hub</a></p>
</main>
</body>
</html>
"""


# ========================
# --- Funções Auxiliares ---
# ========================
def _prefers_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def render_landing_page(error: Optional[str] = None) -> str:
    """HTML da página de entrada; `error` presente exibe apenas a mensagem genérica."""
    alert = f'<p role="alert">{html.escape(FAILURE_MESSAGE)}</p>\n' if error else ""
    return _LANDING_TEMPLATE.format(
        title=html.escape(settings.PROJECT_NAME),
        alert=alert,
        hub_url=html.escape(settings.HUB_BASE_URL, quote=True),
    )


def build_callback_url(sso: str, token: str, ts: Optional[str]) -> str:
    """URL do callback vista pelo navegador (mesma origem se `SSO_API_BASE_URL` vazio)."""
    params = {"sso": sso, "token": token}
    if ts:
        params["ts"] = ts
    return f"{settings.SSO_API_BASE_URL.rstrip('/')}{CALLBACK_PATH}?{urlencode(params)}"


# ========================
# --- Rotas da API ---
# ========================

# --- Endpoint de Callback ---
@router.get(
    CALLBACK_PATH,
    status_code=status.HTTP_302_FOUND,
    summary="Troca o token do Hub por uma sessão local",
    response_description="Redirecionamento para a aplicação com a sessão estabelecida.",
)
async def sso_callback(
    request: Request,
    db: DbDep,
    token: Annotated[Optional[str], Query(description="Token criptografado emitido pelo Hub.")] = None,
    ts: Annotated[Optional[str], Query(description="Timestamp (epoch em segundos) enviado pelo Hub.")] = None,
):
    """
    Executa o fluxo SSO completo: descriptografa, valida no Hub, provisiona o
    usuário e emite a sessão. Falhas nunca deixam sessão parcial.
    """
    http_client = getattr(request.app.state, "http_client", None)
    flow = SsoCallbackFlow(db, http_client=http_client)
    response, _outcome = await flow.run(token, ts, prefers_html=_prefers_html(request))
    return response


# --- Relay do Cliente ---
@router.get(
    "/",
    response_class=HTMLResponse,
    summary="Encaminha a entrada do Hub para o callback SSO",
)
async def sso_relay(
    sso: Optional[str] = None,
    token: Optional[str] = None,
    ts: Optional[str] = None,
):
    """
    Com `sso` e `token` presentes, faz navegação completa para o callback,
    para que o cookie seja gravado pelo servidor. Token sem `sso` é ignorado.
    """
    if sso and token:
        return RedirectResponse(build_callback_url(sso, token, ts), status_code=status.HTTP_302_FOUND)
    if token:
        logger.warning("Entrada com 'token' mas sem 'sso'; troca SSO não iniciada.")
    return HTMLResponse(render_landing_page())


# --- Página de Login ---
@router.get(
    "/login",
    response_class=HTMLResponse,
    summary="Página de entrada com link para o Hub",
)
async def login_page(
    error: Optional[str] = None,
    sso: Optional[str] = None,
    token: Optional[str] = None,
    ts: Optional[str] = None,
):
    if sso and token:
        return RedirectResponse(build_callback_url(sso, token, ts), status_code=status.HTTP_302_FOUND)
    if token:
        logger.warning("Entrada em /login com 'token' mas sem 'sso'; troca SSO não iniciada.")
    return HTMLResponse(render_landing_page(error))
