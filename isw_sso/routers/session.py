# isw_sso/routers/session.py
"""
Este módulo define as rotas de sessão consumidas pelo frontend depois do
SSO: leitura do usuário atual, logout e rotação do refresh token da
variante magic link.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, HTTPException, Request, status
from fastapi.responses import JSONResponse

# --- Módulos da Aplicação ---
from isw_sso.core.dependencies import BearerDep, DbDep, get_current_identity
from isw_sso.core.session_issuer import (
    clear_session_cookie,
    redeem_refresh_token,
    revoke_refresh_token,
)
from isw_sso.models.token import LogoutRequest, MeResponse, MeUser, RefreshRequest, TokenPair

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Configuração do Router ---
# ========================
router = APIRouter(
    tags=["Session"],
)


# ========================
# --- Rotas da API ---
# ========================

# --- Usuário Atual ---
@router.get(
    "/me",
    response_model=MeResponse,
    summary="Retorna o usuário da sessão atual",
    responses={401: {"description": "Sem sessão (`no_session`) ou sessão inválida (`invalid_session`)."}},
)
async def read_me(request: Request, credentials: BearerDep):
    """
    Lê o cookie `vs_session` ou o header `Authorization: Bearer`.
    Em caso de falha responde `{"ok": false, "error": <código>}` com 401.
    """
    try:
        identity = await get_current_identity(request, credentials)
    except HTTPException as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.detail},
            headers=exc.headers,
        )
    return MeResponse(user=MeUser(id=identity.id, email=identity.email, nickname=identity.nickname))


# --- Logout ---
@router.post(
    "/logout",
    summary="Encerra a sessão atual",
    response_description="Cookie de sessão expirado.",
)
async def logout(
    db: DbDep,
    body: Annotated[Optional[LogoutRequest], Body(description="Refresh token a revogar (opcional).")] = None,
):
    """Expira o cookie `vs_session` e, se informado, revoga o refresh token."""
    if body is not None and body.refresh_token:
        revoked = await revoke_refresh_token(db, body.refresh_token)
        logger.info(f"Logout com revogação de refresh token: {'ok' if revoked else 'token já inválido'}")

    response = JSONResponse(content={"ok": True})
    clear_session_cookie(response)
    return response


# --- Rotação do Refresh Token ---
@router.post(
    "/auth/refresh",
    response_model=TokenPair,
    summary="Troca um refresh token por um novo par de tokens",
)
async def refresh_tokens(
    db: DbDep,
    body: Annotated[RefreshRequest, Body(description="Refresh token emitido no magic link.")],
):
    """
    O refresh token é de uso único: após a troca, o anterior deixa de valer.
    """
    try:
        tokens = await redeem_refresh_token(db, body.refresh_token)
    except Exception as e:
        logger.exception(f"Erro inesperado ao rotacionar refresh token: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Não foi possível renovar a sessão.",
        )

    if tokens is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token inválido, expirado ou já utilizado.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return tokens
