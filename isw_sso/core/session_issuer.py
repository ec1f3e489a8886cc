# isw_sso/core/session_issuer.py
"""
Emissão da sessão local depois de um SSO bem-sucedido.

Duas variantes, escolhidas por `SESSION_VARIANT`:

* `cookie`: grava o JWT `vs_session` (HttpOnly, Secure, SameSite=Lax) na
  resposta e redireciona para a rota autenticada. Nenhum token aparece na URL.
* `token`: gera um "magic link" com access/refresh tokens no fragmento da URL.
  O frontend instala os tokens e os remove da barra de endereço com
  `history.replaceState`, sem nova navegação.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Response, status
from fastapi.responses import RedirectResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict

# --- Módulos da Aplicação ---
from isw_sso.core.config import SESSION_VARIANT_COOKIE, SESSION_VARIANT_TOKEN, settings
from isw_sso.core.exceptions import SessionIssuanceFailure
from isw_sso.core.security import (
    create_access_token,
    create_refresh_token,
    create_session_token,
    decode_token,
    identity_from_payload,
)
from isw_sso.db import session_crud
from isw_sso.models.profile import UserIdentity
from isw_sso.models.token import TOKEN_TYPE_REFRESH, TokenPair

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)


# ========================
# --- Modelo de Retorno ---
# ========================
class IssuedSession(BaseModel):
    """Sessão emitida e o redirecionamento final que a entrega ao navegador."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    variant: str
    identity: UserIdentity
    response: RedirectResponse
    session_token: Optional[str] = None
    action_link: Optional[str] = None


# ========================
# --- Cookie de Sessão ---
# ========================
def set_session_cookie(response: Response, session_token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_token,
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        path="/",
        secure=settings.SESSION_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    """Expira o cookie de sessão imediatamente (Max-Age=0)."""
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        secure=settings.SESSION_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def issue_cookie(identity: UserIdentity, response: Response) -> str:
    """
    Variante cookie: grava `vs_session` diretamente na resposta.

    Returns:
        O JWT de sessão gravado.
    """
    session_token = create_session_token(identity)
    set_session_cookie(response, session_token)
    return session_token


# ========================
# --- Variante Magic Link ---
# ========================
async def issue_token_pair(db: AsyncIOMotorDatabase, identity: UserIdentity) -> TokenPair:
    """
    Emite access + refresh token e registra o `jti` do refresh token.

    Raises:
        SessionIssuanceFailure: Se o refresh token não pôde ser registrado.
    """
    access_token = create_access_token(identity)
    refresh_token, jti, expires_at = create_refresh_token(identity)
    if not await session_crud.register_refresh_token(db, jti, identity.id, expires_at):
        raise SessionIssuanceFailure("refresh token não registrado")
    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def build_action_link(tokens: TokenPair) -> str:
    """Monta a URL de entrada com os tokens no fragmento (nunca enviado ao servidor)."""
    fragment = urlencode({
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "expires_in": tokens.expires_in,
        "token_type": tokens.token_type,
        "type": "magiclink",
    })
    return f"{settings.APP_LANDING_URL}#{fragment}"


async def issue_magic_link(db: AsyncIOMotorDatabase, identity: UserIdentity) -> str:
    """Variante token: devolve o `action_link` para a identidade."""
    return build_action_link(await issue_token_pair(db, identity))


async def redeem_refresh_token(db: AsyncIOMotorDatabase, refresh_token: str) -> Optional[TokenPair]:
    """
    Troca um refresh token por um novo par, consumindo o anterior.

    Returns:
        Novo TokenPair, ou None se o token for inválido, expirado ou já usado.
    """
    payload = decode_token(refresh_token, TOKEN_TYPE_REFRESH)
    if payload is None or not payload.jti:
        return None
    if not await session_crud.consume_refresh_token(db, payload.jti):
        return None
    return await issue_token_pair(db, identity_from_payload(payload))


async def revoke_refresh_token(db: AsyncIOMotorDatabase, refresh_token: str) -> bool:
    payload = decode_token(refresh_token, TOKEN_TYPE_REFRESH)
    if payload is None or not payload.jti:
        return False
    return await session_crud.consume_refresh_token(db, payload.jti)


# ========================
# --- Emissão e Redirecionamento ---
# ========================
async def issue_session(
    db: AsyncIOMotorDatabase,
    identity: UserIdentity,
    variant: Optional[str] = None,
) -> IssuedSession:
    """
    Emite a sessão da variante configurada e monta o redirecionamento final.

    * `cookie`: 302 para a rota autenticada com `vs_session` gravado por
      `issue_cookie`.
    * `token`: 302 para o `action_link` devolvido por `issue_magic_link`.

    Raises:
        SessionIssuanceFailure: Em qualquer falha de emissão.
    """
    variant = variant or settings.SESSION_VARIANT
    try:
        if variant == SESSION_VARIANT_COOKIE:
            response = RedirectResponse(settings.APP_LANDING_URL, status_code=status.HTTP_302_FOUND)
            session_token = issue_cookie(identity, response)
            return IssuedSession(variant=variant, identity=identity, response=response, session_token=session_token)
        if variant == SESSION_VARIANT_TOKEN:
            action_link = await issue_magic_link(db, identity)
            return IssuedSession(
                variant=variant,
                identity=identity,
                response=RedirectResponse(action_link, status_code=status.HTTP_302_FOUND),
                action_link=action_link,
            )
    except SessionIssuanceFailure:
        raise
    except Exception as exc:
        logger.error(f"Erro inesperado ao emitir sessão ({variant}): {exc}", exc_info=True)
        raise SessionIssuanceFailure(str(exc)) from exc
    raise SessionIssuanceFailure(f"variante de sessão desconhecida: {variant}")
