# isw_sso/core/dependencies.py
"""
Define as dependências reutilizáveis para a aplicação FastAPI: acesso ao
banco de dados e resolução da identidade da sessão atual, seja pelo cookie
`vs_session` (variante cookie) ou pelo header `Authorization: Bearer`
(access token da variante magic link).
"""

# ========================
# --- Importações ---
# ========================
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings
from isw_sso.core.security import decode_token, identity_from_payload
from isw_sso.db.mongodb_utils import get_database
from isw_sso.models.profile import UserIdentity
from isw_sso.models.token import TOKEN_TYPE_ACCESS, TOKEN_TYPE_SESSION

# ========================
# --- Esquema Bearer ---
# ========================
# auto_error=False: a ausência do header não é erro, o cookie pode estar presente
bearer_scheme = HTTPBearer(auto_error=False)

# ========================
# --- Códigos de Erro de Sessão ---
# ========================
NO_SESSION = "no_session"
INVALID_SESSION = "invalid_session"

# ========================
# --- Tipos de Dependência ---
# ========================
DbDep = Annotated[AsyncIOMotorDatabase, Depends(get_database)]
BearerDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]


def _session_exception(code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=code,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ========================
# --- Dependência: Identidade Atual ---
# ========================
async def get_current_identity(request: Request, credentials: BearerDep) -> UserIdentity:
    """
    Resolve a identidade da sessão atual.

    O cookie `vs_session` tem precedência; na falta dele, aceita um access
    token no header `Authorization`.

    Raises:
        HTTPException: 401 com `no_session` (nenhuma credencial) ou
                       `invalid_session` (credencial inválida ou expirada).
    """
    session_cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_cookie:
        payload = decode_token(session_cookie, TOKEN_TYPE_SESSION)
    elif credentials is not None and credentials.credentials:
        payload = decode_token(credentials.credentials, TOKEN_TYPE_ACCESS)
    else:
        raise _session_exception(NO_SESSION)

    if payload is None:
        raise _session_exception(INVALID_SESSION)
    return identity_from_payload(payload)
