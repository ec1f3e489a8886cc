# isw_sso/models/token.py
"""
Este módulo define os modelos Pydantic dos artefatos de sessão emitidos
após um SSO bem-sucedido: o payload dos JWTs (cookie de sessão, access e
refresh tokens), o par de tokens da variante "magic link" e os corpos das
rotas de sessão consumidas pelo frontend.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

# ========================
# --- Tipos de Token ---
# ========================
TOKEN_TYPE_SESSION = "session"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

TokenType = Literal["session", "access", "refresh"]


# ========================
# --- Modelos Pydantic Token ---
# ========================
class TokenPayload(BaseModel):
    """
    Claims contidos nos JWTs emitidos por este serviço.
    `typ` separa cookie de sessão, access token e refresh token para que um
    não possa ser usado no lugar do outro.
    """
    sub: uuid.UUID = Field(..., title="ID do Usuário (Subject)")
    email: str = Field(..., title="E-mail do Usuário")
    nickname: Optional[str] = Field(None, title="Apelido")
    typ: TokenType = Field(..., title="Tipo do Token")
    iss: Optional[str] = Field(None, title="Emissor")
    iat: Optional[int] = Field(None, title="Emitido em")
    exp: Optional[int] = Field(None, title="Timestamp de Expiração")
    jti: Optional[str] = Field(None, title="ID do Refresh Token")


class TokenPair(BaseModel):
    """Par access/refresh devolvido pela variante token e pela rota de refresh."""
    access_token: str = Field(..., title="Access Token JWT")
    refresh_token: str = Field(..., title="Refresh Token JWT")
    token_type: str = Field(default="bearer", title="Tipo do Token")
    expires_in: int = Field(..., title="Validade do access token em segundos")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, title="Refresh Token")


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, title="Refresh Token a revogar (opcional)")


class MeUser(BaseModel):
    id: uuid.UUID
    email: str
    nickname: Optional[str] = None


class MeResponse(BaseModel):
    ok: bool = True
    user: MeUser
