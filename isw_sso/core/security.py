# isw_sso/core/security.py
"""
Módulo responsável pelas primitivas de segurança do serviço: hashing da
senha aleatória dos usuários provisionados via SSO, emissão e validação dos
JWTs de sessão (cookie `vs_session`, access e refresh tokens) e impressão
digital de tokens para uso em logs.
"""

# ========================
# --- Importações ---
# ========================
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from passlib.context import CryptContext
from jose import ExpiredSignatureError, jwt, JWTError
from pydantic import ValidationError

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings
from isw_sso.models.profile import UserIdentity
from isw_sso.models.token import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TOKEN_TYPE_SESSION,
    TokenPayload,
)

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Configuração Hashing de Senha ---
# ========================
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# ========================
# --- Constantes JWT ---
# ========================
ALGORITHM = settings.JWT_ALGORITHM


# ========================
# --- Funções de Senha ---
# ========================
def generate_random_password() -> str:
    """
    Gera uma senha imprevisível para usuários criados via SSO.
    O sufixo garante as classes de caracteres exigidas por políticas de senha.
    """
    return secrets.token_hex(16) + "Aa1!"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# ========================
# --- Impressão Digital ---
# ========================
def token_fingerprint(token: str) -> str:
    """Resumo curto e não reversível de um token, seguro para logs."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]


# ========================
# --- Funções JWT ---
# ========================
def _encode(identity: UserIdentity, token_type: str, lifetime: timedelta, jti: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "iss": settings.JWT_ISSUER,
        "sub": str(identity.id),
        "email": identity.email,
        "nickname": identity.nickname,
        "typ": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    if jti is not None:
        to_encode["jti"] = jti
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def create_session_token(identity: UserIdentity, max_age_seconds: Optional[int] = None) -> str:
    """
    Cria o JWT gravado no cookie `vs_session`.

    Args:
        identity: Identidade provisionada.
        max_age_seconds: Validade opcional; padrão `SESSION_COOKIE_MAX_AGE`.
    """
    seconds = max_age_seconds if max_age_seconds is not None else settings.SESSION_COOKIE_MAX_AGE
    return _encode(identity, TOKEN_TYPE_SESSION, timedelta(seconds=seconds))


def create_access_token(identity: UserIdentity, expires_delta: Optional[timedelta] = None) -> str:
    """Cria o access token da variante magic link."""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(identity, TOKEN_TYPE_ACCESS, lifetime)


def create_refresh_token(identity: UserIdentity, expires_delta: Optional[timedelta] = None) -> Tuple[str, str, datetime]:
    """
    Cria um refresh token com `jti` único.

    Returns:
        Tupla (token, jti, expira_em) para que o chamador registre o `jti`.
    """
    lifetime = expires_delta or timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES)
    jti = uuid.uuid4().hex
    expires_at = datetime.now(timezone.utc) + lifetime
    return _encode(identity, TOKEN_TYPE_REFRESH, lifetime, jti=jti), jti, expires_at


def decode_token(token: str, expected_type: str) -> Optional[TokenPayload]:
    """
    Decodifica e valida um JWT emitido por este serviço.

    Verifica assinatura, expiração, emissor, estrutura do payload e o tipo
    do token (`session`, `access` ou `refresh`).

    Returns:
        TokenPayload se válido, None caso contrário.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=settings.JWT_ISSUER,
        )
        token_data = TokenPayload.model_validate(payload)
    except ExpiredSignatureError:
        logger.info(f"Token {expected_type} expirado.")
        return None
    except (JWTError, ValidationError) as e:
        logger.warning(f"Token {expected_type} inválido: {e.__class__.__name__}")
        return None

    if token_data.typ != expected_type:
        logger.warning(f"Token do tipo '{token_data.typ}' usado onde se esperava '{expected_type}'.")
        return None
    return token_data


def identity_from_payload(payload: TokenPayload) -> UserIdentity:
    return UserIdentity(id=payload.sub, email=payload.email, nickname=payload.nickname)
