# isw_sso/core/provisioning.py
"""
Provisionamento da identidade local a partir do e-mail extraído do token.

Só deve ser chamado depois que o Hub liberou o token: a identidade enviada
pelo cliente nunca é confiável sem essa validação.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

# --- Módulos da Aplicação ---
from isw_sso.core.exceptions import ProvisioningFailure
from isw_sso.db import profile_crud
from isw_sso.models.profile import UserIdentity

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)


async def find_identity(db: AsyncIOMotorDatabase, email: str) -> Optional[UserIdentity]:
    """Busca a identidade existente para o e-mail, sem criar nada."""
    try:
        profile = await profile_crud.get_profile_by_email(db, email)
    except PyMongoError as exc:
        raise ProvisioningFailure(f"erro de banco ao buscar perfil: {exc.__class__.__name__}") from exc
    return UserIdentity.from_profile(profile) if profile else None


async def provision_identity(
    db: AsyncIOMotorDatabase,
    email: str,
    nickname: Optional[str] = None,
) -> UserIdentity:
    """
    Resolve (ou cria) a identidade local do e-mail informado.

    1. Normaliza o e-mail para minúsculas.
    2. Se já houver perfil, devolve seu `id`.
    3. Senão, faz upsert do usuário de autenticação (senha aleatória,
       e-mail pré-confirmado) e do perfil (`role=default`).

    Chamadas repetidas ou concorrentes com o mesmo e-mail, em qualquer
    capitalização, devolvem sempre o mesmo `id`.

    Raises:
        ProvisioningFailure: E-mail vazio, erro de banco ou documento inválido.
    """
    normalized = profile_crud.normalize_email(email or "")
    if not normalized:
        raise ProvisioningFailure("e-mail vazio no payload do token")

    try:
        existing = await profile_crud.get_profile_by_email(db, normalized)
        if existing is not None:
            logger.info(f"Perfil existente reutilizado: {existing.id}")
            return UserIdentity.from_profile(existing)

        auth_user = await profile_crud.upsert_auth_user(db, normalized)
        if auth_user is None:
            raise ProvisioningFailure("falha ao criar usuário de autenticação")

        profile = await profile_crud.upsert_profile(db, auth_user, name=nickname)
        if profile is None:
            raise ProvisioningFailure("falha ao criar perfil")
    except PyMongoError as exc:
        logger.error(f"Erro de banco ao provisionar identidade: {exc}", exc_info=True)
        raise ProvisioningFailure(f"erro de banco: {exc.__class__.__name__}") from exc

    logger.info(f"Identidade provisionada: {profile.id}")
    return UserIdentity.from_profile(profile)
