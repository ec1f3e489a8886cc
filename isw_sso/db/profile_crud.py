# isw_sso/db/profile_crud.py
"""
Módulo com as operações de banco para as identidades criadas via SSO:
usuários do backend de autenticação (`auth_users`) e perfis da aplicação
(`profiles`). Ambos são chaveados pelo e-mail em minúsculas, protegido por
índice único, e criados por upsert atômico para que dois logins simultâneos
do mesmo e-mail nunca gerem registros duplicados.
"""

# ========================
# --- Importações ---
# ========================
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

# --- Módulos da Aplicação ---
from isw_sso.models.profile import DEFAULT_ROLE, AuthUserInDB, ProfileInDB
from isw_sso.core.security import generate_random_password, get_password_hash

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
AUTH_USERS_COLLECTION = "auth_users"
PROFILES_COLLECTION = "profiles"


# ========================
# --- Funções Auxiliares (Internas) ---
# ========================
def _get_auth_users_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[AUTH_USERS_COLLECTION]


def _get_profiles_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[PROFILES_COLLECTION]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def display_name_for(email: str) -> str:
    """Nome de exibição padrão: a parte local do e-mail."""
    return email.split("@", 1)[0]


async def _upsert_by_email(
    collection: AsyncIOMotorCollection,
    email: str,
    on_insert: dict,
) -> Optional[dict]:
    """
    Insere o documento se o e-mail não existir; devolve o documento vigente.

    Em caso de corrida entre dois upserts, o perdedor recebe DuplicateKeyError
    do índice único e relê o documento do vencedor.
    """
    on_insert = {k: v for k, v in on_insert.items() if k != "email"}
    try:
        document = await collection.find_one_and_update(
            {"email": email},
            {"$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        logger.warning(f"Upsert concorrente detectado em '{collection.name}' para {email}; relendo registro existente.")
        document = await collection.find_one({"email": email})
    if document:
        document.pop("_id", None)
    return document


# ========================
# --- Operações de Leitura ---
# ========================
async def get_profile_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[ProfileInDB]:
    """
    Busca um perfil pelo e-mail, sem diferenciar maiúsculas de minúsculas.

    Returns:
        ProfileInDB se encontrado e válido, None caso contrário.
    """
    collection = _get_profiles_collection(db)
    profile_dict = await collection.find_one({"email": normalize_email(email)})
    if profile_dict:
        profile_dict.pop("_id", None)
        try:
            return ProfileInDB.model_validate(profile_dict)
        except ValidationError as e:
            logger.error(f"DB Validation error get_profile_by_email {email}: {e}")
            return None
    return None


# ========================
# --- Operações de Escrita ---
# ========================
async def upsert_auth_user(db: AsyncIOMotorDatabase, email: str) -> Optional[AuthUserInDB]:
    """
    Garante que exista um usuário de autenticação para o e-mail.

    O usuário nasce com senha aleatória (hash bcrypt) e e-mail já confirmado.
    Se já existir, o registro atual é devolvido sem alterações.

    Returns:
        AuthUserInDB vigente, ou None se o documento lido for inválido.
    """
    email = normalize_email(email)
    now = datetime.now(timezone.utc)
    candidate = AuthUserInDB(
        id=uuid.uuid4(),
        email=email,
        hashed_password=get_password_hash(generate_random_password()),
        email_confirmed_at=now,
        created_at=now,
    )
    document = await _upsert_by_email(
        _get_auth_users_collection(db), email, candidate.model_dump(mode="json")
    )
    if document is None:
        logger.error(f"Upsert de auth_user para {email} não devolveu documento.")
        return None
    try:
        auth_user = AuthUserInDB.model_validate(document)
    except ValidationError as e:
        logger.error(f"DB Validation error upsert_auth_user {email}: {e}")
        return None
    if auth_user.id == candidate.id:
        logger.info(f"Usuário de autenticação criado: {auth_user.id}")
    return auth_user


async def upsert_profile(
    db: AsyncIOMotorDatabase,
    auth_user: AuthUserInDB,
    name: Optional[str] = None,
) -> Optional[ProfileInDB]:
    """
    Garante que exista o perfil da aplicação para o usuário de autenticação.

    Args:
        auth_user: Usuário cujo `id` será reaproveitado no perfil.
        name: Nome de exibição opcional; padrão é a parte local do e-mail.
    """
    candidate = ProfileInDB(
        id=auth_user.id,
        email=auth_user.email,
        name=(name or display_name_for(auth_user.email))[:100],
        role=DEFAULT_ROLE,
    )
    document = await _upsert_by_email(
        _get_profiles_collection(db), auth_user.email, candidate.model_dump(mode="json")
    )
    if document is None:
        logger.error(f"Upsert de perfil para {auth_user.email} não devolveu documento.")
        return None
    try:
        return ProfileInDB.model_validate(document)
    except ValidationError as e:
        logger.error(f"DB Validation error upsert_profile {auth_user.email}: {e}")
        return None


# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_profile_indexes(db: AsyncIOMotorDatabase):
    """
    Cria os índices únicos que serializam o provisionamento por e-mail.
    Chamada no startup da aplicação.
    """
    try:
        await _get_auth_users_collection(db).create_index("email", unique=True, name="auth_email_unique_idx")
        await _get_auth_users_collection(db).create_index("id", unique=True, name="auth_id_unique_idx")
        await _get_profiles_collection(db).create_index("email", unique=True, name="profile_email_unique_idx")
        await _get_profiles_collection(db).create_index("id", unique=True, name="profile_id_unique_idx")
        logger.info("Índices de 'auth_users' e 'profiles' verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices de identidade: {e}", exc_info=True)
