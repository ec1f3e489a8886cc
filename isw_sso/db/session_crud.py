# isw_sso/db/session_crud.py
"""
Registro dos refresh tokens emitidos pela variante "magic link".

Cada refresh token possui um `jti` registrado aqui. Resgatar o token o
marca como consumido de forma atômica, de modo que um mesmo artefato só
inicializa uma sessão uma vez.
"""

# ========================
# --- Importações ---
# ========================
import logging
import uuid
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
REFRESH_SESSIONS_COLLECTION = "refresh_sessions"


def _get_refresh_sessions_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[REFRESH_SESSIONS_COLLECTION]


# ========================
# --- Operações ---
# ========================
async def register_refresh_token(
    db: AsyncIOMotorDatabase,
    jti: str,
    user_id: uuid.UUID,
    expires_at: datetime,
) -> bool:
    """
    Registra um refresh token recém-emitido.

    Returns:
        True se o registro foi gravado, False em caso de erro.
    """
    document = {
        "jti": jti,
        "user_id": str(user_id),
        "created_at": datetime.now(timezone.utc),
        "expires_at": expires_at,
        "consumed_at": None,
    }
    try:
        result = await _get_refresh_sessions_collection(db).insert_one(document)
        return bool(result.acknowledged)
    except Exception as e:
        logger.exception(f"Erro ao registrar refresh token do usuário {user_id}: {e}")
        return False


async def consume_refresh_token(db: AsyncIOMotorDatabase, jti: str) -> bool:
    """
    Marca o refresh token como consumido, se ainda estiver ativo.

    Returns:
        True se este chamador consumiu o token; False se ele não existe,
        já foi consumido ou expirou.
    """
    now = datetime.now(timezone.utc)
    document = await _get_refresh_sessions_collection(db).find_one_and_update(
        {"jti": jti, "consumed_at": None, "expires_at": {"$gt": now}},
        {"$set": {"consumed_at": now}},
    )
    if document is None:
        logger.warning(f"Refresh token {jti[:8]}… inexistente, expirado ou já consumido.")
        return False
    return True


async def create_session_indexes(db: AsyncIOMotorDatabase):
    """Índice único por `jti` e TTL para descartar registros expirados."""
    collection = _get_refresh_sessions_collection(db)
    try:
        await collection.create_index("jti", unique=True, name="jti_unique_idx")
        await collection.create_index("expires_at", expireAfterSeconds=0, name="expires_at_ttl_idx")
        logger.info("Índices da coleção 'refresh_sessions' verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices para 'refresh_sessions': {e}", exc_info=True)
