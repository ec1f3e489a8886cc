# isw_sso/main.py
"""
Ponto de entrada principal e configuração da aplicação FastAPI ISW SSO Bridge.
Define a instância da aplicação, middlewares, rotas e ciclo de vida
(lifespan). Também inclui o setup de logging inicial.
"""

# ========================
# --- Importações ---
# ========================
import logging
import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

# --- Módulos da Aplicação ---
from isw_sso.routers import health, session, sso
from isw_sso.db.mongodb_utils import connect_to_mongo, close_mongo_connection
from isw_sso.db.profile_crud import create_profile_indexes
from isw_sso.db.session_crud import create_session_indexes
from isw_sso.core.config import Settings, settings
from isw_sso.core.logging_config import setup_logging

# ========================
# --- Configuração de Logging ---
# ========================
setup_logging(log_level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ========================
# --- Função de Setup do Middleware CORS ---
# ========================
def _setup_cors_middleware(app_instance: FastAPI, current_settings: Settings):
    """Configura o middleware CORS para a aplicação."""
    if current_settings.CORS_ALLOWED_ORIGINS:
        logger.info(f"Configurando CORS para origens: {current_settings.CORS_ALLOWED_ORIGINS}")
        app_instance.add_middleware(
            CORSMiddleware,
            allow_origins=current_settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    else:
        logger.warning(
            "Nenhuma origem CORS configurada (settings.CORS_ALLOWED_ORIGINS está vazia). "
            "Rotas /api só serão acessíveis pela mesma origem."
        )

# ========================
# --- Ciclo de Vida (Lifespan) ---
# ========================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.

    Conecta ao MongoDB, cria os índices únicos de identidade e de refresh
    tokens e abre o cliente HTTP compartilhado usado na validação com o Hub.
    Fecha ambos no shutdown.
    """
    logger.info("Iniciando ciclo de vida da aplicação...")
    app.state.http_client = httpx.AsyncClient(timeout=settings.HUB_TIMEOUT_SECONDS)
    db_connection = await connect_to_mongo()

    if db_connection is None:
        logger.critical("Falha fatal ao conectar ao MongoDB na inicialização. App pode não funcionar corretamente.")
        yield
        await app.state.http_client.aclose()
        logger.info("Encerrando ciclo de vida (conexão DB falhou no início).")
        return

    app.state.db = db_connection
    logger.info("Conectado ao MongoDB.")

    try:
        logger.info("Tentando criar/verificar índices...")
        await create_profile_indexes(db_connection)
        await create_session_indexes(db_connection)
        logger.info("Criação/verificação de índices concluída.")
    except Exception as e:
        logger.error(f"Erro durante a criação de índices: {e}", exc_info=True)

    logger.info(f"Aplicação iniciada e pronta (variante de sessão: {settings.SESSION_VARIANT}).") # pragma: no cover
    yield # pragma: no cover

    logger.info("Iniciando processo de encerramento...")
    await app.state.http_client.aclose()
    await close_mongo_connection()
    logger.info("Aplicação encerrada.")

# ========================
# --- Instância FastAPI ---
# ========================
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Ponte SSO: troca tokens emitidos pelo Hub por sessões locais da aplicação de chat.",
    version="0.1.0",
    lifespan=lifespan
)

# ========================
# --- Configuração de Middlewares ---
# ========================
_setup_cors_middleware(app, settings)

# ========================
# --- Rotas (Routers) ---
# ========================
app.include_router(sso.router)
app.include_router(session.router, prefix=settings.API_PREFIX)
app.include_router(health.router)

# ========================
# --- Execução (Uvicorn) ---
# ========================
if __name__ == "__main__": # pragma: no cover
    import uvicorn # pragma: no cover
    logger.info("Iniciando servidor Uvicorn para desenvolvimento...") # pragma: no cover
    uvicorn.run( # pragma: no cover
        "isw_sso.main:app", # pragma: no cover
        host="0.0.0.0", # pragma: no cover
        port=8000, # pragma: no cover
        reload=True, # pragma: no cover
        log_level=settings.LOG_LEVEL.lower() # pragma: no cover
    )
