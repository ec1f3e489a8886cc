# isw_sso/core/config.py

# ========================
# --- Importações ---
# ========================
import os
import logging
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, ValidationError, field_validator, model_validator
from dotenv import load_dotenv

# ===============================
# --- Configuração do Logger ---
# ===============================
logger = logging.getLogger(__name__)

# ===============================
# --- Carregamento do .env ---
# ===============================
# Define o caminho para o arquivo .env na raiz do projeto
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), '.env')
# Carrega as variáveis do arquivo .env para o ambiente, se o arquivo existir
loaded = load_dotenv(dotenv_path=dotenv_path)

# ===============================
# --- Constantes ---
# ===============================
SESSION_VARIANT_COOKIE = "cookie"
SESSION_VARIANT_TOKEN = "token"
SESSION_VARIANTS = (SESSION_VARIANT_COOKIE, SESSION_VARIANT_TOKEN)

DEFAULT_ISW_LINK_KEYS = [
    "melhor_produto",
    "pontos",
    "experta",
    "portal_de_conteudo",
    "dossie",
    "instaquevende",
    "marco",
]

# ======================================
# --- Definição das Configurações ---
# ======================================
class Settings(BaseSettings):
    """
    Configurações da ponte SSO lidas do ambiente usando Pydantic BaseSettings.
    Procura variáveis de ambiente ou variáveis em um arquivo .env.

    Nenhum segredo (chave de descriptografia, chave JWT) possui valor padrão:
    ambos precisam ser injetados pelo ambiente.
    """
    # =========================
    # --- Config Gerais ---
    # =========================
    PROJECT_NAME: str = Field("ISW SSO Bridge", description="Nome do Projeto")
    API_PREFIX: str = Field("/api", description="Prefixo das rotas de sessão consumidas pelo frontend")

    # =============================
    # --- Configurações MongoDB ---
    # =============================
    MONGODB_URL: str = Field(..., description="URL de conexão completa do MongoDB (obrigatória)")
    DATABASE_NAME: str = Field("isw_sso_db", description="Nome do banco de dados MongoDB")

    # ===========================
    # --- Configurações JWT ---
    # ===========================
    JWT_SECRET_KEY: str = Field(..., description="Chave secreta para assinar sessões e tokens de acesso (obrigatória)")
    JWT_ALGORITHM: str = Field("HS256", description="Algoritmo de assinatura JWT")
    JWT_ISSUER: str = Field("ia.vendaseguro.com.br", description="Valor do claim 'iss' das sessões emitidas")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60, description="Validade do access token (variante token) em minutos")
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(60 * 24 * 7, description="Validade do refresh token em minutos (padrão: 7 dias)")

    # ==================================
    # --- Configurações do Hub (SSO) ---
    # ==================================
    SSO_ENCRYPTION_KEY: str = Field(..., description="Chave simétrica compartilhada com o Hub (AES-256-CBC)")
    HUB_BASE_URL: str = Field("https://hub.vendaseguro.com.br", description="URL base do Hub emissor dos tokens")
    HUB_VALIDATE_PATH: str = Field(
        "/isw_api/isw_validar_usuario.php",
        description="Caminho do endpoint de validação de tokens no Hub"
    )
    HUB_TIMEOUT_SECONDS: float = Field(10.0, description="Timeout da chamada de validação ao Hub, em segundos")
    HUB_APP_SLUG: str = Field("experta", description="Identificador desta aplicação no Hub (usado em redirecionamentos de erro)")
    SSO_AUTO_PROVISION: bool = Field(
        True,
        description="Se True, cria o usuário local no primeiro login SSO. Se False, usuários desconhecidos voltam ao Hub."
    )

    # ====================================
    # --- Configurações da Aplicação ---
    # ====================================
    APP_BASE_URL: str = Field("http://localhost:8080", description="URL base do frontend (SPA)")
    APP_LANDING_PATH: str = Field("/chat", description="Rota autenticada para onde o usuário é enviado após o SSO")
    SSO_API_BASE_URL: str = Field(
        "",
        description="URL base deste serviço vista pelo navegador. Vazio = mesma origem (produção)."
    )

    # ==================================
    # --- Configurações de Sessão ---
    # ==================================
    SESSION_VARIANT: str = Field(SESSION_VARIANT_COOKIE, description="'cookie' (vs_session HttpOnly) ou 'token' (magic link)")
    SESSION_COOKIE_NAME: str = Field("vs_session", description="Nome do cookie de sessão")
    SESSION_COOKIE_MAX_AGE: int = Field(2 * 60 * 60, description="Tempo de vida do cookie de sessão em segundos")
    SESSION_COOKIE_SECURE: bool = Field(True, description="Marca o cookie como Secure (desative apenas em desenvolvimento HTTP)")

    # =========================================
    # --- Configurações de Links do Hub ---
    # =========================================
    ISW_LINK_KEYS: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ISW_LINK_KEYS),
        description="Destinos reconhecidos no atributo isw_action_link"
    )

    # ===============================
    # --- Configuração de Logging ---
    # ===============================
    LOG_LEVEL: str = Field(default="INFO", description="Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    # ===================================
    # --- Configurações CORS ---
    # ===================================
    CORS_ALLOWED_ORIGINS: List[str] = Field(default=[], description="Lista de origens CORS permitidas")

    # ====================================================
    # --- Configuração do Modelo Pydantic BaseSettings ---
    # ====================================================
    model_config = {
        "case_sensitive": False,
    }

    # ===============================
    # --- Propriedades Derivadas ---
    # ===============================
    @property
    def HUB_VALIDATE_URL(self) -> str:
        """URL completa do endpoint de validação do Hub."""
        return self.HUB_BASE_URL.rstrip("/") + "/" + self.HUB_VALIDATE_PATH.lstrip("/")

    @property
    def APP_LANDING_URL(self) -> str:
        """URL absoluta da rota autenticada do frontend."""
        return self.APP_BASE_URL.rstrip("/") + self.APP_LANDING_PATH

    # ===============================
    # --- Validadores ---
    # ===============================
    @field_validator("SESSION_VARIANT")
    @classmethod
    def check_session_variant(cls, value: str) -> str:
        """Aceita apenas as variantes de sessão suportadas."""
        normalized = value.strip().lower()
        if normalized not in SESSION_VARIANTS:
            raise ValueError(f"SESSION_VARIANT deve ser um de {SESSION_VARIANTS}, recebido '{value}'.")
        return normalized

    @model_validator(mode='after')
    def check_sso_key(self) -> 'Settings':
        """A chave compartilhada com o Hub não pode ser vazia."""
        if not self.SSO_ENCRYPTION_KEY.strip():
            raise ValueError("SSO_ENCRYPTION_KEY não pode ser vazia.")
        if len(self.SSO_ENCRYPTION_KEY.encode("utf-8")) > 32:
            logger.warning("SSO_ENCRYPTION_KEY tem mais de 32 bytes; o excedente será ignorado na descriptografia.")
        return self

# ================================
# --- Criação da Instância ---
# ================================
try:
    settings = Settings()
except ValidationError as e:
    # Campos obrigatórios faltando, tipos inválidos ou validadores customizados
    logger.critical(f"Erro fatal de validação ao carregar configurações: {e}")
    raise e
except Exception as e:
    logger.critical(f"Erro inesperado ao carregar configurações: {e}", exc_info=True)
    raise e
