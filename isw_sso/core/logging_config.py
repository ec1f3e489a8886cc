# isw_sso/core/logging_config.py
"""
Este módulo configura o sistema de logging da aplicação utilizando Loguru.
Inclui um InterceptHandler para redirecionar logs do sistema de logging
padrão do Python para o Loguru e um patcher que mascara tokens SSO, tokens
de acesso e o cookie de sessão antes de qualquer registro chegar ao sink.
"""

# ========================
# --- Importações ---
# ========================
import logging
import re
import sys
from loguru import logger as loguru_logger

# ========================
# --- Mascaramento de Segredos ---
# ========================
REDACTED = "***"
_SECRET_PARAM_RE = re.compile(
    r"(?P<key>\b(?:access_token|refresh_token|token|vs_session)=)[^&\s#;,\"']+"
)


def redact_secrets(message: str) -> str:
    """Substitui o valor de `token=`, `access_token=`, `refresh_token=` e `vs_session=`."""
    return _SECRET_PARAM_RE.sub(lambda match: match.group("key") + REDACTED, message)


def _redact_record(record: dict) -> None:
    record["message"] = redact_secrets(record["message"])


# ========================
# --- Handler de Intercepção ---
# ========================
class InterceptHandler(logging.Handler):
    """
    Handler do `logging` que redireciona mensagens para o Loguru.
    Permite que logs emitidos por bibliotecas que usam o `logging` padrão
    sejam formatados e gerenciados pelo Loguru.
    """
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while hasattr(frame, "f_code") and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back # pragma: no cover
            if frame is None: # pragma: no cover
                break # pragma: no cover
            depth += 1 # pragma: no cover

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

# ========================
# --- Função de Setup ---
# ========================
def setup_logging(log_level: str = "INFO"):
    """
    Configura o sistema de logging global da aplicação.

    - Remove handlers padrão do Loguru para evitar duplicação.
    - Instala o patcher que mascara tokens em todas as mensagens.
    - Adiciona um handler Loguru para `sys.stderr` com nível configurável.
    - Canaliza o `logging` padrão do Python para o Loguru via `InterceptHandler`.
    - Silencia o log de acesso do Uvicorn (a URL do callback carrega o token) e o httpx.

    Args:
        log_level: Nível mínimo de log a ser exibido (ex: "INFO", "DEBUG").
    """
    log_level = log_level.upper()

    loguru_logger.remove()
    loguru_logger.configure(patcher=_redact_record)

    loguru_logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        enqueue=True,
        diagnose=False   # Variáveis locais (tokens, chaves) nunca vão para o traceback
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("uvicorn.error").propagate = False

    loguru_logger.disable("httpx")
