# isw_sso/core/sso_flow.py
"""
Orquestração do callback SSO como máquina de estados.

    RECEIVED -> DECRYPTED -> VALIDATED -> PROVISIONED -> SESSION_ISSUED -> REDIRECTED

`FAILED` é terminal e alcançável de qualquer estado. Cada requisição de
callback cria o seu próprio `SsoCallbackFlow`; nada é repetido
automaticamente. A sessão só é anexada à resposta final, então uma falha em
qualquer etapa devolve uma resposta nova, sem cookie nem tokens.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from fastapi import Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

# --- Módulos da Aplicação ---
from isw_sso.core.cipher import decrypt_token
from isw_sso.core.config import settings
from isw_sso.core.exceptions import (
    DecryptFailure,
    HubRejected,
    MissingToken,
    SsoError,
    TokenCipherError,
)
from isw_sso.core.hub_validator import validate_with_hub
from isw_sso.core.provisioning import find_identity, provision_identity
from isw_sso.core.security import token_fingerprint
from isw_sso.core.session_issuer import issue_session
from isw_sso.models.profile import UserIdentity
from isw_sso.models.sso import SSO_TRANSITIONS, DecryptedPayload, SsoOutcome, SsoState

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Constantes ---
# ========================
LOGIN_FAILURE_PATH = "/login"
LOGIN_FAILURE_CODE = "sso_failed"
NOT_REGISTERED_CODE = "not_registered"


# ========================
# --- Respostas Auxiliares ---
# ========================
def build_failure_response(error: SsoError, prefers_html: bool = False) -> Response:
    """
    Resposta de erro genérica para o navegador.

    Navegação de navegador (`prefers_html`) volta para a página de login com
    `?error=sso_failed`; clientes de API recebem `{"error": ...}` com o status
    do erro. Nenhum detalhe interno é exposto.
    """
    if prefers_html:
        query = urlencode({"error": LOGIN_FAILURE_CODE})
        return RedirectResponse(f"{LOGIN_FAILURE_PATH}?{query}", status_code=status.HTTP_302_FOUND)
    return JSONResponse(status_code=error.status_code, content={"error": error.public_message})


def build_not_registered_redirect() -> RedirectResponse:
    """Devolve o usuário desconhecido ao Hub quando o auto-provisionamento está desligado."""
    query = urlencode({"error": NOT_REGISTERED_CODE, "app": settings.HUB_APP_SLUG})
    url = f"{settings.HUB_BASE_URL.rstrip('/')}/?{query}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


# ========================
# --- Máquina de Estados ---
# ========================
class SsoCallbackFlow:
    """
    Uma execução do callback SSO.

    Uso:
        flow = SsoCallbackFlow(db)
        response, outcome = await flow.run(token, ts)
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.http_client = http_client
        self.state: SsoState = SsoState.RECEIVED
        self.history: List[SsoState] = [SsoState.RECEIVED]
        self.payload: Optional[DecryptedPayload] = None
        self.identity: Optional[UserIdentity] = None
        self._fingerprint = "-"

    def _transition(self, new_state: SsoState) -> None:
        if self.state in (SsoState.FAILED, SsoState.REDIRECTED):
            raise RuntimeError(f"Fluxo SSO já encerrado em '{self.state.value}'.")
        if new_state != SsoState.FAILED and SSO_TRANSITIONS.get(self.state) != new_state:
            raise RuntimeError(f"Transição SSO inválida: {self.state.value} -> {new_state.value}")
        logger.debug(f"SSO {self._fingerprint}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def _outcome(self, status_code: int, error: Optional[str] = None) -> SsoOutcome:
        return SsoOutcome(
            state=self.state,
            history=list(self.history),
            identity=self.identity,
            error=error,
            status_code=status_code,
        )

    def _fail(self, error: SsoError, prefers_html: bool) -> Tuple[Response, SsoOutcome]:
        failed_at = self.state
        self._transition(SsoState.FAILED)
        logger.warning(
            f"SSO {self._fingerprint} falhou em '{failed_at.value}': "
            f"{error.__class__.__name__} ({error.detail or error.public_message})"
        )
        response = build_failure_response(error, prefers_html)
        return response, self._outcome(response.status_code, error=error.__class__.__name__)

    # --- Etapas ---
    def _decrypt(self, token: str) -> DecryptedPayload:
        try:
            return decrypt_token(token, settings.SSO_ENCRYPTION_KEY)
        except TokenCipherError as exc:
            raise DecryptFailure(exc.__class__.__name__) from exc

    async def _validate(self, token: str) -> None:
        if not await validate_with_hub(token, client=self.http_client):
            raise HubRejected("Hub não liberou o token")

    async def _resolve_identity(self, payload: DecryptedPayload) -> Optional[UserIdentity]:
        if settings.SSO_AUTO_PROVISION:
            return await provision_identity(self.db, payload.normalized_email)
        return await find_identity(self.db, payload.normalized_email)

    # --- Execução ---
    async def run(
        self,
        token: Optional[str],
        ts: Optional[str] = None,
        prefers_html: bool = False,
    ) -> Tuple[Response, SsoOutcome]:
        """
        Executa o fluxo completo para um token recebido no callback.

        Args:
            token: Token criptografado como veio na query string.
            ts: Timestamp enviado pelo Hub (apenas registrado em log; a
                política de frescor é do Hub).
            prefers_html: Se True, falhas redirecionam para a página de login.

        Returns:
            Tupla (resposta HTTP final, resumo da execução).
        """
        if self.state != SsoState.RECEIVED or len(self.history) > 1:
            raise RuntimeError("SsoCallbackFlow só pode ser executado uma vez.")

        if not token or not token.strip():
            return self._fail(MissingToken("parâmetro 'token' ausente"), prefers_html)

        token = token.strip()
        self._fingerprint = token_fingerprint(token)
        logger.info(f"Callback SSO recebido: token {self._fingerprint}, ts={ts or '-'}")

        try:
            self.payload = self._decrypt(token)
            self._transition(SsoState.DECRYPTED)

            # A autorização vem do Hub, sempre com o token original
            await self._validate(token)
            self._transition(SsoState.VALIDATED)

            self.identity = await self._resolve_identity(self.payload)
            if self.identity is None:
                logger.info(f"SSO {self._fingerprint}: usuário não cadastrado e auto-provisionamento desligado.")
                self._transition(SsoState.FAILED)
                response = build_not_registered_redirect()
                return response, self._outcome(response.status_code, error=NOT_REGISTERED_CODE)
            self._transition(SsoState.PROVISIONED)

            issued = await issue_session(self.db, self.identity)
            self._transition(SsoState.SESSION_ISSUED)

            response = issued.response
            self._transition(SsoState.REDIRECTED)
        except SsoError as error:
            return self._fail(error, prefers_html)
        except Exception as exc:
            logger.exception(f"Erro inesperado no fluxo SSO {self._fingerprint}: {exc}")
            return self._fail(SsoError(exc.__class__.__name__), prefers_html)

        logger.info(f"SSO {self._fingerprint} concluído para o usuário {self.identity.id} ({issued.variant})")
        return response, self._outcome(response.status_code)
