# isw_sso/models/sso.py
"""
Modelos do fluxo SSO: o payload extraído do token do Hub, os estados da
máquina de estados do callback e o resultado de uma execução do fluxo.
"""

# ========================
# --- Importações ---
# ========================
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from isw_sso.models.profile import UserIdentity


# ========================
# --- Payload do Token ---
# ========================
class DecryptedPayload(BaseModel):
    """
    Tripla `<opaque_id>|<user_id>|<user_email>` contida no token do Hub.

    Apenas dicas de identidade: a autorização vem sempre da validação no Hub.
    """
    opaque_id: str = Field(..., title="Identificador opaco do token no Hub")
    user_id: str = Field(..., title="ID do usuário no Hub")
    user_email: str = Field(..., title="E-mail (ou apelido) do usuário no Hub")

    model_config = ConfigDict(frozen=True)

    @property
    def normalized_email(self) -> str:
        return self.user_email.strip().lower()


# ========================
# --- Estados do Fluxo ---
# ========================
class SsoState(str, Enum):
    """Estados do callback SSO. `FAILED` é terminal e alcançável de qualquer estado."""
    RECEIVED = "received"
    DECRYPTED = "decrypted"
    VALIDATED = "validated"
    PROVISIONED = "provisioned"
    SESSION_ISSUED = "session_issued"
    REDIRECTED = "redirected"
    FAILED = "failed"


# Transições permitidas (além de X -> FAILED)
SSO_TRANSITIONS = {
    SsoState.RECEIVED: SsoState.DECRYPTED,
    SsoState.DECRYPTED: SsoState.VALIDATED,
    SsoState.VALIDATED: SsoState.PROVISIONED,
    SsoState.PROVISIONED: SsoState.SESSION_ISSUED,
    SsoState.SESSION_ISSUED: SsoState.REDIRECTED,
}


class SsoOutcome(BaseModel):
    """Resumo de uma execução do fluxo, usado para logs e testes."""
    state: SsoState
    history: List[SsoState] = Field(default_factory=list)
    identity: Optional[UserIdentity] = None
    error: Optional[str] = None
    status_code: int = 302
