# isw_sso/models/profile.py
"""
Este módulo define os modelos Pydantic da identidade local criada a partir
de um login SSO: o usuário do backend de autenticação (`auth_users`), o
perfil da aplicação (`profiles`) e a identidade resolvida que circula
entre os componentes do fluxo.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

# ========================
# --- Constantes ---
# ========================
DEFAULT_ROLE = "default"


# ========================
# --- Modelos Pydantic ---
# ========================
class AuthUserInDB(BaseModel):
    """
    Usuário do backend de autenticação, como armazenado no banco.
    A senha é aleatória e nunca é usada: o login acontece apenas via SSO.
    """
    id: uuid.UUID = Field(..., title="ID Único do Usuário")
    email: str = Field(..., title="E-mail (minúsculo)")
    hashed_password: str = Field(..., title="Senha Hasheada")
    email_confirmed_at: Optional[datetime] = Field(None, title="Confirmação do E-mail")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), title="Data de Criação")

    model_config = ConfigDict(from_attributes=True)


class ProfileInDB(BaseModel):
    """Perfil da aplicação, vinculado ao usuário de autenticação pelo mesmo `id`."""
    id: uuid.UUID = Field(..., title="ID do Usuário")
    email: str = Field(..., title="E-mail (minúsculo)")
    name: str = Field(..., title="Nome de Exibição", max_length=100)
    role: str = Field(default=DEFAULT_ROLE, title="Papel")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), title="Data de Criação")
    updated_at: Optional[datetime] = Field(None, title="Data da Última Atualização")

    model_config = ConfigDict(from_attributes=True)


class UserIdentity(BaseModel):
    """Identidade resolvida pelo provisionamento e gravada na sessão."""
    id: uuid.UUID
    email: str
    nickname: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_profile(cls, profile: ProfileInDB) -> "UserIdentity":
        return cls(id=profile.id, email=profile.email, nickname=profile.name)
