# isw_sso/core/exceptions.py
"""
Hierarquia de erros do fluxo de troca de token SSO.

Cada erro carrega o status HTTP e a mensagem pública que pode ser devolvida
ao navegador. Detalhes internos (falhas de cifra, corpo da resposta do Hub,
erros do banco) ficam apenas nos logs.
"""

# ========================
# --- Importações ---
# ========================
from fastapi import status


# ========================
# --- Erros da Cifra ---
# ========================
class TokenCipherError(Exception):
    """Falha ao abrir um token criptografado do Hub."""


class DecryptError(TokenCipherError):
    """Base64, padding, bytes ou UTF-8 inválidos durante a descriptografia."""


class StructuralError(TokenCipherError):
    """O token ou o texto claro não possuem a estrutura esperada."""


# ========================
# --- Erros do Fluxo SSO ---
# ========================
class SsoError(Exception):
    """Erro terminal do fluxo SSO: encerra a requisição sem criar sessão."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Não foi possível autenticar. Tente novamente."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.public_message)
        self.detail = detail


class MissingToken(SsoError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Token ausente."


class DecryptFailure(SsoError):
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Token inválido."


class HubRejected(SsoError):
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Token inválido ou expirado."


class ProvisioningFailure(SsoError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Não foi possível preparar o usuário."


class SessionIssuanceFailure(SsoError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Não foi possível iniciar a sessão."
