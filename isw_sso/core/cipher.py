# isw_sso/core/cipher.py
"""
Cifra simétrica dos tokens SSO emitidos pelo Hub.

Formato (compatível com `isw_encrypt`/`isw_decrypt` do plugin do Hub):

    token   = base64url( <ciphertext_b64> ";" <iv_raw> )
    texto   = "<opaque_id>|<user_id>|<user_email>"

O ciphertext é AES-256-CBC com padding PKCS7, já em base64 padrão (saída de
`openssl_encrypt` sem OPENSSL_RAW_DATA). Chave e IV são bytes crus
completados com zeros ou truncados para 32 e 16 bytes. Isso NÃO é uma
derivação de chave: é a simplificação do Hub, mantida por interoperabilidade.

Todas as funções são puras. Qualquer desvio de formato levanta
`TokenCipherError`; nunca é devolvida uma identidade parcial.
"""

# ========================
# --- Importações ---
# ========================
import base64
import binascii
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from isw_sso.core.exceptions import DecryptError, StructuralError
from isw_sso.models.sso import DecryptedPayload

# ========================
# --- Constantes ---
# ========================
KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE_BITS = 128
TOKEN_SEPARATOR = b";"
FIELD_SEPARATOR = "|"
FIELD_COUNT = 3


# ========================
# --- Funções Auxiliares (Internas) ---
# ========================
def _fit(raw: bytes, size: int) -> bytes:
    """Completa com bytes nulos ou trunca `raw` para `size` bytes."""
    return raw[:size].ljust(size, b"\0")


def _derive_key(key: str) -> bytes:
    return _fit(key.encode("utf-8"), KEY_SIZE)


def _b64decode_strict(data: bytes) -> bytes:
    """Decodifica base64 padrão rejeitando caracteres fora do alfabeto."""
    data = data + b"=" * (-len(data) % 4)
    return base64.b64decode(data, validate=True)


def _normalize_urlsafe(token: str) -> bytes:
    return token.strip().replace("-", "+").replace("_", "/").encode("ascii")


# ========================
# --- API Pública ---
# ========================
def build_plaintext(opaque_id: str, user_id: str, user_email: str) -> str:
    """Monta a tripla que o Hub cifra no token."""
    return FIELD_SEPARATOR.join((opaque_id, str(user_id), user_email))


def encrypt_token(plaintext: str, key: str, iv: Optional[bytes] = None) -> str:
    """
    Cifra `plaintext` no mesmo formato emitido pelo Hub.

    Args:
        plaintext: Texto claro (normalmente vindo de `build_plaintext`).
        key: Chave compartilhada com o Hub.
        iv: IV cru opcional; por padrão 16 bytes aleatórios.

    Returns:
        O token base64 URL-safe.
    """
    iv_raw = os.urandom(IV_SIZE) if iv is None else iv
    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_derive_key(key)), modes.CBC(_fit(iv_raw, IV_SIZE))).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    envelope = base64.b64encode(ciphertext) + TOKEN_SEPARATOR + iv_raw
    return base64.b64encode(envelope).decode("ascii").replace("+", "-").replace("/", "_")


def decrypt_token(encrypted_token: str, key: str) -> DecryptedPayload:
    """
    Abre um token do Hub e devolve a tripla de identidade.

    Args:
        encrypted_token: Token como recebido na URL (base64 URL-safe).
        key: Chave compartilhada com o Hub.

    Returns:
        DecryptedPayload com `opaque_id`, `user_id` e `user_email`.

    Raises:
        StructuralError: Envelope sem separador `;` ou texto claro sem 3 campos.
        DecryptError: Base64, padding ou UTF-8 inválidos.
    """
    if not encrypted_token or not encrypted_token.strip():
        raise StructuralError("token vazio")

    try:
        envelope = _b64decode_strict(_normalize_urlsafe(encrypted_token))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise DecryptError("envelope base64 inválido") from exc

    parts = envelope.split(TOKEN_SEPARATOR, 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise StructuralError("envelope sem separador ';'")
    ciphertext_b64, iv_raw = parts

    try:
        ciphertext = _b64decode_strict(ciphertext_b64)
    except (binascii.Error, ValueError) as exc:
        raise DecryptError("ciphertext base64 inválido") from exc

    if not ciphertext or len(ciphertext) % (BLOCK_SIZE_BITS // 8):
        raise DecryptError("tamanho de ciphertext inválido")

    decryptor = Cipher(algorithms.AES(_derive_key(key)), modes.CBC(_fit(iv_raw, IV_SIZE))).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        raw = unpadder.update(padded) + unpadder.finalize()
        plaintext = raw.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecryptError("padding ou codificação inválidos") from exc

    # Bytes adulterados em CBC viram um bloco de lixo; texto não imprimível é rejeitado
    if not plaintext.isprintable():
        raise StructuralError("texto claro contém caracteres de controle")

    fields = plaintext.split(FIELD_SEPARATOR)
    if len(fields) != FIELD_COUNT or not all(field.strip() for field in fields):
        raise StructuralError(f"esperados {FIELD_COUNT} campos, recebidos {len(fields)}")

    opaque_id, user_id, user_email = (field.strip() for field in fields)
    return DecryptedPayload(opaque_id=opaque_id, user_id=user_id, user_email=user_email)
