"""
Vault Crypto Core — Key derivation and AES-256-GCM encryption.

Two layers share the same AEAD primitive:
- Secret layer: derive_direct_key(vault key) → AES-GCM → (ciphertext, iv)
- Blob layer: PBKDF2(password, salt) → AES-GCM → [salt|iv|payload+tag]

Security Note:
    Never log plaintext or ciphertext values.
    Every encryption draws a fresh random 96-bit IV; an IV is never reused
    with the same key.
"""
import os
import base64
import binascii
import hashlib
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import AuthFailed, MalformedInput

logger = logging.getLogger("hushvault.vault")

KEY_LENGTH = 32  # AES-256
IV_SIZE = 12  # 96-bit nonce
SALT_SIZE = 16
TAG_SIZE = 16  # GCM tag
PBKDF2_ITERATIONS = 100_000

MIN_BLOB_SIZE = SALT_SIZE + IV_SIZE + TAG_SIZE


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_direct_key(material: str) -> bytes:
    """Turn a vault key string into a 32-byte AES key.

    A string that base64-decodes to exactly 32 bytes is a generated key and
    is used verbatim. Anything else is treated as a password and hashed
    with SHA-256.

    Args:
        material: Key string from the key provider or the password override.

    Returns:
        32-byte key.
    """
    try:
        decoded = base64.b64decode(material)
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) == KEY_LENGTH:
        return decoded
    return hashlib.sha256(material.encode("utf-8")).digest()


def derive_from_password(
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 32-byte key from a password using PBKDF2-HMAC-SHA256.

    Args:
        password: Lock password.
        salt: Random per-blob salt.
        iterations: PBKDF2 work factor.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Secret-layer encryption
# ---------------------------------------------------------------------------

def encrypt(plaintext: str, key: bytes) -> tuple[bytes, bytes]:
    """Encrypt a secret value.

    Args:
        plaintext: Secret value.
        key: 32-byte vault key.

    Returns:
        Tuple of (ciphertext with GCM tag, iv).
    """
    iv = os.urandom(IV_SIZE)
    ct = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return ct, iv


def decrypt(ciphertext: bytes, iv: bytes, key: bytes) -> str:
    """Decrypt a secret value.

    Raises:
        AuthFailed: If the tag does not verify (wrong key or tampering).
    """
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag:
        raise AuthFailed("Decryption failed: wrong key or corrupted data") from None
    return plaintext.decode("utf-8")


# ---------------------------------------------------------------------------
# Blob-layer encryption (whole store file)
# ---------------------------------------------------------------------------

def encrypt_blob(
    data: bytes,
    password: str,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Encrypt an arbitrary buffer under a password.

    Format: [salt 16B][iv 12B][encrypted_payload + GCM_tag 16B]
    """
    salt = os.urandom(SALT_SIZE)
    key = derive_from_password(password, salt, iterations)
    iv = os.urandom(IV_SIZE)
    ct = AESGCM(key).encrypt(iv, data, None)
    return salt + iv + ct


def decrypt_blob(
    blob: bytes,
    password: str,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Decrypt a buffer produced by :func:`encrypt_blob`.

    Raises:
        MalformedInput: If the blob cannot hold salt, iv and tag.
        AuthFailed: If the password is wrong or the blob was altered.
    """
    if len(blob) < MIN_BLOB_SIZE:
        raise MalformedInput(
            f"Invalid encrypted data: {len(blob)} bytes "
            f"(minimum {MIN_BLOB_SIZE})"
        )
    salt = blob[:SALT_SIZE]
    iv = blob[SALT_SIZE:SALT_SIZE + IV_SIZE]
    ct = blob[SALT_SIZE + IV_SIZE:]
    key = derive_from_password(password, salt, iterations)
    try:
        return AESGCM(key).decrypt(iv, ct, None)
    except InvalidTag:
        raise AuthFailed("Invalid password") from None
