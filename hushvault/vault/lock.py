"""
Vault Lock — At-rest encryption of a whole vault store under a password.

Locking replaces ``vault.db`` with ``vault.db.locked`` and removes the key
from the key provider. The vault key travels inside the locked artifact, so
unlocking with the same password restores both the store and the key, on
this machine or another one.

Locked artifact layout::

    salt(16) | iv(12) | AES-GCM( u32LE(len(key)) | key | vault.db bytes )

The presence of either file is the only lock state; there is no flag.

Security Note:
    No inter-process locking guards the file swap. Two concurrent ``lock``
    calls, or a write racing a ``lock``, can lose data.
    Never log the password, the key or file contents.
"""
import struct
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import (
    AlreadyLocked,
    KeyProviderError,
    MalformedInput,
    NoKeyAvailable,
    NotFound,
)
from .config import (
    DB_NAME,
    LOCKED_NAME,
    PASSWORD_ENV_VAR,
    VaultSettings,
    get_password_override,
)
from .crypto import decrypt_blob, derive_direct_key, encrypt_blob
from .keyprovider import KeyProvider, get_key_provider

logger = logging.getLogger("hushvault.vault")

_KEY_LEN = struct.Struct("<I")


def pack_payload(key: str, store: bytes) -> bytes:
    """Frame the vault key and the store file for encryption."""
    key_bytes = key.encode("utf-8")
    return _KEY_LEN.pack(len(key_bytes)) + key_bytes + store


def unpack_payload(payload: bytes) -> tuple[str, bytes]:
    """Split a decrypted payload into (key, store bytes).

    Raises:
        MalformedInput: If the length prefix does not fit the payload.
    """
    if len(payload) < _KEY_LEN.size:
        raise MalformedInput("Locked payload too short for key length prefix")
    (key_len,) = _KEY_LEN.unpack_from(payload)
    end = _KEY_LEN.size + key_len
    if end > len(payload):
        raise MalformedInput(
            f"Locked payload declares a {key_len}-byte key but holds "
            f"{len(payload) - _KEY_LEN.size} bytes"
        )
    return payload[_KEY_LEN.size:end].decode("utf-8"), payload[end:]


class VaultLock:
    """Lock/unlock the store file of one vault directory."""

    def __init__(
        self,
        path: Union[str, Path],
        key_provider: Optional[KeyProvider] = None,
        settings: Optional[VaultSettings] = None,
    ):
        self.path = Path(path)
        self.settings = settings or VaultSettings()
        self._provider = key_provider or get_key_provider(self.settings)

    @property
    def store_file(self) -> Path:
        return self.path / DB_NAME

    @property
    def locked_file(self) -> Path:
        return self.path / LOCKED_NAME

    @property
    def is_locked(self) -> bool:
        return not self.store_file.exists() and self.locked_file.exists()

    @property
    def is_unlocked(self) -> bool:
        return self.store_file.exists()

    async def _current_key(self) -> str:
        key = await self._provider.retrieve()
        if key:
            return key
        password = get_password_override()
        if password:
            return password
        raise NoKeyAvailable(
            f"No vault key in the key provider and {PASSWORD_ENV_VAR} is not set"
        )

    async def lock(self, password: str) -> None:
        """Encrypt the store under ``password`` and remove the live copy.

        Raises:
            NotFound: No store and no locked artifact at this path.
            AlreadyLocked: Only the locked artifact exists.
            ValueError: Empty password.
            NoKeyAvailable: The vault key cannot be recovered; nothing
                was changed on disk.
        """
        if not self.store_file.exists():
            if self.locked_file.exists():
                raise AlreadyLocked(f"Vault at {self.path} is already locked")
            raise NotFound(f"Vault database not found at {self.path}")
        if not password:
            raise ValueError("Lock password cannot be empty")

        key = await self._current_key()
        payload = pack_payload(key, self.store_file.read_bytes())
        blob = encrypt_blob(payload, password, self.settings.pbkdf2_iterations)

        self.locked_file.write_bytes(blob)
        self.store_file.unlink()
        if not await self._provider.delete():
            logger.debug("Key provider %s held no key to delete", self._provider.name)
        logger.info("Vault locked: %s (%d bytes)", self.path, len(blob))

    async def unlock(self, password: str) -> bool:
        """Decrypt the locked artifact and restore store file and key.

        Returns:
            True if the vault was unlocked, False if it already was.

        Raises:
            NotFound: No locked artifact at this path.
            AuthFailed: Wrong password; the artifact is left intact.
            MalformedInput: The artifact is truncated or badly framed.
            NoKeyAvailable: The key provider refused the key and the
                password override does not reproduce it.
        """
        if self.store_file.exists():
            logger.info("Vault already unlocked: %s", self.path)
            return False
        if not self.locked_file.exists():
            raise NotFound(f"No locked vault found at {self.path}")

        payload = decrypt_blob(
            self.locked_file.read_bytes(), password, self.settings.pbkdf2_iterations,
        )
        key, store = unpack_payload(payload)

        # the key goes back first so a refusal leaves the artifact untouched
        try:
            await self._provider.store(key)
        except KeyProviderError as err:
            override = get_password_override()
            if not override or derive_direct_key(override) != derive_direct_key(key):
                raise NoKeyAvailable(
                    f"Cannot restore the vault key ({err}); vault left locked"
                ) from err
            logger.warning(
                "Key provider refused the key (%s); relying on %s", err, PASSWORD_ENV_VAR,
            )

        self.store_file.write_bytes(store)
        self.locked_file.unlink()
        logger.info("Vault unlocked: %s", self.path)
        return True
