"""
Vault — Encrypted secret storage for one scope/environment.

Provides the public API of a vault store:
- ``unlock()``: obtain the vault key (key provider then password override)
- ``set_secret(name, value, tags)``: archive the current value, then encrypt
- ``get_secret(name)`` / ``get_secrets(names)``: decrypt current values
- ``list_secrets(filter_tags)`` and the tag helpers: metadata only
- ``get_history`` / ``get_history_version`` / ``rollback`` / ``clear_history``
- ``initialize_vault(path)``: create a store and make sure a key exists
- ``open_vault(scope, env)``: resolve and unlock the vault for a scope

Security Note:
    Never log plaintext or ciphertext values. Only log secret names,
    versions and paths. Archived rows hold the exact ciphertext that was
    live; history and rollback never decrypt and re-encrypt.
"""
import re
import sqlite3
import logging
from pathlib import Path
from typing import Optional, Union

import orjson

from ..exceptions import (
    InvalidSecretName,
    KeyProviderError,
    MalformedInput,
    NoKeyAvailable,
    NotFound,
    VaultExists,
    VaultLocked,
)
from .config import (
    DB_NAME,
    LOCKED_NAME,
    PASSWORD_ENV_VAR,
    VaultSettings,
    generate_key,
    get_password_override,
)
from .crypto import decrypt, derive_direct_key, encrypt
from .keyprovider import KeyProvider, get_key_provider
from .models import HistoryEntry, SecretMeta
from .paths import Scope, resolve_locked_path, resolve_store_path

logger = logging.getLogger("hushvault.vault")

_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_CREATE_SECRETS = """
CREATE TABLE IF NOT EXISTS secrets (
    name TEXT PRIMARY KEY,
    encrypted_value BLOB NOT NULL,
    iv BLOB NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
)
"""

_ADD_TAGS_COLUMN = "ALTER TABLE secrets ADD COLUMN tags TEXT DEFAULT '[]'"

_CREATE_HISTORY = """
CREATE TABLE IF NOT EXISTS secrets_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    version INTEGER NOT NULL,
    encrypted_value BLOB NOT NULL,
    iv BLOB NOT NULL,
    tags TEXT DEFAULT '[]',
    archived_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(name, version)
)
"""

_CREATE_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_secrets_history_name ON secrets_history(name)
"""

_SELECT_CURRENT = """
SELECT encrypted_value, iv, tags FROM secrets WHERE name = ?
"""

_UPSERT_SECRET = """
INSERT INTO secrets (name, encrypted_value, iv, tags, updated_at)
VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
ON CONFLICT(name) DO UPDATE SET
    encrypted_value = excluded.encrypted_value,
    iv = excluded.iv,
    tags = excluded.tags,
    updated_at = CURRENT_TIMESTAMP
"""

_RESTORE_SECRET = """
UPDATE secrets
SET encrypted_value = ?, iv = ?, tags = ?, updated_at = CURRENT_TIMESTAMP
WHERE name = ?
"""

_UPDATE_TAGS = """
UPDATE secrets SET tags = ?, updated_at = CURRENT_TIMESTAMP WHERE name = ?
"""

_DELETE_SECRET = "DELETE FROM secrets WHERE name = ?"

_SELECT_ALL_META = """
SELECT name, tags, created_at, updated_at FROM secrets ORDER BY name
"""

_MAX_VERSION = """
SELECT MAX(version) AS max_v FROM secrets_history WHERE name = ?
"""

_INSERT_HISTORY = """
INSERT INTO secrets_history (name, version, encrypted_value, iv, tags)
VALUES (?, ?, ?, ?, ?)
"""

_SELECT_HISTORY = """
SELECT version, tags, archived_at FROM secrets_history
WHERE name = ? ORDER BY version DESC
"""

_SELECT_HISTORY_VERSION = """
SELECT encrypted_value, iv, tags FROM secrets_history
WHERE name = ? AND version = ?
"""

_PRUNE_HISTORY = """
DELETE FROM secrets_history WHERE name = ? AND id NOT IN (
    SELECT id FROM secrets_history WHERE name = ? ORDER BY version DESC LIMIT ?
)
"""

_CLEAR_HISTORY = "DELETE FROM secrets_history WHERE name = ?"


def _load_tags(raw: Optional[str]) -> list[str]:
    return orjson.loads(raw or "[]")


def _dump_tags(tags: list[str]) -> str:
    # dict.fromkeys deduplicates while keeping first-seen order
    return orjson.dumps(list(dict.fromkeys(tags))).decode("utf-8")


class Vault:
    """Encrypted secret store backed by one SQLite file.

    A freshly constructed Vault is locked: the schema exists but no key is
    held. ``unlock()`` moves it to unlocked; there is no way back for the
    same instance (locking at rest is :class:`~hushvault.vault.lock.VaultLock`).
    """

    def __init__(
        self,
        path: Union[str, Path],
        key_provider: Optional[KeyProvider] = None,
        settings: Optional[VaultSettings] = None,
        create: bool = False,
    ):
        self.path = Path(path)
        self.settings = settings or VaultSettings()
        self._provider = key_provider or get_key_provider(self.settings)
        self._key: Optional[bytes] = None
        db_path = self.path / DB_NAME
        if not db_path.exists():
            if (self.path / LOCKED_NAME).exists():
                raise VaultLocked(f"Vault at {self.path} is locked; unlock it first")
            if not create:
                raise NotFound(f"No vault found at {self.path}")
            if not self.path.is_dir():
                raise NotFound(f"Vault directory {self.path} does not exist")
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        try:
            self._init_schema()
        except sqlite3.DatabaseError as err:
            self._conn.close()
            raise MalformedInput(f"{db_path} is not a usable vault store: {err}") from err

    def __repr__(self) -> str:
        state = "unlocked" if self.is_unlocked() else "locked"
        return f"<Vault path={str(self.path)!r} {state}>"

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(_CREATE_SECRETS)
            # stores created before tagging existed lack the column
            columns = {
                row["name"]
                for row in self._conn.execute("PRAGMA table_info(secrets)")
            }
            if "tags" not in columns:
                self._conn.execute(_ADD_TAGS_COLUMN)
            self._conn.execute(_CREATE_HISTORY)
            self._conn.execute(_CREATE_HISTORY_INDEX)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_name(self, name: str) -> None:
        """Validate a secret name.

        Raises:
            InvalidSecretName: If name is not an upper-case identifier.
        """
        if not _NAME_PATTERN.match(name or ""):
            raise InvalidSecretName(
                f"Invalid secret name {name!r}: use upper-case letters, "
                "digits and underscores, starting with a letter"
            )

    def _require_key(self) -> bytes:
        if self._key is None:
            raise VaultLocked()
        return self._key

    # ------------------------------------------------------------------
    # History helpers
    # ------------------------------------------------------------------

    def _archive(self, name: str, row: sqlite3.Row) -> int:
        """Copy a current row into history under the next version number."""
        max_row = self._conn.execute(_MAX_VERSION, (name,)).fetchone()
        version = (max_row["max_v"] or 0) + 1
        self._conn.execute(
            _INSERT_HISTORY,
            (name, version, row["encrypted_value"], row["iv"], row["tags"] or "[]"),
        )
        return version

    def _prune_history(self, name: str) -> None:
        self._conn.execute(
            _PRUNE_HISTORY, (name, name, self.settings.history_limit),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def unlock(self) -> bool:
        """Obtain the vault key.

        Tries the key provider first, then ``HUSHVAULT_PASSWORD``.
        Never raises.

        Returns:
            True if a key was obtained.
        """
        try:
            key = await self._provider.retrieve()
        except Exception as err:
            logger.warning("Key provider %r failed: %s", self._provider, err)
            key = None
        if key:
            self._key = derive_direct_key(key)
            logger.debug("Vault unlocked via %s provider: %s", self._provider.name, self.path)
            return True
        password = get_password_override()
        if password:
            self._key = derive_direct_key(password)
            logger.debug("Vault unlocked via %s: %s", PASSWORD_ENV_VAR, self.path)
            return True
        logger.info("Vault unlock failed: no key available for %s", self.path)
        return False

    def is_unlocked(self) -> bool:
        return self._key is not None

    async def set_secret(
        self,
        name: str,
        value: str,
        tags: Optional[list[str]] = None,
    ) -> None:
        """Encrypt and store a secret, archiving the value it replaces.

        Args:
            name: Secret name (``^[A-Z][A-Z0-9_]*$``).
            value: Secret value.
            tags: Tag set stored with the value. The whole record is
                replaced, so None stores no tags; use ``add_tags`` to keep
                existing ones.

        Raises:
            VaultLocked: Before ``unlock()``.
            InvalidSecretName: If name is invalid.
        """
        key = self._require_key()
        self._validate_name(name)
        with self._conn:
            existing = self._conn.execute(_SELECT_CURRENT, (name,)).fetchone()
            if existing is not None:
                version = self._archive(name, existing)
                self._prune_history(name)
                logger.debug("Archived %s as v%d", name, version)
            ciphertext, iv = encrypt(value, key)
            self._conn.execute(
                _UPSERT_SECRET, (name, ciphertext, iv, _dump_tags(tags or [])),
            )
        logger.debug("Vault set: %s", name)

    async def get_secret(self, name: str) -> Optional[str]:
        """Decrypt and return a secret, or None if it does not exist.

        Raises:
            VaultLocked: Before ``unlock()``.
            AuthFailed: If the stored ciphertext does not verify.
        """
        key = self._require_key()
        row = self._conn.execute(_SELECT_CURRENT, (name,)).fetchone()
        if row is None:
            return None
        return decrypt(row["encrypted_value"], row["iv"], key)

    async def get_secrets(self, names: list[str]) -> dict[str, str]:
        """Decrypt several secrets; names without a value are omitted."""
        self._require_key()
        result: dict[str, str] = {}
        for name in names:
            value = await self.get_secret(name)
            if value is not None:
                result[name] = value
        return result

    def list_secrets(self, filter_tags: Optional[list[str]] = None) -> list[SecretMeta]:
        """List secret metadata ordered by name.

        Args:
            filter_tags: When given, keep secrets carrying ANY of these tags.
        """
        secrets = [
            SecretMeta(
                name=row["name"],
                tags=_load_tags(row["tags"]),
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in self._conn.execute(_SELECT_ALL_META)
        ]
        if filter_tags:
            wanted = set(filter_tags)
            secrets = [s for s in secrets if wanted.intersection(s.tags)]
        return secrets

    def get_tags(self, name: str) -> list[str]:
        row = self._conn.execute(_SELECT_CURRENT, (name,)).fetchone()
        if row is None:
            return []
        return _load_tags(row["tags"])

    def set_tags(self, name: str, tags: list[str]) -> bool:
        """Replace the tag set. Returns False if the secret does not exist."""
        with self._conn:
            cursor = self._conn.execute(_UPDATE_TAGS, (_dump_tags(tags), name))
        return cursor.rowcount > 0

    def add_tags(self, name: str, tags: list[str]) -> bool:
        return self.set_tags(name, self.get_tags(name) + list(tags))

    def remove_tags(self, name: str, tags: list[str]) -> bool:
        drop = set(tags)
        return self.set_tags(name, [t for t in self.get_tags(name) if t not in drop])

    def get_history(self, name: str) -> list[HistoryEntry]:
        """Archived versions of a secret, most recent first."""
        return [
            HistoryEntry(
                name=name,
                version=row["version"],
                tags=_load_tags(row["tags"]),
                archived_at=row["archived_at"],
            )
            for row in self._conn.execute(_SELECT_HISTORY, (name,))
        ]

    async def get_history_version(self, name: str, version: int) -> Optional[str]:
        """Decrypt one archived version, or None if it does not exist."""
        key = self._require_key()
        row = self._conn.execute(_SELECT_HISTORY_VERSION, (name, version)).fetchone()
        if row is None:
            return None
        return decrypt(row["encrypted_value"], row["iv"], key)

    async def rollback(self, name: str, target_version: int) -> bool:
        """Make an archived version current again.

        The current value is archived first, so a rollback can itself be
        rolled back. Ciphertext is copied as-is; nothing is decrypted.

        Returns:
            False if the secret or the target version does not exist.
        """
        self._require_key()
        with self._conn:
            target = self._conn.execute(
                _SELECT_HISTORY_VERSION, (name, target_version),
            ).fetchone()
            if target is None:
                return False
            current = self._conn.execute(_SELECT_CURRENT, (name,)).fetchone()
            if current is None:
                return False
            archived = self._archive(name, current)
            self._conn.execute(
                _RESTORE_SECRET,
                (target["encrypted_value"], target["iv"], target["tags"] or "[]", name),
            )
            self._prune_history(name)
        logger.info(
            "Rolled back %s to v%d (previous value archived as v%d)",
            name, target_version, archived,
        )
        return True

    def clear_history(self, name: str) -> None:
        with self._conn:
            self._conn.execute(_CLEAR_HISTORY, (name,))

    def remove_secret(self, name: str) -> bool:
        """Delete the current value. History is kept; see ``clear_history``."""
        with self._conn:
            cursor = self._conn.execute(_DELETE_SECRET, (name,))
        removed = cursor.rowcount > 0
        if removed:
            logger.debug("Vault delete: %s", name)
        return removed

    def close(self) -> None:
        self._conn.close()


async def initialize_vault(
    path: Union[str, Path],
    key_provider: Optional[KeyProvider] = None,
    settings: Optional[VaultSettings] = None,
) -> Path:
    """Create an empty vault store and make sure a vault key exists.

    An existing provider key is reused; otherwise a new one is generated
    and stored. When the provider cannot hold it, ``HUSHVAULT_PASSWORD``
    takes over as the key.

    Args:
        path: Directory of the new vault (created if needed).
        key_provider: Key custody backend; defaults to the host's.
        settings: Vault settings.

    Returns:
        The vault directory.

    Raises:
        VaultExists: If a store or locked artifact is already there.
        NoKeyAvailable: If neither a provider nor the override is usable.
    """
    path = Path(path)
    settings = settings or VaultSettings()
    provider = key_provider or get_key_provider(settings)

    if (path / DB_NAME).exists() or (path / LOCKED_NAME).exists():
        raise VaultExists(f"Vault already exists at {path}")

    password = get_password_override()
    if not await provider.available() and not password:
        raise NoKeyAvailable(
            f"No keychain available. Set {PASSWORD_ENV_VAR} env var as fallback."
        )

    existing = await provider.retrieve()
    if existing:
        logger.info("Reusing existing vault key from %s provider", provider.name)
    else:
        try:
            await provider.store(generate_key())
        except KeyProviderError as err:
            if not password:
                raise NoKeyAvailable(
                    f"Keychain error: {err}. Set {PASSWORD_ENV_VAR} as fallback."
                ) from err
            logger.warning(
                "Key provider unavailable (%s); %s will act as the vault key",
                err, PASSWORD_ENV_VAR,
            )

    path.mkdir(parents=True, exist_ok=True)
    Vault(path, key_provider=provider, settings=settings, create=True).close()
    logger.info("Vault initialized at %s", path)
    return path


async def open_vault(
    scope: Scope = Scope.LOCAL,
    env: Optional[str] = None,
    key_provider: Optional[KeyProvider] = None,
    settings: Optional[VaultSettings] = None,
) -> Vault:
    """Find the vault for (scope, env) and unlock it.

    Raises:
        NotFound: No store for this scope/environment.
        VaultLocked: The store is locked at rest.
        NoKeyAvailable: Neither the provider nor the override gave a key.
    """
    settings = settings or VaultSettings()
    path = resolve_store_path(scope, env, settings)
    if path is None:
        if resolve_locked_path(scope, env, settings) is not None:
            raise VaultLocked("Vault is locked; unlock it with its password first")
        env_msg = f' for environment "{env}"' if env else ""
        raise NotFound(f"No {Scope(scope).value} vault found{env_msg}")
    vault = Vault(path, key_provider=key_provider, settings=settings)
    if not await vault.unlock():
        vault.close()
        raise NoKeyAvailable(
            f"Failed to unlock vault. Ensure a keychain is available or set {PASSWORD_ENV_VAR}"
        )
    return vault
