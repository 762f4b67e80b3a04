"""Vault — Encrypted secret storage for one scope/environment.

Security Note (Threat Model):
    The vault key lives in the OS credential store (or the password
    override) and, once unlocked, in process memory. A memory dump of the
    process exposes the key and any decrypted value. This is an accepted
    limitation; the store file alone reveals only names, tags and
    timestamps.
"""

from .config import VaultSettings, generate_key, PASSWORD_ENV_VAR, KEY_ENV_VAR
from .keyprovider import (
    KeyProvider,
    MacOSKeychainProvider,
    KeyringProvider,
    SecretServiceProvider,
    WindowsCredentialProvider,
    EnvironmentKeyProvider,
    UnavailableKeyProvider,
    get_key_provider,
)
from .models import SecretMeta, HistoryEntry
from .paths import (
    Scope,
    vault_path,
    resolve_store_path,
    resolve_locked_path,
    list_environments,
)
from .secret_vault import Vault, initialize_vault, open_vault
from .lock import VaultLock

__all__ = [
    "Vault",
    "VaultLock",
    "initialize_vault",
    "open_vault",
    "VaultSettings",
    "generate_key",
    "PASSWORD_ENV_VAR",
    "KEY_ENV_VAR",
    "KeyProvider",
    "MacOSKeychainProvider",
    "KeyringProvider",
    "SecretServiceProvider",
    "WindowsCredentialProvider",
    "EnvironmentKeyProvider",
    "UnavailableKeyProvider",
    "get_key_provider",
    "SecretMeta",
    "HistoryEntry",
    "Scope",
    "vault_path",
    "resolve_store_path",
    "resolve_locked_path",
    "list_environments",
]
