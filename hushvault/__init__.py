"""HushVault.

Local encrypted secrets vault: keep credentials out of an orchestrator's
context while still letting its subprocesses use them.
"""
from .version import __version__
from .exceptions import (
    HushVaultError,
    VaultLocked,
    AuthFailed,
    NoKeyAvailable,
    NotFound,
    VaultExists,
    AlreadyLocked,
    MissingSecrets,
    MalformedInput,
    ExecFailed,
    KeyProviderError,
    InvalidSecretName,
)
from .vault import (
    Vault,
    VaultLock,
    VaultSettings,
    Scope,
    initialize_vault,
    open_vault,
    get_key_provider,
)
from .redaction import REDACTED, mask_secrets, StreamRedactor
from .injector import (
    ResolvedSecrets,
    Injector,
    resolve_by_names,
    resolve_by_tags,
    build_child_env,
    execute,
)

__all__ = [
    "__version__",
    "HushVaultError",
    "VaultLocked",
    "AuthFailed",
    "NoKeyAvailable",
    "NotFound",
    "VaultExists",
    "AlreadyLocked",
    "MissingSecrets",
    "MalformedInput",
    "ExecFailed",
    "KeyProviderError",
    "InvalidSecretName",
    "Vault",
    "VaultLock",
    "VaultSettings",
    "Scope",
    "initialize_vault",
    "open_vault",
    "get_key_provider",
    "REDACTED",
    "mask_secrets",
    "StreamRedactor",
    "Injector",
    "ResolvedSecrets",
    "resolve_by_names",
    "resolve_by_tags",
    "build_child_env",
    "execute",
]
