"""
Vault Paths — Stateless scope/environment resolution.

Layout under a scope base (``~/.hushvault`` or ``<cwd>/.hushvault``)::

    vault.db                 legacy unscoped store
    envs/<name>/vault.db     named environment
    envs/<name>/vault.db.locked

There is no in-process registry: every call looks at the filesystem, so
separate processes always agree on what exists.
"""
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import DB_NAME, LOCKED_NAME, VaultSettings

DEFAULT_ENV = "default"
LEGACY_LABEL = "default (legacy)"


class Scope(str, Enum):
    GLOBAL = "global"
    LOCAL = "local"


def base_path(scope: Scope = Scope.LOCAL, settings: Optional[VaultSettings] = None) -> Path:
    settings = settings or VaultSettings()
    root = settings.home_dir if Scope(scope) is Scope.GLOBAL else Path.cwd()
    return root / settings.dir_name


def vault_path(
    scope: Scope = Scope.LOCAL,
    env: Optional[str] = None,
    settings: Optional[VaultSettings] = None,
) -> Path:
    """Directory a new vault for (scope, env) is created in."""
    base = base_path(scope, settings)
    if env:
        return base / "envs" / env
    return base


def _resolve(
    filename: str,
    scope: Scope,
    env: Optional[str],
    settings: Optional[VaultSettings],
) -> Optional[Path]:
    base = base_path(scope, settings)
    if env:
        # an explicit environment never falls back
        candidates = [base / "envs" / env]
    else:
        candidates = [base, base / "envs" / DEFAULT_ENV]
    for candidate in candidates:
        if (candidate / filename).exists():
            return candidate
    return None


def resolve_store_path(
    scope: Scope = Scope.LOCAL,
    env: Optional[str] = None,
    settings: Optional[VaultSettings] = None,
) -> Optional[Path]:
    """Find the directory of an unlocked vault.

    With ``env`` only ``envs/<env>`` is considered. Without it, the legacy
    store at the scope base wins over ``envs/default``.

    Returns:
        The vault directory, or None when no store file exists.
    """
    return _resolve(DB_NAME, scope, env, settings)


def resolve_locked_path(
    scope: Scope = Scope.LOCAL,
    env: Optional[str] = None,
    settings: Optional[VaultSettings] = None,
) -> Optional[Path]:
    """Same precedence as :func:`resolve_store_path`, for locked artifacts."""
    return _resolve(LOCKED_NAME, scope, env, settings)


def list_environments(
    scope: Scope = Scope.LOCAL,
    settings: Optional[VaultSettings] = None,
) -> list[str]:
    """List environments holding a store file.

    A legacy store is reported first as ``"default (legacy)"``; named
    environments follow in alphabetical order.
    """
    base = base_path(scope, settings)
    envs: list[str] = []
    if (base / DB_NAME).exists():
        envs.append(LEGACY_LABEL)
    envs_dir = base / "envs"
    if envs_dir.is_dir():
        for entry in sorted(envs_dir.iterdir()):
            if entry.is_dir() and (entry / DB_NAME).exists():
                envs.append(entry.name)
    return envs
