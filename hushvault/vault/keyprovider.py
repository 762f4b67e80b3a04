"""
Key Providers — Custody of the vault key outside the store.

A provider holds exactly one key string per (service, account) pair and
exposes four operations: ``store``, ``retrieve``, ``delete``, ``available``.
Native backends are thin adapters over one ``keyring`` backend each (macOS
Keychain, freedesktop Secret Service, Windows Credential Locker); keyring
calls block, so they run in a worker thread.

The ``HUSHVAULT_PASSWORD`` override is deliberately NOT consulted here;
the Vault layer falls back to it when a provider yields no key.

Security Note:
    Never log the key. keyring talks to the credential store through its
    native API, so the key never appears on a command line.
"""
import os
import sys
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from keyring.backend import KeyringBackend
from keyring.backends import SecretService, Windows, macOS
from keyring.errors import KeyringError, PasswordDeleteError

from ..exceptions import KeyProviderError
from .config import KEY_ENV_VAR, VaultSettings

logger = logging.getLogger("hushvault.keyprovider")


class KeyProvider(ABC):
    """Holds one vault key string."""

    name: str = "abstract"

    def __init__(self, service: str = "hushvault", account: str = "vault-key"):
        self.service = service
        self.account = account

    def __repr__(self) -> str:
        return f"<{type(self).__name__} service={self.service!r} account={self.account!r}>"

    @abstractmethod
    async def store(self, key: str) -> None:
        """Persist the key, replacing any existing one.

        Raises:
            KeyProviderError: If the backend refused the key.
        """

    @abstractmethod
    async def retrieve(self) -> Optional[str]:
        """Return the stored key, or None when there is none."""

    @abstractmethod
    async def delete(self) -> bool:
        """Remove the stored key. Returns whether the backend succeeded."""

    @abstractmethod
    async def available(self) -> bool:
        """Whether the backend can be used on this host."""


class KeyringProvider(KeyProvider):
    """Adapter over a single ``keyring`` backend.

    Subclasses only name the backend class. The backend is built on first
    use, so selecting a provider never touches the credential store.
    """

    backend_class: type[KeyringBackend] = KeyringBackend

    def __init__(
        self,
        service: str = "hushvault",
        account: str = "vault-key",
        backend: Optional[KeyringBackend] = None,
    ):
        super().__init__(service, account)
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is None:
            self._backend = self.backend_class()
        return self._backend

    async def available(self) -> bool:
        # keyring reports viability through the backend's priority check
        return bool(await asyncio.to_thread(lambda: self.backend.viable))

    async def store(self, key: str) -> None:
        if not await self.available():
            raise KeyProviderError(f"{self.name} credential store is not available")
        try:
            await asyncio.to_thread(
                self.backend.set_password, self.service, self.account, key,
            )
        except KeyringError as err:
            raise KeyProviderError(
                f"{self.name} credential store refused the key: {err}"
            ) from err

    async def retrieve(self) -> Optional[str]:
        if not await self.available():
            return None
        try:
            key = await asyncio.to_thread(
                self.backend.get_password, self.service, self.account,
            )
        except KeyringError as err:
            logger.warning("Cannot read key from %s credential store: %s", self.name, err)
            return None
        return key or None

    async def delete(self) -> bool:
        if not await self.available():
            return False
        try:
            await asyncio.to_thread(
                self.backend.delete_password, self.service, self.account,
            )
        except PasswordDeleteError:
            return False
        except KeyringError as err:
            logger.warning("Cannot delete key from %s credential store: %s", self.name, err)
            return False
        return True


class MacOSKeychainProvider(KeyringProvider):
    name = "macos"
    backend_class = macOS.Keyring


class SecretServiceProvider(KeyringProvider):
    """Linux Secret Service (GNOME Keyring, KWallet) over D-Bus."""

    name = "linux"
    backend_class = SecretService.Keyring


class WindowsCredentialProvider(KeyringProvider):
    name = "windows"
    backend_class = Windows.WinVaultKeyring


class EnvironmentKeyProvider(KeyProvider):
    """Read-only provider backed by the ``HUSHVAULT_KEY`` variable.

    Meant for CI runners and containers that inject the vault key directly.
    """

    name = "env"

    def __init__(self, service: str = "hushvault", account: str = "vault-key",
                 variable: str = KEY_ENV_VAR):
        super().__init__(service, account)
        self.variable = variable

    async def store(self, key: str) -> None:
        raise KeyProviderError(
            f"{self.variable} is read-only; export the key manually"
        )

    async def retrieve(self) -> Optional[str]:
        return os.environ.get(self.variable) or None

    async def delete(self) -> bool:
        return False

    async def available(self) -> bool:
        return bool(os.environ.get(self.variable))


class UnavailableKeyProvider(KeyProvider):
    """Stand-in for hosts without any credential store."""

    name = "none"

    async def store(self, key: str) -> None:
        raise KeyProviderError(f"No key provider available on {sys.platform}")

    async def retrieve(self) -> Optional[str]:
        return None

    async def delete(self) -> bool:
        return False

    async def available(self) -> bool:
        return False


_PROVIDERS: dict[str, type[KeyProvider]] = {
    cls.name: cls
    for cls in (
        MacOSKeychainProvider,
        SecretServiceProvider,
        WindowsCredentialProvider,
        EnvironmentKeyProvider,
        UnavailableKeyProvider,
    )
}


def _platform_backend(platform: str) -> str:
    if platform == "darwin":
        return "macos"
    if platform.startswith("linux"):
        return "linux"
    if platform in ("win32", "cygwin"):
        return "windows"
    return "none"


def get_key_provider(
    settings: Optional[VaultSettings] = None,
    platform: Optional[str] = None,
) -> KeyProvider:
    """Build the key provider for this host.

    Args:
        settings: Vault settings; ``key_provider`` other than ``auto`` forces
            a backend.
        platform: Overrides ``sys.platform`` for backend selection.

    Returns:
        A KeyProvider instance.
    """
    settings = settings or VaultSettings()
    name = settings.key_provider
    if name == "auto":
        name = _platform_backend(platform or sys.platform)
    provider = _PROVIDERS[name](settings.service_name, settings.account_name)
    logger.debug("Using key provider %r", provider)
    return provider
