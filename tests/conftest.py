"""
Shared pytest fixtures for the HushVault test suite.

Every test runs with the password override and key variables cleared and
with an in-memory key provider, so nothing touches the OS credential store.
"""
from typing import Optional

import pytest

from hushvault.exceptions import KeyProviderError
from hushvault.vault.config import KEY_ENV_VAR, PASSWORD_ENV_VAR, VaultSettings
from hushvault.vault.keyprovider import KeyProvider
from hushvault.vault.secret_vault import Vault, initialize_vault


class MemoryKeyProvider(KeyProvider):
    """Key provider holding its key in memory."""

    name = "memory"

    def __init__(self, is_available: bool = True, refuse_store: bool = False):
        super().__init__("hushvault-test", "vault-key")
        self.is_available = is_available
        self.refuse_store = refuse_store
        self.key: Optional[str] = None
        self.deletes = 0

    async def store(self, key: str) -> None:
        if self.refuse_store:
            raise KeyProviderError("store refused")
        self.key = key

    async def retrieve(self) -> Optional[str]:
        return self.key

    async def delete(self) -> bool:
        self.deletes += 1
        had_key = self.key is not None
        self.key = None
        return had_key

    async def available(self) -> bool:
        return self.is_available


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Never inherit a real password override or key from the host."""
    monkeypatch.delenv(PASSWORD_ENV_VAR, raising=False)
    monkeypatch.delenv(KEY_ENV_VAR, raising=False)


@pytest.fixture
def settings(tmp_path):
    """Settings with a cheap KDF and a temp home directory."""
    return VaultSettings(home=tmp_path / "home", pbkdf2_iterations=1000)


@pytest.fixture
def provider():
    return MemoryKeyProvider()


@pytest.fixture
def vault_dir(tmp_path):
    return tmp_path / "project" / ".hushvault"


@pytest.fixture
async def vault(vault_dir, provider, settings):
    """An initialized, unlocked vault."""
    await initialize_vault(vault_dir, key_provider=provider, settings=settings)
    v = Vault(vault_dir, key_provider=provider, settings=settings)
    assert await v.unlock() is True
    yield v
    v.close()
