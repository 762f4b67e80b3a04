"""
Vault Configuration — Validated settings and the password override.

Settings are read from environment variables prefixed with ``HUSHVAULT_``:
    HUSHVAULT_HOME = <directory holding the global vault, default: ~>
    HUSHVAULT_DIR = <vault directory name, default: .hushvault>
    HUSHVAULT_HISTORY_LIMIT = <archived versions kept per secret>
    HUSHVAULT_PBKDF2_ITERATIONS = <iterations for the lock password KDF>
    HUSHVAULT_KEY_PROVIDER = auto | macos | linux | windows | env | none

Security Note:
    Never log key material or the password override. Only log paths,
    secret names and version numbers.
"""
import os
import base64
import secrets
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("hushvault.vault")

# Supplies the vault key when no key provider is usable, and doubles as the
# lock/unlock password in headless contexts.
PASSWORD_ENV_VAR = "HUSHVAULT_PASSWORD"
# Read by the environment key provider only.
KEY_ENV_VAR = "HUSHVAULT_KEY"

KEY_PROVIDERS = ("auto", "macos", "linux", "windows", "env", "none")

DB_NAME = "vault.db"
LOCKED_NAME = "vault.db.locked"


def get_password_override() -> Optional[str]:
    """Return the password override, or None when unset or empty."""
    return os.environ.get(PASSWORD_ENV_VAR) or None


def generate_key() -> str:
    """Generate a random 32-byte vault key and return it as base64 string.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class VaultSettings(BaseModel):
    """Validated vault settings."""

    home: Optional[Path] = None
    dir_name: str = Field(default=".hushvault", min_length=1)
    history_limit: int = Field(default=10, ge=1, le=1000)
    pbkdf2_iterations: int = Field(default=100_000, ge=1000)
    key_provider: str = Field(default="auto")
    service_name: str = Field(default="hushvault")
    account_name: str = Field(default="vault-key")
    redaction_marker: str = Field(default="[REDACTED]", min_length=1)
    redact_across_chunks: bool = False

    @field_validator("key_provider")
    @classmethod
    def validate_key_provider(cls, v: str) -> str:
        """Validate the key provider backend name."""
        v = v.lower()
        if v not in KEY_PROVIDERS:
            raise ValueError(f"Unsupported key provider: {v}")
        return v

    @field_validator("dir_name")
    @classmethod
    def validate_dir_name(cls, v: str) -> str:
        """A directory name, never a path."""
        if os.sep in v or (os.altsep and os.altsep in v):
            raise ValueError(f"dir_name must not contain path separators: {v}")
        return v

    @property
    def home_dir(self) -> Path:
        return self.home if self.home is not None else Path.home()

    @classmethod
    def from_env(cls) -> "VaultSettings":
        """Create VaultSettings by loading values from environment.

        Returns:
            Populated VaultSettings instance.
        """
        mapping = {
            "home": "HUSHVAULT_HOME",
            "dir_name": "HUSHVAULT_DIR",
            "history_limit": "HUSHVAULT_HISTORY_LIMIT",
            "pbkdf2_iterations": "HUSHVAULT_PBKDF2_ITERATIONS",
            "key_provider": "HUSHVAULT_KEY_PROVIDER",
            "redaction_marker": "HUSHVAULT_REDACTION_MARKER",
            "redact_across_chunks": "HUSHVAULT_REDACT_ACROSS_CHUNKS",
        }
        values = {
            field: os.environ[var]
            for field, var in mapping.items()
            if os.environ.get(var)
        }
        settings = cls(**values)
        logger.debug(
            "Loaded vault settings (provider=%s, history_limit=%d)",
            settings.key_provider, settings.history_limit,
        )
        return settings
