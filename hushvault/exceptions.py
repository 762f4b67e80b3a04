"""
HushVault errors.

Every error carries the process exit code a front-end should use when the
error terminates an invocation.
"""

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USER_ERROR = 2  # invalid input, missing secrets
EXIT_NO_VAULT = 3    # vault path or record not found
EXIT_LOCKED = 4      # vault locked (in memory or at rest)
EXIT_AUTH_FAILED = 5  # wrong password / no key


class HushVaultError(Exception):
    """Base class for all vault errors."""

    exit_code: int = EXIT_ERROR


class VaultLocked(HushVaultError):
    """A secret-bearing operation was attempted before ``unlock()``."""

    exit_code = EXIT_LOCKED

    def __init__(self, message: str = "Vault is locked") -> None:
        super().__init__(message)


class AuthFailed(HushVaultError):
    """Authentication tag did not verify, or no usable key/password."""

    exit_code = EXIT_AUTH_FAILED


class NoKeyAvailable(AuthFailed):
    """Neither the key provider nor the password override yielded a key."""


class NotFound(HushVaultError):
    exit_code = EXIT_NO_VAULT


class VaultExists(HushVaultError):
    exit_code = EXIT_USER_ERROR


class AlreadyLocked(HushVaultError):
    exit_code = EXIT_LOCKED


class MissingSecrets(HushVaultError):
    """Requested secret names found neither in the vault nor the environment."""

    exit_code = EXIT_USER_ERROR

    def __init__(self, names: list[str]) -> None:
        self.names = list(names)
        super().__init__(f"Missing secrets: {', '.join(self.names)}")


class MalformedInput(HushVaultError):
    """Locked artifact or store file is truncated, badly framed or not a vault."""


class ExecFailed(HushVaultError):
    """The child process could not be spawned."""


class KeyProviderError(HushVaultError):
    """A key provider backend refused to store the key."""


class InvalidSecretName(HushVaultError, ValueError):
    exit_code = EXIT_USER_ERROR
