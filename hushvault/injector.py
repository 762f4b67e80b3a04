"""
Injector — Run a command with vault secrets in its environment.

Two selection modes:
- by name: vault first, then the ambient environment; any name found in
  neither aborts before the command is spawned (``MissingSecrets``);
- by tag: every secret carrying any of the tags (all secrets when no tag is
  given); no environment fallback, an empty selection only warns.

Unless ``no_mask`` is set, stdout and stderr are piped through a
:class:`~hushvault.redaction.StreamRedactor` each, read concurrently, and
forwarded to the parent's streams with secret values replaced.

Security Note:
    ``HUSHVAULT_PASSWORD`` is always removed from the child environment.
    Never log secret values; only names and counts.
"""
import os
import sys
import asyncio
import logging
from typing import BinaryIO, Mapping, Optional, Sequence, Union

from .exceptions import ExecFailed, MissingSecrets
from .redaction import StreamRedactor
from .vault.config import PASSWORD_ENV_VAR, VaultSettings
from .vault.secret_vault import Vault

logger = logging.getLogger("hushvault.injector")

CHUNK_SIZE = 64 * 1024

ResolvedSecrets = dict[str, str]


async def resolve_by_names(
    vault: Vault,
    names: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
) -> ResolvedSecrets:
    """Resolve explicitly requested secrets.

    Args:
        vault: Unlocked vault.
        names: Secret names, in the order they should be injected.
        environ: Fallback environment; defaults to ``os.environ``.

    Returns:
        Mapping of every requested name to its value.

    Raises:
        MissingSecrets: Names found neither in the vault nor in ``environ``.
    """
    environ = os.environ if environ is None else environ
    found = await vault.get_secrets(list(names))
    missing: list[str] = []
    for name in names:
        if name in found:
            continue
        if environ.get(name):
            found[name] = environ[name]
            logger.debug("Secret %s taken from the environment", name)
        else:
            missing.append(name)
    if missing:
        raise MissingSecrets(missing)
    return {name: found[name] for name in names}


async def resolve_by_tags(
    vault: Vault,
    tags: Optional[Sequence[str]] = None,
) -> ResolvedSecrets:
    """Resolve every secret carrying any of ``tags`` (all when None/empty)."""
    secrets: ResolvedSecrets = {}
    for meta in vault.list_secrets(list(tags) if tags else None):
        value = await vault.get_secret(meta.name)
        if value is not None:
            secrets[meta.name] = value
    if not secrets:
        tag_msg = f" with tags: {', '.join(tags)}" if tags else ""
        logger.warning("No secrets in vault%s", tag_msg)
    return secrets


def build_child_env(
    secrets: Mapping[str, str],
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Ambient environment overlaid with secrets, minus the password override."""
    env = dict(os.environ if environ is None else environ)
    env.update(secrets)
    env.pop(PASSWORD_ENV_VAR, None)
    return env


async def _pump(
    reader: asyncio.StreamReader,
    redactor: StreamRedactor,
    sink: BinaryIO,
) -> None:
    while True:
        chunk = await reader.read(CHUNK_SIZE)
        if not chunk:
            break
        data = redactor.feed(chunk)
        if data:
            sink.write(data)
            sink.flush()
    tail = redactor.flush()
    if tail:
        sink.write(tail)
        sink.flush()


def _exit_code(returncode: int) -> int:
    # killed by signal N: report 128+N like a shell does
    return 128 - returncode if returncode < 0 else returncode


async def execute(
    command: Union[str, Sequence[str]],
    secrets: Mapping[str, str],
    no_mask: bool = False,
    environ: Optional[Mapping[str, str]] = None,
    stdout: Optional[BinaryIO] = None,
    stderr: Optional[BinaryIO] = None,
    settings: Optional[VaultSettings] = None,
) -> int:
    """Spawn ``command`` through the shell with ``secrets`` injected.

    Standard input is always inherited. With ``no_mask`` the child also
    inherits stdout/stderr and nothing is redacted.

    Args:
        command: Shell command line, or argv joined with spaces.
        secrets: Values to inject (and to redact).
        no_mask: Disable output interception.
        environ: Base environment; defaults to ``os.environ``.
        stdout: Binary sink for the child's stdout (masked mode).
        stderr: Binary sink for the child's stderr (masked mode).
        settings: Supplies the redaction marker and cross-chunk mode.

    Returns:
        The child's exit code.

    Raises:
        ExecFailed: If the shell could not be spawned.
    """
    settings = settings or VaultSettings()
    cmdline = command if isinstance(command, str) else " ".join(command)
    env = build_child_env(secrets, environ)
    pipe = None if no_mask else asyncio.subprocess.PIPE
    try:
        proc = await asyncio.create_subprocess_shell(
            cmdline, env=env, stdout=pipe, stderr=pipe,
        )
    except OSError as err:
        raise ExecFailed(f"Failed to execute: {err}") from err

    logger.debug(
        "Spawned pid=%s with %d secret(s), masking=%s",
        proc.pid, len(secrets), not no_mask,
    )
    if not no_mask:
        values = [v for v in secrets.values() if v]
        await asyncio.gather(
            _pump(
                proc.stdout,
                StreamRedactor(values, settings.redaction_marker, settings.redact_across_chunks),
                stdout or sys.stdout.buffer,
            ),
            _pump(
                proc.stderr,
                StreamRedactor(values, settings.redaction_marker, settings.redact_across_chunks),
                stderr or sys.stderr.buffer,
            ),
        )
    return _exit_code(await proc.wait())


class Injector:
    """Resolve secrets from a vault and run commands with them."""

    def __init__(
        self,
        vault: Vault,
        settings: Optional[VaultSettings] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ):
        self.vault = vault
        self.settings = settings or vault.settings
        self.stdout = stdout
        self.stderr = stderr

    async def exec_names(
        self,
        names: Sequence[str],
        command: Union[str, Sequence[str]],
        no_mask: bool = False,
    ) -> int:
        """Inject the named secrets; aborts with MissingSecrets before spawning."""
        secrets = await resolve_by_names(self.vault, names)
        return await self._execute(command, secrets, no_mask)

    async def run_tagged(
        self,
        command: Union[str, Sequence[str]],
        tags: Optional[Sequence[str]] = None,
        no_mask: bool = False,
    ) -> int:
        """Inject secrets matching any of ``tags`` (every secret if None)."""
        secrets = await resolve_by_tags(self.vault, tags)
        return await self._execute(command, secrets, no_mask)

    async def _execute(self, command, secrets, no_mask):
        return await execute(
            command,
            secrets,
            no_mask=no_mask,
            stdout=self.stdout,
            stderr=self.stderr,
            settings=self.settings,
        )
