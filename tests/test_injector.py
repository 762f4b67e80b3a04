"""
Tests for secret resolution and command execution.

Commands run through the real shell; stdout/stderr sinks are BytesIO
buffers so redacted output can be inspected.
"""
import io
import os
import logging

import pytest

from hushvault.exceptions import MissingSecrets
from hushvault.injector import (
    Injector,
    build_child_env,
    execute,
    resolve_by_names,
    resolve_by_tags,
)
from hushvault.vault.config import PASSWORD_ENV_VAR


@pytest.fixture
def sinks():
    return io.BytesIO(), io.BytesIO()


@pytest.fixture
def base_env():
    """Minimal environment that still lets the shell find its tools."""
    return {"PATH": os.environ.get("PATH", "/usr/bin:/bin")}


class TestResolveByNames:
    """Name mode: vault, then environment, else MissingSecrets."""

    async def test_vault_then_environment(self, vault):
        await vault.set_secret("A", "x")
        resolved = await resolve_by_names(vault, ["A", "B"], environ={"B": "y"})
        assert resolved == {"A": "x", "B": "y"}

    async def test_missing(self, vault):
        await vault.set_secret("A", "x")
        with pytest.raises(MissingSecrets) as exc:
            await resolve_by_names(vault, ["A", "B", "C"], environ={"B": "y"})
        assert exc.value.names == ["C"]
        assert "C" in str(exc.value)
        assert exc.value.exit_code == 2

    async def test_vault_wins_over_environment(self, vault):
        await vault.set_secret("A", "from-vault")
        assert await resolve_by_names(vault, ["A"], environ={"A": "from-env"}) == {
            "A": "from-vault",
        }

    async def test_empty_environment_value_is_missing(self, vault):
        with pytest.raises(MissingSecrets):
            await resolve_by_names(vault, ["B"], environ={"B": ""})

    async def test_order_follows_request(self, vault):
        await vault.set_secret("B", "2")
        await vault.set_secret("A", "1")
        assert list(await resolve_by_names(vault, ["B", "A"], environ={})) == ["B", "A"]


class TestResolveByTags:
    """Tag mode: OR filter, no environment fallback."""

    async def test_filter(self, vault):
        await vault.set_secret("A", "1", tags=["prod"])
        await vault.set_secret("B", "2", tags=["dev"])
        await vault.set_secret("C", "3")
        assert await resolve_by_tags(vault, ["prod"]) == {"A": "1"}
        assert await resolve_by_tags(vault, ["prod", "dev"]) == {"A": "1", "B": "2"}

    async def test_no_tags_means_all(self, vault):
        await vault.set_secret("A", "1", tags=["prod"])
        await vault.set_secret("C", "3")
        assert await resolve_by_tags(vault) == {"A": "1", "C": "3"}

    async def test_empty_result_warns(self, vault, caplog, monkeypatch):
        monkeypatch.setenv("A", "ambient")
        with caplog.at_level(logging.WARNING, logger="hushvault.injector"):
            assert await resolve_by_tags(vault, ["qa"]) == {}
        assert "qa" in caplog.text


class TestBuildChildEnv:
    """Child environment construction."""

    def test_overlay_and_strip(self):
        env = build_child_env(
            {"API_KEY": "sk", "PATH": "/override"},
            {"PATH": "/bin", "HOME": "/home/u", PASSWORD_ENV_VAR: "bootstrap"},
        )
        assert env == {"API_KEY": "sk", "PATH": "/override", "HOME": "/home/u"}

    def test_secret_named_like_override_is_stripped(self):
        env = build_child_env({PASSWORD_ENV_VAR: "x"}, {})
        assert PASSWORD_ENV_VAR not in env

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("HUSHVAULT_TEST_AMBIENT", "1")
        monkeypatch.setenv(PASSWORD_ENV_VAR, "bootstrap")
        env = build_child_env({})
        assert env["HUSHVAULT_TEST_AMBIENT"] == "1"
        assert PASSWORD_ENV_VAR not in env


class TestExecute:
    """Spawning with redaction."""

    async def test_redacts_stdout_and_stderr(self, sinks, base_env):
        out, err = sinks
        code = await execute(
            'echo "key=$S1 and $S2"; echo "err $S1" >&2',
            {"S1": "alpha-secret", "S2": "beta-secret"},
            environ=base_env, stdout=out, stderr=err,
        )
        assert code == 0
        assert out.getvalue() == b"key=[REDACTED] and [REDACTED]\n"
        assert err.getvalue() == b"err [REDACTED]\n"

    async def test_argv_joined(self, sinks, base_env):
        out, err = sinks
        await execute(["echo", "$TOKEN"], {"TOKEN": "t0k3n"},
                      environ=base_env, stdout=out, stderr=err)
        assert out.getvalue() == b"[REDACTED]\n"

    async def test_no_secrets_unchanged(self, sinks, base_env):
        out, err = sinks
        await execute("echo plain", {}, environ=base_env, stdout=out, stderr=err)
        assert out.getvalue() == b"plain\n"

    async def test_nested_values(self, sinks, base_env):
        out, err = sinks
        await execute(
            'echo "$SHORT $LONG"', {"SHORT": "tok", "LONG": "tok-extended"},
            environ=base_env, stdout=out, stderr=err,
        )
        assert out.getvalue() == b"[REDACTED] [REDACTED]\n"

    async def test_empty_value_not_masked(self, sinks, base_env):
        out, err = sinks
        await execute("echo abc", {"EMPTY": ""}, environ=base_env, stdout=out, stderr=err)
        assert out.getvalue() == b"abc\n"

    async def test_password_not_visible(self, sinks, base_env):
        out, err = sinks
        env = dict(base_env, **{PASSWORD_ENV_VAR: "bootstrap"})
        await execute(f'echo "pw=${PASSWORD_ENV_VAR}"', {}, environ=env, stdout=out, stderr=err)
        assert out.getvalue() == b"pw=\n"

    async def test_exit_code(self, sinks, base_env):
        out, err = sinks
        assert await execute("exit 7", {}, environ=base_env, stdout=out, stderr=err) == 7

    async def test_killed_by_signal(self, sinks, base_env):
        out, err = sinks
        code = await execute("kill -TERM $$", {}, environ=base_env, stdout=out, stderr=err)
        assert code == 128 + 15

    async def test_custom_marker(self, sinks, base_env, settings):
        out, err = sinks
        settings = settings.model_copy(update={"redaction_marker": "***"})
        await execute('echo "$T"', {"T": "value"}, environ=base_env,
                      stdout=out, stderr=err, settings=settings)
        assert out.getvalue() == b"***\n"

    async def test_large_output(self, sinks, base_env):
        out, err = sinks
        await execute(
            'i=0; while [ $i -lt 20000 ]; do echo "row $i $T"; i=$((i+1)); done',
            {"T": "zz-secret-zz"}, environ=base_env, stdout=out, stderr=err,
        )
        data = out.getvalue()
        assert data.count(b"\n") == 20000

    async def test_large_output_across_chunks(self, sinks, base_env, settings):
        out, err = sinks
        settings = settings.model_copy(update={"redact_across_chunks": True})
        await execute(
            'i=0; while [ $i -lt 20000 ]; do echo "row $i $T"; i=$((i+1)); done',
            {"T": "zz-secret-zz"}, environ=base_env, stdout=out, stderr=err,
            settings=settings,
        )
        data = out.getvalue()
        assert b"zz-secret-zz" not in data
        assert data.count(b"[REDACTED]") == 20000

    async def test_no_mask_inherits(self, capfd, base_env):
        code = await execute('echo "$T"', {"T": "visible"}, no_mask=True, environ=base_env)
        assert code == 0
        assert capfd.readouterr().out == "visible\n"


class TestInjector:
    """Vault-backed front door."""

    async def test_exec_names(self, vault, sinks):
        out, err = sinks
        await vault.set_secret("API_KEY", "sk-live-9")
        injector = Injector(vault, stdout=out, stderr=err)
        code = await injector.exec_names(["API_KEY"], 'echo "using $API_KEY"')
        assert code == 0
        assert out.getvalue() == b"using [REDACTED]\n"

    async def test_missing_name_never_runs(self, vault, sinks, tmp_path):
        out, err = sinks
        marker = tmp_path / "ran"
        injector = Injector(vault, stdout=out, stderr=err)
        with pytest.raises(MissingSecrets):
            await injector.exec_names(["NOPE_NOT_SET_ANYWHERE"], f"touch {marker}")
        assert not marker.exists()

    async def test_environment_fallback(self, vault, sinks, monkeypatch):
        out, err = sinks
        monkeypatch.setenv("FROM_ENV", "ambient-value")
        injector = Injector(vault, stdout=out, stderr=err)
        await injector.exec_names(["FROM_ENV"], 'echo "$FROM_ENV"')
        assert out.getvalue() == b"[REDACTED]\n"

    async def test_run_tagged(self, vault, sinks):
        out, err = sinks
        await vault.set_secret("PROD_KEY", "p-1", tags=["prod"])
        await vault.set_secret("DEV_KEY", "d-1", tags=["dev"])
        injector = Injector(vault, stdout=out, stderr=err)
        code = await injector.run_tagged('echo "${PROD_KEY}|${DEV_KEY}|"', ["prod"])
        assert code == 0
        assert out.getvalue() == b"[REDACTED]||\n"

    async def test_run_tagged_empty_still_runs(self, vault, sinks):
        out, err = sinks
        injector = Injector(vault, stdout=out, stderr=err)
        assert await injector.run_tagged("echo ran; exit 4", ["none"]) == 4
        assert out.getvalue() == b"ran\n"
