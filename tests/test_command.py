"""Tests for the command runner and privilege helpers."""

from unittest.mock import patch

import pytest

from clawdbot_vhost.errors import CommandError
from clawdbot_vhost.lib.command import (
    invoking_user,
    privilege_prefix,
    run_as_user,
    run_cmd,
    run_privileged,
    write_privileged,
)


# ============================================================================
# TestPrivilege
# ============================================================================

class TestPrivilege:

    def test_sudo_when_not_root(self):
        with patch("clawdbot_vhost.lib.command.is_root", return_value=False):
            assert privilege_prefix() == ["sudo"]
            assert privilege_prefix(preserve_env=True) == ["sudo", "-E"]

    def test_no_prefix_as_root(self):
        with patch("clawdbot_vhost.lib.command.is_root", return_value=True):
            assert privilege_prefix() == []
            assert privilege_prefix(preserve_env=True) == []

    def test_run_privileged_prefixes(self, runner):
        run_privileged(["systemctl", "reload", "caddy"])
        assert runner.calls == [["sudo", "systemctl", "reload", "caddy"]]

    def test_run_as_user_keeps_home(self, runner):
        run_as_user(["git", "status"], user="deploy")
        assert runner.calls == [["sudo", "-u", "deploy", "-H", "git", "status"]]


# ============================================================================
# TestRunCmd
# ============================================================================

class TestRunCmd:

    def test_failure_carries_stderr(self, runner):
        runner.on("apt-get", returncode=100, stderr="E: Unable to locate package caddy")
        with pytest.raises(CommandError) as exc:
            run_cmd(["apt-get", "install", "-y", "caddy"], context="apt install")
        assert exc.value.returncode == 100
        assert "E: Unable to locate package caddy" in str(exc.value)
        assert str(exc.value).startswith("apt install: ")

    def test_check_false_returns_result(self, runner):
        runner.on("false", returncode=1)
        r = run_cmd(["false"], check=False)
        assert not r.ok
        assert r.returncode == 1

    def test_dry_run_executes_nothing(self, runner):
        r = run_cmd(["rm", "-rf", "/opt/x"], dry_run=True)
        assert r.ok
        assert runner.calls == []

    def test_missing_binary_is_127(self):
        with patch("clawdbot_vhost.lib.command.subprocess.run", side_effect=FileNotFoundError("nope")):
            r = run_cmd(["no-such-tool"], check=False)
            assert r.returncode == 127
            with pytest.raises(CommandError):
                run_cmd(["no-such-tool"])

    def test_write_privileged_goes_through_tee(self, runner, tmp_path):
        target = tmp_path / "etc" / "file.conf"
        write_privileged(str(target), "hello\n")
        assert runner.calls == [["sudo", "tee", str(target)]]
        assert runner.inputs == ["hello\n"]
        assert target.read_text() == "hello\n"


# ============================================================================
# TestInvokingUser
# ============================================================================

class TestInvokingUser:

    def test_prefers_sudo_user(self):
        with patch.dict("os.environ", {"SUDO_USER": "alice", "USER": "root"}):
            assert invoking_user() == "alice"

    def test_falls_back_to_user(self):
        with patch.dict("os.environ", {"USER": "bob"}, clear=True):
            assert invoking_user() == "bob"
