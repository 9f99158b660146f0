"""Shared fixtures: a recording fake for subprocess.run and platform profiles.

No test touches the real system: every command goes through FakeRunner,
which records argv and can be scripted per command prefix.
"""

import subprocess
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union
from unittest.mock import patch

import pytest

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from clawdbot_vhost.config import RunConfiguration
from clawdbot_vhost.lib.env import PATHS
from clawdbot_vhost.lib.osdetect import OsFamily, PackageManagerKind, PlatformProfile, _profile
from clawdbot_vhost.pipeline import InstallCtx


Response = Union[Tuple[int, str, str], Callable[[List[str], Optional[str]], Tuple[int, str, str]]]


def strip_privilege(argv: List[str]) -> List[str]:
    """Drop a leading `sudo [-E]` or `sudo -u USER -H` prefix."""

    if argv[:1] != ["sudo"]:
        return list(argv)
    if argv[1:2] == ["-E"]:
        return argv[2:]
    if argv[1:2] == ["-u"] and argv[3:4] == ["-H"]:
        return argv[4:]
    return argv[1:]


class FakeRunner:
    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.cwds: List[Optional[str]] = []
        self.envs: List[Optional[dict]] = []
        self._handlers: List[Tuple[Tuple[str, ...], Response]] = []

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "", fn=None) -> None:
        """Script the response for commands starting with prefix (privilege prefix ignored)."""

        self._handlers.append((tuple(prefix), fn if fn is not None else (returncode, stdout, stderr)))

    def __call__(self, argv, input=None, text=True, stdout=None, stderr=None, cwd=None, env=None):
        argv = list(argv)
        self.calls.append(argv)
        self.inputs.append(input)
        self.cwds.append(cwd)
        self.envs.append(env)

        cmd = strip_privilege(argv)
        if cmd[:1] == ["tee"]:
            Path(cmd[-1]).parent.mkdir(parents=True, exist_ok=True)
            Path(cmd[-1]).write_text(input or "", encoding="utf-8")

        rc, out, err = 0, "", ""
        for prefix, resp in reversed(self._handlers):
            if tuple(cmd[: len(prefix)]) == prefix:
                rc, out, err = resp(cmd, input) if callable(resp) else resp
                break
        return subprocess.CompletedProcess(argv, rc, out, err)

    @property
    def commands(self) -> List[List[str]]:
        return [strip_privilege(c) for c in self.calls]

    def ran(self, *argv: str) -> bool:
        return list(argv) in self.commands

    def count(self, *argv: str) -> int:
        return self.commands.count(list(argv))

    def index(self, *argv: str) -> int:
        return self.commands.index(list(argv))


@pytest.fixture
def runner():
    """Replace subprocess.run for every command and pretend we are not root."""

    fake = FakeRunner()
    with patch("clawdbot_vhost.lib.command.subprocess.run", side_effect=fake), \
         patch("clawdbot_vhost.lib.command.is_root", return_value=False):
        yield fake


@pytest.fixture
def which():
    """Control which binaries appear on PATH: `which({"node", "brew"})`."""

    available = set()

    def _which(name):
        return f"/usr/bin/{name}" if name in available else None

    with patch("clawdbot_vhost.lib.command.shutil.which", side_effect=_which):
        def set_available(names=()):
            available.clear()
            available.update(names)
        yield set_available


def make_profile(kind: PackageManagerKind, manager_name: Optional[str] = None, machine: str = "x86_64") -> PlatformProfile:
    if kind is PackageManagerKind.HOMEBREW:
        return _profile(OsFamily.APPLE_DESKTOP, "macos", kind, "brew", machine)
    distro = {
        PackageManagerKind.APT: "ubuntu",
        PackageManagerKind.DNF_YUM: "rocky",
        PackageManagerKind.PACMAN: "arch",
        PackageManagerKind.ZYPPER: "opensuse-leap",
    }[kind]
    if manager_name is None:
        manager_name = "dnf" if kind is PackageManagerKind.DNF_YUM else kind.value
    return _profile(OsFamily.UNIX_LIKE, distro, kind, manager_name, machine)


@pytest.fixture
def tmp_paths(tmp_path):
    return replace(
        PATHS,
        state_default=str(tmp_path / "state.json"),
        log_default=str(tmp_path / "vhost.log"),
        os_release=str(tmp_path / "os-release"),
        source_dir=str(tmp_path / "opt" / "openclawbot-svc-plus"),
        caddyfile=str(tmp_path / "caddy" / "Caddyfile"),
        nginx_dir=str(tmp_path / "nginx"),
        iptables_rules=str(tmp_path / "iptables" / "iptables.rules"),
        download_dir=str(tmp_path / "dl"),
    )


@pytest.fixture
def make_ctx(tmp_paths):
    def _make(kind=PackageManagerKind.APT, **config_kwargs):
        config_kwargs.setdefault("domain", "example.com")
        return InstallCtx(
            config=RunConfiguration(**config_kwargs),
            profile=make_profile(kind),
            user="deploy",
            paths=tmp_paths,
        )
    return _make
