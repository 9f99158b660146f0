"""Tests for Node.js runtime provisioning."""

from unittest.mock import patch

import pytest

from clawdbot_vhost.errors import PreconditionError, ProvisioningError
from clawdbot_vhost.lib.osdetect import PackageManagerKind
from clawdbot_vhost.lib.runtime import (
    darwin_node_arch,
    ensure_pnpm,
    ensure_runtime,
    parse_major,
    select_darwin_installer,
)

from conftest import make_profile


DIST_INDEX = """
<html><body><pre>
<a href="../">../</a>
<a href="node-v24.3.0-darwin-arm64.tar.gz">node-v24.3.0-darwin-arm64.tar.gz</a>
<a href="node-v24.3.0-darwin-x64.tar.xz">node-v24.3.0-darwin-x64.tar.xz</a>
<a href="node-v24.3.0-linux-x64.tar.xz">node-v24.3.0-linux-x64.tar.xz</a>
<a href="node-v24.3.0.pkg">node-v24.3.0.pkg</a>
<a href="node-v24.3.0-darwin-x64.pkg">node-v24.3.0-darwin-x64.pkg</a>
<a href="node-v24.3.0-darwin-arm64.pkg">node-v24.3.0-darwin-arm64.pkg</a>
</pre></body></html>
"""


# ============================================================================
# TestVersionParsing
# ============================================================================

class TestVersionParsing:

    @pytest.mark.parametrize("text,expected", [
        ("v24.3.0\n", 24),
        ("v18.19.1", 18),
        ("22.1.0", 22),
        ("", None),
        ("node: command not found", None),
    ])
    def test_parse_major(self, text, expected):
        assert parse_major(text) == expected


# ============================================================================
# TestEnsureRuntime
# ============================================================================

class TestEnsureRuntime:

    def test_satisfied_runtime_is_left_alone(self, runner, which):
        which({"node"})
        runner.on("node", "-v", stdout="v24.1.0\n")
        result = ensure_runtime(make_profile(PackageManagerKind.APT))
        assert result == {"installed_major": 24, "action": "none"}
        assert runner.commands == [["node", "-v"]]

    def test_newer_runtime_is_left_alone(self, runner, which):
        which({"node"})
        runner.on("node", "-v", stdout="v25.0.0\n")
        assert ensure_runtime(make_profile(PackageManagerKind.PACMAN))["action"] == "none"

    def test_old_runtime_on_apt_uses_nodesource(self, runner, which):
        which({"node"})
        runner.on("node", "-v", stdout="v18.19.1\n")
        with patch("clawdbot_vhost.lib.runtime.fetch_text", return_value="#!/bin/bash\necho setup\n") as fetch:
            result = ensure_runtime(make_profile(PackageManagerKind.APT))

        fetch.assert_called_once_with("https://deb.nodesource.com/setup_24.x")
        assert result["action"] == "installed"
        assert ["sudo", "-E", "bash", "-"] in runner.calls
        assert runner.inputs[runner.calls.index(["sudo", "-E", "bash", "-"])] == "#!/bin/bash\necho setup\n"
        assert runner.index("bash", "-") < runner.index("apt-get", "install", "-y", "nodejs")

    def test_missing_runtime_on_dnf_uses_rpm_setup(self, runner, which):
        which({"dnf"})
        with patch("clawdbot_vhost.lib.runtime.fetch_text", return_value="") as fetch:
            ensure_runtime(make_profile(PackageManagerKind.DNF_YUM))
        fetch.assert_called_once_with("https://rpm.nodesource.com/setup_24.x")
        assert runner.ran("dnf", "install", "-y", "nodejs")

    @pytest.mark.parametrize("kind,install", [
        (PackageManagerKind.PACMAN, ["pacman", "-S", "--needed", "--noconfirm", "nodejs", "npm"]),
        (PackageManagerKind.ZYPPER, ["zypper", "install", "-y", "curl", "ca-certificates", "nodejs", "npm"]),
    ])
    def test_distro_nodejs(self, runner, which, kind, install):
        which(set())
        ensure_runtime(make_profile(kind))
        assert runner.ran(*install)

    def test_darwin_brew_falls_back_to_node(self, runner, which):
        which({"brew"})
        runner.on("brew", "install", "node@24", returncode=1)
        ensure_runtime(make_profile(PackageManagerKind.HOMEBREW, machine="arm64"))
        assert runner.ran("brew", "install", "node")
        assert runner.ran("brew", "link", "--overwrite", "--force", "node@24")

    def test_darwin_without_brew_installs_pkg(self, runner, which, tmp_paths):
        which(set())
        with patch("clawdbot_vhost.lib.runtime.fetch_text", return_value=DIST_INDEX), \
             patch("clawdbot_vhost.lib.runtime.download", side_effect=lambda url, dest: dest) as dl:
            ensure_runtime(make_profile(PackageManagerKind.HOMEBREW, machine="arm64"), paths=tmp_paths)

        url, dest = dl.call_args[0]
        assert url == "https://nodejs.org/dist/latest-v24.x/node-v24.3.0-darwin-arm64.pkg"
        assert runner.ran("installer", "-pkg", dest, "-target", "/")

    def test_dry_run_fetches_nothing(self, runner, which):
        which(set())
        with patch("clawdbot_vhost.lib.runtime.fetch_text") as fetch:
            ensure_runtime(make_profile(PackageManagerKind.APT), dry_run=True)
        fetch.assert_not_called()
        assert runner.calls == []


# ============================================================================
# TestDarwinInstaller
# ============================================================================

class TestDarwinInstaller:

    @pytest.mark.parametrize("arch,expected", [
        ("arm64", "node-v24.3.0-darwin-arm64.pkg"),
        ("x64", "node-v24.3.0-darwin-x64.pkg"),
    ])
    def test_selects_exact_pkg(self, arch, expected):
        assert select_darwin_installer(DIST_INDEX, major=24, arch=arch) == expected

    def test_no_match_fails(self):
        with pytest.raises(ProvisioningError, match="v22"):
            select_darwin_installer(DIST_INDEX, major=22, arch="arm64")

    def test_arch_mapping(self):
        assert darwin_node_arch("x86_64") == "x64"
        assert darwin_node_arch("arm64") == "arm64"

    def test_unknown_arch_fails(self):
        with pytest.raises(PreconditionError, match="ppc"):
            darwin_node_arch("ppc")


# ============================================================================
# TestPnpm
# ============================================================================

class TestPnpm:

    def test_corepack_enable_then_activate_as_user(self, runner):
        ensure_pnpm(user="deploy")
        assert runner.calls == [
            ["sudo", "corepack", "enable"],
            ["sudo", "-u", "deploy", "-H", "corepack", "prepare", "pnpm@latest", "--activate"],
        ]
