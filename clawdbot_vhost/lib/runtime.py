from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..errors import PreconditionError, ProvisioningError
from .command import command_exists, run_as_user, run_cmd, run_privileged
from .env import NODE_MIN_MAJOR, PATHS, Paths
from .net import download, fetch_text
from .osdetect import PackageManagerKind, PlatformProfile
from .pkg import package_manager_for

logger = logging.getLogger(__name__)

NODESOURCE_SETUP_URLS = {
    PackageManagerKind.APT: "https://deb.nodesource.com/setup_{major}.x",
    PackageManagerKind.DNF_YUM: "https://rpm.nodesource.com/setup_{major}.x",
}
NODE_DIST_INDEX = "https://nodejs.org/dist/latest-v{major}.x/"

# uname -m -> nodejs.org installer arch
_DARWIN_ARCH = {
    "arm64": "arm64",
    "x86_64": "x64",
}

_VERSION_RE = re.compile(r"^v?(\d+)")
_HREF_RE = re.compile(r'href="([^"]+)"')


def parse_major(version_output: str) -> Optional[int]:
    m = _VERSION_RE.match(version_output.strip())
    return int(m.group(1)) if m else None


def installed_major(*, dry_run: bool = False) -> Optional[int]:
    if not command_exists("node"):
        return None
    r = run_cmd(["node", "-v"], check=False, dry_run=dry_run)
    return parse_major(r.stdout) if r.ok else None


def darwin_node_arch(machine: str) -> str:
    arch = _DARWIN_ARCH.get(machine.lower())
    if arch is None:
        raise PreconditionError(f"Unsupported macOS architecture: {machine or 'unknown'}")
    return arch


def select_darwin_installer(index_html: str, *, major: int, arch: str) -> str:
    """Pick the first macOS .pkg for this major/arch from a nodejs.org dist index.

    Only an exact `node-v<major>...-darwin-<arch>.pkg` link qualifies; anything
    else (tarballs, other arches, other majors) is ignored.
    """

    wanted = re.compile(rf"^node-v{major}\.[^/]*-darwin-{re.escape(arch)}\.pkg$")
    for href in _HREF_RE.findall(index_html):
        name = href.rsplit("/", 1)[-1]
        if wanted.match(name):
            return name
    raise ProvisioningError(f"Failed to find a Node.js v{major} macOS installer for {arch}.")


def _install_nodesource(profile: PlatformProfile, major: int, *, paths: Paths, dry_run: bool) -> None:
    pm = package_manager_for(profile, dry_run=dry_run)
    pm.refresh_index()
    pm.ensure_packages(["curl", "ca-certificates"])

    url = NODESOURCE_SETUP_URLS[profile.package_manager].format(major=major)
    if dry_run:
        logger.info("Would fetch %s", url)
        script = ""
    else:
        script = fetch_text(url)
    run_privileged(
        ["bash", "-"],
        preserve_env=True,
        input_text=script,
        context="NodeSource repository setup",
        dry_run=dry_run,
    )
    pm.ensure_packages(["nodejs"])


def _install_distro_nodejs(profile: PlatformProfile, major: int, *, paths: Paths, dry_run: bool) -> None:
    pm = package_manager_for(profile, dry_run=dry_run)
    pm.refresh_index()
    if profile.package_manager is PackageManagerKind.PACMAN:
        pm.ensure_packages(["curl", "ca-certificates"])
        pm.ensure_packages(["nodejs", "npm"])
    else:
        pm.ensure_packages(["curl", "ca-certificates", "nodejs", "npm"])


def _install_darwin(profile: PlatformProfile, major: int, *, paths: Paths, dry_run: bool) -> None:
    if command_exists("brew"):
        formula = f"node@{major}"
        r = run_cmd(["brew", "install", formula], check=False, dry_run=dry_run)
        if not r.ok:
            logger.info("%s unavailable, falling back to brew install node", formula)
            run_cmd(["brew", "install", "node"], context="brew install node", dry_run=dry_run)
        if run_cmd(["brew", "list", formula], check=False, dry_run=dry_run).ok:
            run_cmd(["brew", "link", "--overwrite", "--force", formula], dry_run=dry_run)
        return

    arch = darwin_node_arch(profile.machine)
    index_url = NODE_DIST_INDEX.format(major=major)
    if dry_run:
        logger.info("Would select a darwin-%s installer from %s", arch, index_url)
        return

    pkg_name = select_darwin_installer(fetch_text(index_url), major=major, arch=arch)
    pkg_path = download(index_url + pkg_name, str(Path(paths.download_dir) / pkg_name))
    run_privileged(["installer", "-pkg", pkg_path, "-target", "/"], context="Node.js installer")


_INSTALLERS: Dict[PackageManagerKind, Callable[..., None]] = {
    PackageManagerKind.APT: _install_nodesource,
    PackageManagerKind.DNF_YUM: _install_nodesource,
    PackageManagerKind.PACMAN: _install_distro_nodejs,
    PackageManagerKind.ZYPPER: _install_distro_nodejs,
    PackageManagerKind.HOMEBREW: _install_darwin,
}


def ensure_runtime(
    profile: PlatformProfile,
    *,
    min_major: int = NODE_MIN_MAJOR,
    paths: Paths = PATHS,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Ensure Node.js >= min_major is installed; no-op when it already is."""

    current = installed_major(dry_run=dry_run)
    if current is not None and current >= min_major:
        logger.info("Node.js v%s already satisfies >= %s", current, min_major)
        return {"installed_major": current, "action": "none"}

    logger.info("Installing Node.js %s (found %s)", min_major, current if current is not None else "none")
    _INSTALLERS[profile.package_manager](profile, min_major, paths=paths, dry_run=dry_run)
    return {"installed_major": current, "action": "installed", "target_major": min_major}


def ensure_pnpm(*, user: str, dry_run: bool = False) -> None:
    # corepack writes its shims next to the node binary, which is root-owned.
    run_privileged(["corepack", "enable"], context="corepack enable", dry_run=dry_run)
    run_as_user(
        ["corepack", "prepare", "pnpm@latest", "--activate"],
        user=user,
        context="activating pnpm",
        dry_run=dry_run,
    )
