from __future__ import annotations

import fnmatch
import logging
import platform
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..errors import PreconditionError
from .command import command_exists
from .env import PATHS

logger = logging.getLogger(__name__)


class OsFamily(str, Enum):
    UNIX_LIKE = "linux"
    APPLE_DESKTOP = "darwin"


class PackageManagerKind(str, Enum):
    APT = "apt"
    DNF_YUM = "dnf-yum"
    PACMAN = "pacman"
    ZYPPER = "zypper"
    HOMEBREW = "homebrew"


# os-release ID patterns -> package manager family.
_DISTRO_FAMILIES: Tuple[Tuple[Tuple[str, ...], PackageManagerKind], ...] = (
    (("debian", "ubuntu", "kali", "pop", "linuxmint"), PackageManagerKind.APT),
    (("rhel", "centos", "fedora", "rocky", "almalinux", "ol"), PackageManagerKind.DNF_YUM),
    (("arch", "manjaro"), PackageManagerKind.PACMAN),
    (("opensuse*", "suse*"), PackageManagerKind.ZYPPER),
)

# manager binary -> (update command, install command)
_MANAGER_COMMANDS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "apt": (("apt-get", "update"), ("apt-get", "install", "-y")),
    "dnf": (("dnf", "check-update"), ("dnf", "install", "-y")),
    "yum": (("yum", "check-update"), ("yum", "install", "-y")),
    "pacman": (("pacman", "-Sy"), ("pacman", "-S", "--needed", "--noconfirm")),
    "zypper": (("zypper", "refresh"), ("zypper", "install", "-y")),
    "brew": (("brew", "update"), ("brew", "install")),
}

SUPPORTED_SUMMARY = "Debian/Ubuntu, RHEL/CentOS/Rocky, Fedora, Arch, openSUSE"


@dataclass(frozen=True)
class PlatformProfile:
    os_family: OsFamily
    distribution_id: str
    package_manager: PackageManagerKind
    manager_name: str
    update_command: Tuple[str, ...]
    install_command: Tuple[str, ...]
    machine: str = ""

    @property
    def is_darwin(self) -> bool:
        return self.os_family is OsFamily.APPLE_DESKTOP

    def as_dict(self) -> Dict[str, Any]:
        return {
            "os_family": self.os_family.value,
            "distribution_id": self.distribution_id,
            "package_manager": self.package_manager.value,
            "manager_name": self.manager_name,
            "update_command": list(self.update_command),
            "install_command": list(self.install_command),
            "machine": self.machine,
        }


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse os-release KEY=value lines, unquoting values."""

    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        out[key.strip()] = value
    return out


def family_for_id(distro_id: str) -> Optional[PackageManagerKind]:
    d = distro_id.strip().lower()
    for patterns, kind in _DISTRO_FAMILIES:
        if any(fnmatch.fnmatchcase(d, pat) for pat in patterns):
            return kind
    return None


def _profile(
    os_family: OsFamily,
    distro_id: str,
    kind: PackageManagerKind,
    manager_name: str,
    machine: str,
) -> PlatformProfile:
    update_cmd, install_cmd = _MANAGER_COMMANDS[manager_name]
    return PlatformProfile(
        os_family=os_family,
        distribution_id=distro_id,
        package_manager=kind,
        manager_name=manager_name,
        update_command=update_cmd,
        install_command=install_cmd,
        machine=machine,
    )


def detect_platform(*, os_release_path: str = PATHS.os_release) -> PlatformProfile:
    """Resolve OS family and package manager. Performs no mutation."""

    system = platform.system()
    machine = platform.machine().lower()

    if system == "Darwin":
        profile = _profile(OsFamily.APPLE_DESKTOP, "macos", PackageManagerKind.HOMEBREW, "brew", machine)
    elif system == "Linux":
        p = Path(os_release_path)
        if not p.is_file():
            raise PreconditionError(f"Unsupported Linux (missing {os_release_path}).")
        distro_id = parse_os_release(p.read_text(encoding="utf-8", errors="ignore")).get("ID", "").lower()

        kind = family_for_id(distro_id)
        if kind is None:
            raise PreconditionError(
                f"Unsupported Linux distribution: {distro_id or 'unknown'}. "
                f"This installer supports: {SUPPORTED_SUMMARY}"
            )

        if kind is PackageManagerKind.DNF_YUM:
            # Older RHEL/CentOS releases ship yum only.
            manager_name = "dnf" if command_exists("dnf") else "yum"
        else:
            manager_name = kind.value

        profile = _profile(OsFamily.UNIX_LIKE, distro_id, kind, manager_name, machine)
    else:
        raise PreconditionError(f"Unsupported OS: {system or 'unknown'}")

    logger.info(
        "Platform: os=%s distro=%s package_manager=%s (%s) machine=%s",
        profile.os_family.value,
        profile.distribution_id,
        profile.package_manager.value,
        profile.manager_name,
        profile.machine,
    )
    return profile
