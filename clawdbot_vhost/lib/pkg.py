from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple, Type

from ..config import ProxyKind
from ..errors import CommandError
from .command import run_cmd, run_privileged
from .osdetect import PackageManagerKind, PlatformProfile

logger = logging.getLogger(__name__)


BASE_PACKAGES = ("git", "curl", "ca-certificates")

FIREWALL_PACKAGES: Dict[PackageManagerKind, Sequence[str]] = {
    PackageManagerKind.APT: ("ufw",),
    PackageManagerKind.DNF_YUM: ("firewalld",),
    PackageManagerKind.PACMAN: ("iptables",),
    PackageManagerKind.ZYPPER: ("firewalld",),
}

NGINX_PACKAGES: Dict[PackageManagerKind, Sequence[str]] = {
    PackageManagerKind.APT: ("nginx", "certbot", "python3-certbot-nginx"),
    PackageManagerKind.DNF_YUM: ("nginx", "certbot", "python3-certbot-nginx"),
    PackageManagerKind.PACMAN: ("nginx", "certbot"),
    PackageManagerKind.ZYPPER: ("nginx", "certbot"),
}

DARWIN_PACKAGES = ("git", "caddy", "curl")


def _dedup(names: Iterable[str]) -> List[str]:
    out: List[str] = []
    for n in names:
        n = str(n).strip()
        if n and n not in out:
            out.append(n)
    return out


def required_packages(profile: PlatformProfile, proxy: ProxyKind) -> List[str]:
    """System packages the run needs on this platform for the chosen proxy."""

    if profile.package_manager is PackageManagerKind.HOMEBREW:
        return list(DARWIN_PACKAGES)

    packages: List[str] = list(BASE_PACKAGES)
    packages.extend(FIREWALL_PACKAGES.get(profile.package_manager, ()))
    if proxy is ProxyKind.NGINX:
        packages.extend(NGINX_PACKAGES.get(profile.package_manager, ()))
    else:
        packages.append("caddy")
    return _dedup(packages)


class PackageManager:
    """Uniform refresh/install over the profile's native command triple."""

    kind: PackageManagerKind
    privileged = True
    env: Tuple[Tuple[str, str], ...] = ()

    def __init__(self, profile: PlatformProfile, *, dry_run: bool = False) -> None:
        self.profile = profile
        self.dry_run = dry_run

    def _run(self, argv: Sequence[str], *, check: bool = True, context: str):
        if self.privileged:
            return run_privileged(
                argv,
                preserve_env=bool(self.env),
                env=dict(self.env),
                check=check,
                context=context,
                dry_run=self.dry_run,
            )
        return run_cmd(argv, env=dict(self.env), check=check, context=context, dry_run=self.dry_run)

    def refresh_index(self) -> None:
        self._run(self.profile.update_command, context=f"{self.profile.manager_name} index refresh")

    def ensure_packages(self, names: Iterable[str]) -> None:
        packages = _dedup(names)
        if not packages:
            return
        logger.info("Ensuring packages via %s: %s", self.profile.manager_name, " ".join(packages))
        self._run(
            [*self.profile.install_command, *packages],
            context=f"{self.profile.manager_name} install",
        )


class AptPackageManager(PackageManager):
    kind = PackageManagerKind.APT
    env = (("DEBIAN_FRONTEND", "noninteractive"),)


class DnfYumPackageManager(PackageManager):
    kind = PackageManagerKind.DNF_YUM

    # check-update exits 100 when updates are available.
    _REFRESH_OK = {0, 100}

    def refresh_index(self) -> None:
        context = f"{self.profile.manager_name} index refresh"
        r = self._run(self.profile.update_command, check=False, context=context)
        if r.returncode not in self._REFRESH_OK:
            raise CommandError(r.argv, r.returncode, r.stderr, context=context)


class PacmanPackageManager(PackageManager):
    kind = PackageManagerKind.PACMAN


class ZypperPackageManager(PackageManager):
    kind = PackageManagerKind.ZYPPER


class HomebrewPackageManager(PackageManager):
    kind = PackageManagerKind.HOMEBREW
    # Homebrew refuses to run as root.
    privileged = False


PACKAGE_MANAGERS: Dict[PackageManagerKind, Type[PackageManager]] = {
    cls.kind: cls
    for cls in (
        AptPackageManager,
        DnfYumPackageManager,
        PacmanPackageManager,
        ZypperPackageManager,
        HomebrewPackageManager,
    )
}


def package_manager_for(profile: PlatformProfile, *, dry_run: bool = False) -> PackageManager:
    return PACKAGE_MANAGERS[profile.package_manager](profile, dry_run=dry_run)
