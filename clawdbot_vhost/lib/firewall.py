from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Type

from .command import run_privileged, write_privileged
from .env import GATEWAY_PORT, PATHS, Paths
from .osdetect import PackageManagerKind, PlatformProfile

logger = logging.getLogger(__name__)

OPEN_PORTS: Sequence[int] = (22, 80, 443, GATEWAY_PORT)


class Firewall:
    """Opens OPEN_PORTS over TCP. Re-running must not add duplicate rules."""

    name = "none"

    def __init__(self, *, ports: Sequence[int] = OPEN_PORTS, paths: Paths = PATHS, dry_run: bool = False) -> None:
        self.ports = list(ports)
        self.paths = paths
        self.dry_run = dry_run

    def _priv(self, argv: Sequence[str], **kwargs):
        kwargs.setdefault("context", f"{self.name} configuration")
        return run_privileged(argv, dry_run=self.dry_run, **kwargs)

    def configure(self) -> List[str]:
        raise NotImplementedError


class NoFirewall(Firewall):
    # macOS uses its application-level firewall; port management is left to the operator.
    name = "none"

    def configure(self) -> List[str]:
        logger.info("No firewall changes on this platform")
        return []


class UfwFirewall(Firewall):
    name = "ufw"

    def configure(self) -> List[str]:
        opened = []
        for port in self.ports:
            # ufw skips rules it already has.
            self._priv(["ufw", "allow", f"{port}/tcp"])
            opened.append(f"{port}/tcp")
        self._priv(["ufw", "default", "allow", "outgoing"])
        self._priv(["ufw", "default", "deny", "incoming"])

        status = self._priv(["ufw", "status"])
        if "Status: inactive" in status.stdout:
            self._priv(["ufw", "--force", "enable"])
        return opened


class FirewalldFirewall(Firewall):
    name = "firewalld"

    def configure(self) -> List[str]:
        self._priv(["systemctl", "enable", "--now", "firewalld"])
        opened = []
        for port in self.ports:
            # --add-port on an existing port only warns ALREADY_ENABLED.
            self._priv(["firewall-cmd", "--permanent", f"--add-port={port}/tcp"])
            opened.append(f"{port}/tcp")
        self._priv(["firewall-cmd", "--reload"])
        return opened


class IptablesFirewall(Firewall):
    name = "iptables"

    def _rule(self, port: int) -> List[str]:
        return ["INPUT", "-p", "tcp", "--dport", str(port), "-j", "ACCEPT"]

    def configure(self) -> List[str]:
        self._priv(["systemctl", "enable", "--now", "iptables"])
        opened = []
        for port in self.ports:
            exists = self._priv(["iptables", "-C", *self._rule(port)], check=False)
            if self.dry_run or not exists.ok:
                self._priv(["iptables", "-A", *self._rule(port)])
            else:
                logger.info("iptables already accepts %s/tcp", port)
            opened.append(f"{port}/tcp")

        saved = self._priv(["iptables-save"])
        self._priv(["mkdir", "-p", str(Path(self.paths.iptables_rules).parent)])
        write_privileged(self.paths.iptables_rules, saved.stdout, dry_run=self.dry_run)
        return opened


FIREWALLS: Dict[PackageManagerKind, Type[Firewall]] = {
    PackageManagerKind.APT: UfwFirewall,
    PackageManagerKind.DNF_YUM: FirewalldFirewall,
    PackageManagerKind.ZYPPER: FirewalldFirewall,
    PackageManagerKind.PACMAN: IptablesFirewall,
    PackageManagerKind.HOMEBREW: NoFirewall,
}


def firewall_for(profile: PlatformProfile, *, paths: Paths = PATHS, dry_run: bool = False) -> Firewall:
    return FIREWALLS[profile.package_manager](paths=paths, dry_run=dry_run)
