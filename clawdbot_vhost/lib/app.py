from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from ..config import InstallMethod, RunConfiguration
from .command import run_as_user, run_privileged
from .env import DEFAULT_SOURCE_BRANCH, GATEWAY_CLI, GATEWAY_HOST, PATHS, Paths

logger = logging.getLogger(__name__)

# Published npm package per install method.
PUBLISHED_PACKAGES = {
    InstallMethod.NPM: "clawdbot",
    InstallMethod.NPM_ALT: "openclaw",
}

BUILD_SCRIPTS = (
    ["pnpm", "install"],
    ["pnpm", "ui:build"],
    ["pnpm", "build"],
)


class InstallStrategy:
    def __init__(self, config: RunConfiguration, *, user: str, paths: Paths = PATHS, dry_run: bool = False) -> None:
        self.config = config
        self.user = user
        self.paths = paths
        self.dry_run = dry_run

    def install(self) -> Dict[str, Any]:
        raise NotImplementedError


class PublishedPackageStrategy(InstallStrategy):
    """`npm install -g <package>@<version>`; npm and npm-alt differ only in the package."""

    def __init__(self, config: RunConfiguration, *, package: str, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self.package = package

    def install_argv(self) -> List[str]:
        return ["npm", "install", "-g", f"{self.package}@{self.config.app_version}"]

    def install(self) -> Dict[str, Any]:
        run_privileged(self.install_argv(), context=f"installing {self.package}", dry_run=self.dry_run)
        return {"strategy": "published-package", "package": self.package, "version": self.config.app_version}


class SourceBuildStrategy(InstallStrategy):
    """Clone (or hard-reset) the source checkout, build it as the user, install globally.

    An existing checkout is reset to origin/<branch>: local changes there are lost.
    """

    branch = DEFAULT_SOURCE_BRANCH

    def _as_user(self, argv: List[str], *, context: str, cwd: str | None = None) -> None:
        run_as_user(argv, user=self.user, cwd=cwd, context=context, dry_run=self.dry_run)

    def sync_checkout(self) -> str:
        src = self.paths.source_dir
        if not Path(src).exists():
            # /opt is root-owned; hand the new directory to the user before cloning.
            run_privileged(["mkdir", "-p", src], context="creating source directory", dry_run=self.dry_run)
            run_privileged(["chown", self.user, src], context="creating source directory", dry_run=self.dry_run)
            self._as_user(["git", "clone", self.config.source_repo, src], context="cloning source")
            return "cloned"

        logger.warning("Resetting %s to origin/%s; local changes are discarded", src, self.branch)
        self._as_user(["git", "-C", src, "fetch", "--all", "--prune"], context="fetching source")
        self._as_user(["git", "-C", src, "checkout", self.branch], context="checking out source")
        self._as_user(["git", "-C", src, "reset", "--hard", f"origin/{self.branch}"], context="resetting source")
        return "reset"

    def install(self) -> Dict[str, Any]:
        action = self.sync_checkout()
        src = self.paths.source_dir
        for argv in BUILD_SCRIPTS:
            self._as_user(argv, cwd=src, context=f"building ({' '.join(argv)})")
        run_privileged(["npm", "install", "-g", src], context="installing build", dry_run=self.dry_run)
        return {"strategy": "source-build", "source_dir": src, "checkout": action, "repo": self.config.source_repo}


def strategy_for(
    config: RunConfiguration,
    *,
    user: str,
    paths: Paths = PATHS,
    dry_run: bool = False,
) -> InstallStrategy:
    if config.install_method is InstallMethod.GIT:
        return SourceBuildStrategy(config, user=user, paths=paths, dry_run=dry_run)
    return PublishedPackageStrategy(
        config,
        package=PUBLISHED_PACKAGES[config.install_method],
        user=user,
        paths=paths,
        dry_run=dry_run,
    )


def configure_gateway(*, user: str, dry_run: bool = False) -> Dict[str, Any]:
    """Install the gateway daemon and trust the local reverse proxy."""

    run_as_user([GATEWAY_CLI, "onboard", "--install-daemon"], user=user, context="gateway onboarding", dry_run=dry_run)
    run_as_user(
        [GATEWAY_CLI, "config", "set", "gateway.trustedProxies.0", GATEWAY_HOST],
        user=user,
        context="gateway configuration",
        dry_run=dry_run,
    )

    r = run_as_user([GATEWAY_CLI, "--version"], user=user, check=False, dry_run=dry_run)
    version = r.stdout.strip() if r.ok else None
    if version:
        logger.info("Gateway CLI version: %s", version)
    return {"gateway_version": version, "trusted_proxies": [GATEWAY_HOST]}
