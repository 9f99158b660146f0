from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Mapping, Optional, Sequence

from .config import ProxyKind, RunConfiguration, load_run_config
from .errors import PreconditionError, ProvisioningError
from .lib.command import command_exists, invoking_user
from .lib.env import PATHS, Paths
from .lib.osdetect import PlatformProfile, detect_platform
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import InstallCtx, run_pipeline
from .state_store import begin_run, load_state, save_state
from .steps import (
    ConfigureApplicationStep,
    ConfigureFirewallStep,
    ConfigureProxyStep,
    HealthChecksStep,
    InstallApplicationStep,
    InstallPrerequisitesStep,
    SummaryStep,
)

logger = logging.getLogger(__name__)


DEFAULT_STATE_PATH = PATHS.state_default

EPILOG = """\
Supported platforms:
  Debian/Ubuntu/Kali/Pop!_OS/Linux Mint (apt)
  RHEL/CentOS/Rocky Linux/AlmaLinux/Oracle Linux/Fedora (dnf, yum)
  Arch Linux/Manjaro (pacman)
  openSUSE/SUSE (zypper)
  macOS (Homebrew; caddy only)

Environment (also accepted as trailing KEY=VALUE arguments):
  PROXY=caddy|nginx               reverse proxy (default caddy, automatic TLS)
  INSTALL_METHOD=npm|git|npm-alt  npm: clawdbot@VERSION, npm-alt: openclaw@VERSION,
                                  git: build from SOURCE_REPO
  CLAWDBOT_VERSION=latest         package version for npm/npm-alt
  CERTBOT_EMAIL=you@example.com   Let's Encrypt account email (nginx only)
  SOURCE_REPO=URL                 repository for INSTALL_METHOD=git

WARNING (INSTALL_METHOD=git): the checkout lives in /opt/openclawbot-svc-plus.
If it already exists it is fetched and HARD-RESET to origin/main; any local
changes in that directory are permanently discarded.

Examples:
  clawdbot-vhost gateway.example.com
  clawdbot-vhost gateway.example.com INSTALL_METHOD=git
  PROXY=nginx CERTBOT_EMAIL=admin@example.com clawdbot-vhost gateway.example.com
"""


def build_steps():
    return [
        InstallPrerequisitesStep(),
        ConfigureFirewallStep(),
        InstallApplicationStep(),
        ConfigureApplicationStep(),
        ConfigureProxyStep(),
        HealthChecksStep(),
        SummaryStep(),
    ]


def preflight(config: RunConfiguration, profile: PlatformProfile, *, user: str) -> None:
    """Reject combinations that cannot succeed, before anything is changed."""

    if profile.is_darwin:
        if config.proxy is ProxyKind.NGINX:
            raise PreconditionError("nginx + Certbot is not supported on macOS in this installer. Use PROXY=caddy.")
        if not command_exists("brew"):
            raise PreconditionError("Homebrew is required on macOS. Install it from https://brew.sh and re-run.")

    if not user or user == "root":
        raise PreconditionError("Run this installer as a non-root user (with sudo available).")


def _save_state(path: str, state: Dict[str, Any]) -> None:
    try:
        save_state(path, state)
    except OSError as e:
        logger.warning("Could not write run record %s: %s", path, e)


def run(
    *,
    domain: Optional[str] = None,
    overrides: Sequence[str] = (),
    flags: Optional[Mapping[str, Optional[str]]] = None,
    config_path: Optional[str] = None,
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    paths: Paths = PATHS,
    dry_run: bool = False,
    verbose: bool = False,
) -> Dict[str, Any]:
    """Provision this host end to end and return the run record."""

    actual_log_path = configure_logging(log_path=log_path, level=logging.DEBUG if verbose else logging.INFO)

    # Everything up to InstallCtx is read-only.
    config = load_run_config(domain=domain, overrides=overrides, flags=flags, config_path=config_path)
    profile = detect_platform(os_release_path=paths.os_release)
    user = invoking_user()
    preflight(config, profile, user=user)

    ctx = InstallCtx(config=config, profile=profile, user=user, paths=paths, dry_run=dry_run)
    logger.info("==> Domain: %s", config.domain)

    try:
        previous = load_state(state_path)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable run record %s: %s", state_path, e)
        previous = {}

    state = begin_run(previous)
    state["config"] = config.as_dict()
    state["platform"] = profile.as_dict()
    state["execution"]["paths"] = {"log_path_requested": log_path, "log_path_actual": actual_log_path}
    state["execution"]["dry_run"] = dry_run

    try:
        result = run_pipeline(ctx=ctx, state=state, steps=build_steps())
        state = result.state
        state["execution"]["ran_steps"] = result.ran_steps
        return state
    except Exception as e:
        logger.exception("Provisioning failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": (state.get("execution") or {}).get("current_step"),
                "error": str(e),
            }
        )
        raise
    finally:
        _save_state(state_path, state)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="clawdbot-vhost",
        description="Provision this host to serve the clawdbot gateway behind a TLS reverse proxy.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("domain", nargs="?", default=None, help="Public domain (default: this host's name)")
    p.add_argument("overrides", nargs="*", metavar="KEY=VALUE", help="Same keys as the environment variables")
    p.add_argument("--proxy", choices=[k.value for k in ProxyKind], default=None)
    p.add_argument("--install-method", default=None, help="npm | git | npm-alt")
    p.add_argument("--app-version", default=None, help="Package version for npm/npm-alt (default latest)")
    p.add_argument("--email", default=None, help="Certbot registration email")
    p.add_argument("--source-repo", default=None, help="Git URL for --install-method git")
    p.add_argument("--config", default=None, help="YAML file with the same settings")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to run record (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--dry-run", action="store_true", help="Log every command without executing it")
    p.add_argument("--verbose", action="store_true", help="Log command output")

    args = p.parse_args(argv)

    # A lone KEY=VALUE lands in the domain slot.
    domain, overrides = args.domain, list(args.overrides)
    if domain and "=" in domain:
        overrides.insert(0, domain)
        domain = None

    try:
        state = run(
            domain=domain,
            overrides=overrides,
            flags={
                "PROXY": args.proxy,
                "INSTALL_METHOD": args.install_method,
                "CLAWDBOT_VERSION": args.app_version,
                "CERTBOT_EMAIL": args.email,
                "SOURCE_REPO": args.source_repo,
            },
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            dry_run=bool(args.dry_run),
            verbose=bool(args.verbose),
        )
    except PreconditionError as e:
        logger.error("%s", e)
        return 1
    except ProvisioningError:
        return 1

    sys.stdout.write((state.get("execution") or {}).get("summary") or "")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
