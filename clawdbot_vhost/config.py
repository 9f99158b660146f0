from __future__ import annotations

import logging
import os
import re
import socket
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from .errors import PreconditionError
from .lib.env import DEFAULT_SOURCE_REPO

logger = logging.getLogger(__name__)


class ProxyKind(str, Enum):
    CADDY = "caddy"
    NGINX = "nginx"


class InstallMethod(str, Enum):
    NPM = "npm"
    GIT = "git"
    NPM_ALT = "npm-alt"


# Environment variable names double as the KEY in trailing KEY=VALUE arguments.
ENV_KEYS = ("PROXY", "INSTALL_METHOD", "CLAWDBOT_VERSION", "CERTBOT_EMAIL", "SOURCE_REPO")

# YAML config file keys -> environment key.
FILE_KEYS = {
    "domain": "DOMAIN",
    "proxy": "PROXY",
    "install_method": "INSTALL_METHOD",
    "version": "CLAWDBOT_VERSION",
    "clawdbot_version": "CLAWDBOT_VERSION",
    "certbot_email": "CERTBOT_EMAIL",
    "source_repo": "SOURCE_REPO",
}


@dataclass(frozen=True)
class RunConfiguration:
    domain: str
    proxy: ProxyKind = ProxyKind.CADDY
    install_method: InstallMethod = InstallMethod.NPM
    app_version: str = "latest"
    certbot_email: Optional[str] = None
    source_repo: str = DEFAULT_SOURCE_REPO

    @property
    def public_url(self) -> str:
        return f"https://{self.domain}"

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["proxy"] = self.proxy.value
        d["install_method"] = self.install_method.value
        return d


def parse_overrides(items: Iterable[str]) -> Dict[str, str]:
    """Parse trailing KEY=VALUE arguments (e.g. INSTALL_METHOD=git)."""

    out: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip().upper()
        if not sep or key not in ENV_KEYS:
            raise PreconditionError(
                f"Unrecognized argument '{item}'. Expected KEY=VALUE with KEY in {', '.join(ENV_KEYS)}."
            )
        out[key] = value.strip()
    return out


def load_config_file(path: str) -> Dict[str, str]:
    p = Path(path)
    if not p.exists():
        raise PreconditionError(f"Config file not found: {path}")
    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise PreconditionError("Config file must be YAML (.yaml/.yml)")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise PreconditionError(f"Config file must contain a mapping: {path}")

    out: Dict[str, str] = {}
    for k, v in raw.items():
        key = FILE_KEYS.get(str(k).lower())
        if key is None:
            raise PreconditionError(f"Unknown config key '{k}' in {path}")
        if v is not None:
            out[key] = str(v)
    return out


def default_domain() -> str:
    """Host's fully qualified name, then its short hostname."""

    for name in (socket.getfqdn(), socket.gethostname()):
        name = (name or "").strip()
        if name:
            return name
    return ""


_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def normalize_domain(value: str) -> str:
    """Lowercased `host[:port]`, with IDN hosts in their ASCII form.

    Each host label must be 1-63 letters, digits or inner hyphens; the whole
    name at most 253 characters; the port, when given, within 1-65535.
    """

    raw = value.strip().rstrip(".")
    host, sep, port = raw.partition(":")
    try:
        ascii_host = host.encode("idna").decode("ascii").lower()
    except UnicodeError:
        ascii_host = ""

    labels = ascii_host.split(".")
    if not ascii_host or len(ascii_host) > 253 or not all(_LABEL_RE.match(label) for label in labels):
        raise PreconditionError(f"Invalid domain '{value}'. Expected a host name such as gateway.example.com.")
    if sep and not (port.isdigit() and 0 < int(port) <= 65535):
        raise PreconditionError(f"Invalid port in domain '{value}'.")
    return f"{ascii_host}:{port}" if sep else ascii_host


def _parse_proxy(value: str) -> ProxyKind:
    v = value.strip().lower()
    try:
        return ProxyKind(v)
    except ValueError:
        raise PreconditionError(f"Unsupported proxy mode '{v}'. Use 'caddy' or 'nginx'.") from None


def _parse_install_method(value: str) -> InstallMethod:
    v = value.strip().lower()
    try:
        return InstallMethod(v)
    except ValueError:
        raise PreconditionError(
            f"Unsupported install method '{v}'. Use 'npm', 'git', or 'npm-alt'."
        ) from None


def load_run_config(
    *,
    domain: Optional[str] = None,
    overrides: Iterable[str] = (),
    flags: Optional[Mapping[str, Optional[str]]] = None,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunConfiguration:
    """Build the run configuration.

    Precedence (lowest first): defaults, YAML file, environment,
    KEY=VALUE arguments, explicit flags. The domain argument wins over a
    DOMAIN key; the host name is the last resort.
    """

    env = os.environ if environ is None else environ

    values: Dict[str, str] = {}
    if config_path:
        values.update(load_config_file(config_path))
    for key in ENV_KEYS:
        if env.get(key):
            values[key] = env[key]
    values.update(parse_overrides(overrides))
    for key, v in (flags or {}).items():
        if v is not None:
            values[key] = v

    resolved_domain = (domain or values.get("DOMAIN") or "").strip() or default_domain()
    if not resolved_domain:
        raise PreconditionError("Failed to determine domain (hostname). Pass one explicitly.")

    cfg = RunConfiguration(
        domain=normalize_domain(resolved_domain),
        proxy=_parse_proxy(values.get("PROXY") or ProxyKind.CADDY.value),
        install_method=_parse_install_method(values.get("INSTALL_METHOD") or InstallMethod.NPM.value),
        app_version=(values.get("CLAWDBOT_VERSION") or "").strip() or "latest",
        certbot_email=(values.get("CERTBOT_EMAIL") or "").strip() or None,
        source_repo=(values.get("SOURCE_REPO") or "").strip() or DEFAULT_SOURCE_REPO,
    )
    logger.info(
        "Configuration: domain=%s proxy=%s install_method=%s version=%s",
        cfg.domain,
        cfg.proxy.value,
        cfg.install_method.value,
        cfg.app_version,
    )
    return cfg
