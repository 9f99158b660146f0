from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Type

from ..config import ProxyKind, RunConfiguration
from .command import command_exists, run_cmd, run_privileged, write_privileged
from .env import GATEWAY_UPSTREAM, PATHS, Paths
from .osdetect import PackageManagerKind, PlatformProfile

logger = logging.getLogger(__name__)


def render_caddyfile(domain: str) -> str:
    return f"{domain} {{\n  reverse_proxy {GATEWAY_UPSTREAM}\n}}\n"


_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def site_addresses(caddyfile_text: str) -> List[List[str]]:
    """Addresses of every top-level site block, in file order.

    The global options block and `(snippet)` definitions are skipped. A file
    with no braces at all is a single site whose addresses are its first line.
    """

    blocks: List[List[str]] = []
    depth = 0
    first_line = ""
    for raw in caddyfile_text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        first_line = first_line or line
        if depth == 0 and line.endswith("{"):
            head = line[:-1].strip()
            if head and not head.startswith("("):
                blocks.append([a for a in re.split(r"[\s,]+", head) if a])
        depth = max(depth + line.count("{") - line.count("}"), 0)

    if not blocks and first_line and "{" not in caddyfile_text:
        blocks.append([a for a in re.split(r"[\s,]+", first_line) if a])
    return blocks


def address_host(address: str) -> str:
    """Host part of a Caddy site address: no scheme, path or port, lowercased."""

    host = _SCHEME_RE.sub("", address.strip()).split("/", 1)[0]
    if not host.startswith("["):
        name, sep, port = host.rpartition(":")
        if sep and port.isdigit():
            host = name
    return host.rstrip(".").lower()


def render_nginx_vhost(domain: str) -> str:
    return "\n".join(
        [
            "server {",
            "  listen 80;",
            f"  server_name {domain};",
            "",
            "  location / {",
            f"    proxy_pass http://{GATEWAY_UPSTREAM};",
            "    proxy_http_version 1.1;",
            "    proxy_set_header Host $host;",
            "    proxy_set_header X-Real-IP $remote_addr;",
            "    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;",
            "    proxy_set_header X-Forwarded-Proto $scheme;",
            "    proxy_set_header Upgrade $http_upgrade;",
            '    proxy_set_header Connection "upgrade";',
            "  }",
            "}",
            "",
        ]
    )


def certbot_argv(domain: str, email: str | None) -> List[str]:
    if email:
        email_args = ["--email", email, "--agree-tos", "--no-eff-email"]
    else:
        email_args = ["--register-unsafely-without-email"]
    return ["certbot", "--nginx", "--non-interactive", *email_args, "--redirect", "-d", domain]


class ReverseProxy:
    kind: ProxyKind

    def __init__(
        self,
        config: RunConfiguration,
        profile: PlatformProfile,
        *,
        paths: Paths = PATHS,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.profile = profile
        self.paths = paths
        self.dry_run = dry_run

    def _priv(self, argv, **kwargs):
        kwargs.setdefault("context", f"{self.kind.value} configuration")
        return run_privileged(argv, dry_run=self.dry_run, **kwargs)

    def configure(self) -> Dict[str, Any]:
        raise NotImplementedError


class CaddyProxy(ReverseProxy):
    """Automatic TLS: a one-block Caddyfile, then (re)start the service."""

    kind = ProxyKind.CADDY

    def caddyfile_path(self) -> str:
        if self.profile.is_darwin and command_exists("brew"):
            prefix = run_cmd(["brew", "--prefix"], dry_run=self.dry_run).stdout.strip()
            if prefix:
                return str(Path(prefix) / "etc" / "Caddyfile")
        return self.paths.caddyfile

    def _existing(self, path: str) -> str:
        p = Path(path)
        return p.read_text(encoding="utf-8", errors="ignore") if p.is_file() else ""

    def plan(self, existing: str) -> str:
        """`keep`, `replace` or `append` for the Caddyfile's current contents.

        A file that already serves the domain (any scheme or port) is kept as
        is. A file holding only catch-all sites such as the packaged `:80`
        default is replaced. Other sites are kept and ours is appended.
        """

        domain = address_host(self.config.domain)
        blocks = site_addresses(existing)
        hosts = [address_host(a) for addresses in blocks for a in addresses]
        if domain in hosts:
            return "keep"
        if any(hosts):
            return "append"
        return "replace"

    def _start(self, caddyfile: str) -> None:
        if not self.profile.is_darwin:
            self._priv(["systemctl", "enable", "--now", "caddy"])
            self._priv(["systemctl", "reload", "caddy"])
        elif command_exists("brew"):
            r = run_cmd(["brew", "services", "start", "caddy"], check=False, dry_run=self.dry_run)
            if not r.ok:
                run_cmd(["brew", "services", "restart", "caddy"], context="starting caddy", dry_run=self.dry_run)
        else:
            self._priv(["caddy", "start", "--config", caddyfile])

    def configure(self) -> Dict[str, Any]:
        caddyfile = self.caddyfile_path()
        existing = self._existing(caddyfile)
        action = self.plan(existing)
        site = render_caddyfile(self.config.domain)

        if action == "keep":
            logger.info("%s already serves %s; leaving it untouched", caddyfile, self.config.domain)
        elif action == "append":
            logger.info("%s serves other sites; appending %s", caddyfile, self.config.domain)
            write_privileged(caddyfile, existing.rstrip("\n") + "\n\n" + site, dry_run=self.dry_run)
        else:
            write_privileged(caddyfile, site, dry_run=self.dry_run)
        self._start(caddyfile)
        return {"config_path": caddyfile, "written": action != "keep", "action": action, "warnings": []}


class NginxProxy(ReverseProxy):
    """nginx vhost + certbot. Certificate failures leave the site on plain HTTP."""

    kind = ProxyKind.NGINX

    # Debian/SUSE packaging: sites-available + sites-enabled symlink.
    SITES_LAYOUT = {PackageManagerKind.APT, PackageManagerKind.ZYPPER}

    @property
    def vhost_name(self) -> str:
        return f"clawdbot-{self.config.domain}.conf"

    def _write_sites_layout(self) -> Dict[str, Any]:
        available = Path(self.paths.nginx_dir) / "sites-available"
        enabled = Path(self.paths.nginx_dir) / "sites-enabled"
        vhost = available / self.vhost_name

        self._priv(["mkdir", "-p", str(available), str(enabled)])
        written = False
        if vhost.exists():
            logger.info("%s exists; keeping it", vhost)
        else:
            write_privileged(str(vhost), render_nginx_vhost(self.config.domain), dry_run=self.dry_run)
            written = True
        self._priv(["ln", "-sf", str(vhost), str(enabled / self.vhost_name)])
        return {"config_path": str(vhost), "written": written}

    def _write_confd_layout(self) -> Dict[str, Any]:
        confd = Path(self.paths.nginx_dir) / "conf.d"
        vhost = confd / self.vhost_name
        self._priv(["mkdir", "-p", str(confd)])
        write_privileged(str(vhost), render_nginx_vhost(self.config.domain), dry_run=self.dry_run)
        return {"config_path": str(vhost), "written": True}

    def issue_certificate(self) -> List[str]:
        r = run_privileged(
            certbot_argv(self.config.domain, self.config.certbot_email),
            check=False,
            dry_run=self.dry_run,
        )
        if r.ok:
            return []
        msg = f"certbot failed for {self.config.domain} ({r.returncode}); site stays on plain HTTP"
        logger.warning("%s\n%s", msg, r.stderr.strip())
        return [msg]

    def configure(self) -> Dict[str, Any]:
        if self.profile.package_manager in self.SITES_LAYOUT:
            result = self._write_sites_layout()
        else:
            result = self._write_confd_layout()

        self._priv(["nginx", "-t"])
        self._priv(["systemctl", "enable", "--now", "nginx"])
        self._priv(["systemctl", "reload", "nginx"])

        result["warnings"] = self.issue_certificate()
        return result


PROXIES: Dict[ProxyKind, Type[ReverseProxy]] = {
    ProxyKind.CADDY: CaddyProxy,
    ProxyKind.NGINX: NginxProxy,
}


def proxy_for(
    config: RunConfiguration,
    profile: PlatformProfile,
    *,
    paths: Paths = PATHS,
    dry_run: bool = False,
) -> ReverseProxy:
    return PROXIES[config.proxy](config, profile, paths=paths, dry_run=dry_run)
