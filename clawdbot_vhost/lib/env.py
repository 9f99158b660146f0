from __future__ import annotations

from dataclasses import dataclass

GATEWAY_HOST = "127.0.0.1"
GATEWAY_PORT = 18789
GATEWAY_UPSTREAM = f"{GATEWAY_HOST}:{GATEWAY_PORT}"
GATEWAY_CLI = "clawdbot"

DEFAULT_SOURCE_REPO = "https://github.com/cloud-neutral-toolkit/openclawbot.svc.plus.git"
DEFAULT_SOURCE_BRANCH = "main"
NODE_MIN_MAJOR = 24


@dataclass(frozen=True)
class Paths:
    state_default: str = "/var/lib/clawdbot-vhost/state.json"
    log_default: str = "/var/log/clawdbot-vhost.log"
    os_release: str = "/etc/os-release"
    source_dir: str = "/opt/openclawbot-svc-plus"
    caddyfile: str = "/etc/caddy/Caddyfile"
    nginx_dir: str = "/etc/nginx"
    iptables_rules: str = "/etc/iptables/iptables.rules"
    download_dir: str = "/tmp"


PATHS = Paths()
