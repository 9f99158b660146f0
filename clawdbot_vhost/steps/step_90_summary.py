from __future__ import annotations

import logging
from typing import Any, Dict, Sequence

from ..lib.env import GATEWAY_CLI, GATEWAY_UPSTREAM
from ..pipeline import InstallCtx

logger = logging.getLogger(__name__)


def render_summary(ctx: InstallCtx, warnings: Sequence[str] = ()) -> str:
    lines = [
        "",
        "Done.",
        f"Gateway is listening on http://{GATEWAY_UPSTREAM} and proxied via {ctx.config.public_url}.",
        f"Access control and TLS are handled by {ctx.config.proxy.value.upper()}.",
    ]
    if warnings:
        lines += ["", "Warnings:"] + [f"  - {w}" for w in warnings]
    lines += [
        "",
        "If you need to tweak config later:",
        f"  - `{GATEWAY_CLI} config get gateway.trustedProxies`",
        f"  - `{GATEWAY_CLI} gateway status`",
    ]
    if ctx.profile.is_darwin:
        lines.append("  - `tail -f /tmp/clawdbot/clawdbot-gateway.log`")
    else:
        lines.append("  - `journalctl --user -u clawdbot-gateway --no-pager`")
    return "\n".join(lines) + "\n"


class SummaryStep:
    step_id = "90_summary"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        exe = state.setdefault("execution", {})
        exe["summary"] = render_summary(ctx, exe.get("warnings") or [])
        logger.info("Finalize summary: %s", exe.get("decisions") or {})
        return state
