from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.firewall import firewall_for
from ..pipeline import InstallCtx
from ..state_store import record_decision

logger = logging.getLogger(__name__)


class ConfigureFirewallStep:
    step_id = "20_configure_firewall"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        fw = firewall_for(ctx.profile, paths=ctx.paths, dry_run=ctx.dry_run)
        opened = fw.configure()
        record_decision(state, "firewall", {"tool": fw.name, "open_ports": opened})
        logger.info("Firewall=%s open=%s", fw.name, ",".join(opened) or "-")
        return state
