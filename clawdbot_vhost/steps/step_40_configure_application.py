from __future__ import annotations

from typing import Any, Dict

from ..lib.app import configure_gateway
from ..pipeline import InstallCtx
from ..state_store import record_decision


class ConfigureApplicationStep:
    step_id = "40_configure_application"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        record_decision(state, "gateway", configure_gateway(user=ctx.user, dry_run=ctx.dry_run))
        return state
