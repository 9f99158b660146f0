from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.app import strategy_for
from ..pipeline import InstallCtx
from ..state_store import record_decision

logger = logging.getLogger(__name__)


class InstallApplicationStep:
    step_id = "30_install_application"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        strategy = strategy_for(ctx.config, user=ctx.user, paths=ctx.paths, dry_run=ctx.dry_run)
        result = strategy.install()
        record_decision(state, "application", result)
        logger.info("Application installed via %s", result.get("strategy"))
        return state
