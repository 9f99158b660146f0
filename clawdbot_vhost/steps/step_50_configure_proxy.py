from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.proxy import proxy_for
from ..pipeline import InstallCtx
from ..state_store import add_warning, record_decision

logger = logging.getLogger(__name__)


class ConfigureProxyStep:
    step_id = "50_configure_proxy"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        proxy = proxy_for(ctx.config, ctx.profile, paths=ctx.paths, dry_run=ctx.dry_run)
        result = proxy.configure()
        for w in result.pop("warnings", []):
            add_warning(state, w)
        record_decision(state, "proxy", {"kind": ctx.config.proxy.value, **result})
        logger.info("Proxy %s configured (%s)", ctx.config.proxy.value, result.get("config_path"))
        return state
