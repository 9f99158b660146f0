from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.env import GATEWAY_PORT
from ..lib.net import check_reachable
from ..pipeline import InstallCtx
from ..state_store import add_warning, record_decision

logger = logging.getLogger(__name__)

LOCAL_URL = f"http://127.0.0.1:{GATEWAY_PORT}"


class HealthChecksStep:
    """Probe the gateway locally and through the proxy. Never fails the run."""

    step_id = "60_health_checks"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        public_url = ctx.config.public_url
        if ctx.dry_run:
            logger.info("Would check %s and %s", LOCAL_URL, public_url)
            record_decision(state, "health", {"local": None, "public": None})
            return state

        local_ok = check_reachable(LOCAL_URL)
        if not local_ok:
            msg = "Local gateway health check failed."
            logger.warning(msg)
            add_warning(state, msg)

        public_ok = check_reachable(public_url)
        if not public_ok:
            msg = f"Public health check failed for {public_url}. TLS might not be active yet."
            logger.warning(msg)
            add_warning(state, msg)

        record_decision(state, "health", {"local": local_ok, "public": public_ok})
        return state
