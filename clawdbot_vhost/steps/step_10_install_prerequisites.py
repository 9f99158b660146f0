from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import InstallMethod
from ..lib.pkg import package_manager_for, required_packages
from ..lib.runtime import ensure_pnpm, ensure_runtime
from ..pipeline import InstallCtx
from ..state_store import record_decision

logger = logging.getLogger(__name__)


class InstallPrerequisitesStep:
    step_id = "10_install_prerequisites"

    def run(self, ctx: InstallCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        pm = package_manager_for(ctx.profile, dry_run=ctx.dry_run)
        packages = required_packages(ctx.profile, ctx.config.proxy)

        if not ctx.profile.is_darwin:
            pm.refresh_index()
        pm.ensure_packages(packages)
        record_decision(state, "system_packages", packages)

        node = ensure_runtime(ctx.profile, paths=ctx.paths, dry_run=ctx.dry_run)
        record_decision(state, "node", node)

        # pnpm is only used to build from source.
        if ctx.config.install_method is InstallMethod.GIT:
            ensure_pnpm(user=ctx.user, dry_run=ctx.dry_run)
            record_decision(state, "pnpm", "activated")

        logger.info("Prerequisites ready (%d packages, node action=%s)", len(packages), node.get("action"))
        return state
