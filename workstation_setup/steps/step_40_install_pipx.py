from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import RunContext
from ..lib.command import command_exists
from ..models import PackageKind
from ..state_store import add_warning, record_ledger

logger = logging.getLogger(__name__)


class InstallPipxStep:
    step_id = "40_install_pipx"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        specs = self.ctx.config.pipx_packages
        if not specs:
            return state

        if not self.ctx.dry_run and not command_exists("pipx"):
            logger.warning("pipx not found. Skipping Python packages installation.")
            add_warning(state, step=self.step_id, reason="pipx_missing")
            return state

        ledger = self.ctx.install(specs, PackageKind.PIPX)
        record_ledger(state, self.step_id, ledger, group=PackageKind.PIPX.value)
        return state
