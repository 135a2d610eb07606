from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import RunContext
from ..lib.command import command_exists
from ..models import PackageKind
from ..state_store import add_warning, record_ledger

logger = logging.getLogger(__name__)


class PullModelsStep:
    step_id = "60_pull_models"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        specs = self.ctx.config.ollama_models
        if not specs:
            return state

        if not self.ctx.dry_run and not command_exists("ollama"):
            logger.warning("Ollama not installed. Skipping model pulls.")
            add_warning(state, step=self.step_id, reason="ollama_missing")
            return state

        ledger = self.ctx.install(specs, PackageKind.MODEL)
        record_ledger(state, self.step_id, ledger, group=PackageKind.MODEL.value)
        return state
