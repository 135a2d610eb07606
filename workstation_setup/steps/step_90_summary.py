from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import RunContext
from ..reporter import print_summary, summarize_run

logger = logging.getLogger(__name__)


class SummaryStep:
    step_id = "90_summary"
    always_run = True

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        lines = summarize_run(self.ctx.ledgers, self.ctx.elapsed())
        print_summary(lines, stream=self.ctx.stream)
        state.setdefault("execution", {})["summary"] = lines

        if self.ctx.dry_run:
            logger.info("This was a dry run. No changes were made.")
        elif self.ctx.has_failures:
            logger.warning("Some packages failed; re-run to retry them (installed packages are skipped)")
        else:
            logger.info("Setup completed!")
        return state
