from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import RunContext
from ..lib.brew import brew_update, ensure_homebrew

logger = logging.getLogger(__name__)


class HomebrewStep:
    step_id = "20_homebrew"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        version = ensure_homebrew(dry_run=self.ctx.dry_run)
        state.setdefault("host", {})["homebrew"] = version or None

        logger.info("Updating Homebrew...")
        brew_update(dry_run=self.ctx.dry_run, timeout_s=self.ctx.config.timeout_seconds)
        return state
