from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..context import RunContext
from ..models import PackageKind, PackageSpec
from ..state_store import record_ledger

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    """Homebrew formulae, then casks, for the selected categories.

    The union over categories is installed with one pool per kind so a
    package listed under two categories is installed once.
    """

    step_id = "30_install_packages"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = self.ctx.config
        categories = self.ctx.selected_categories()
        plan = state.setdefault("execution", {}).setdefault("plan", {})
        plan["categories"] = categories

        for kind in (PackageKind.BREW, PackageKind.CASK):
            specs: List[PackageSpec] = []
            for category in categories:
                found = cfg.get_packages(category, kind)
                if found:
                    logger.info(
                        "%s %s packages: %s",
                        category,
                        kind.value,
                        " ".join(s.identifier for s in found),
                    )
                specs.extend(found)

            if not specs:
                continue
            if self.ctx.cancel.is_set():
                break

            ledger = self.ctx.install(specs, kind)
            record_ledger(state, self.step_id, ledger, group=kind.value)

        return state
