from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..context import RunContext
from ..lib.command import command_exists
from ..models import PackageKind, PackageSpec
from ..state_store import add_warning, record_ledger

logger = logging.getLogger(__name__)


class InstallExtensionsStep:
    step_id = "50_install_extensions"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def _roles(self) -> List[str]:
        cfg = self.ctx.config
        if self.ctx.only:
            return [self.ctx.only]
        configured = set((cfg.raw.get("categories") or {}).keys())
        # Roles that name a category follow its enabled flag; other roles always apply.
        return [r for r in cfg.extension_roles if r not in configured or cfg.is_category_enabled(r)]

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        specs: List[PackageSpec] = []
        for role in self._roles():
            specs.extend(self.ctx.config.get_extensions(role))
        if not specs:
            return state

        for editor in self.ctx.config.editors:
            if self.ctx.cancel.is_set():
                break
            if not self.ctx.dry_run and not command_exists(editor):
                logger.warning("%s command not found, skipping", editor)
                add_warning(state, step=self.step_id, reason="editor_missing", editor=editor)
                continue

            group = f"extension:{editor}"
            logger.info("Installing extensions for %s...", editor)
            backend = self.ctx.backend(PackageKind.EXTENSION, editor=editor)
            ledger = self.ctx.install(specs, PackageKind.EXTENSION, group=group, backend=backend)
            record_ledger(state, self.step_id, ledger, group=group)
        return state
