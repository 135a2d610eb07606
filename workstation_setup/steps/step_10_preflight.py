from __future__ import annotations

import logging
import platform
from typing import Any, Dict

from ..context import RunContext
from ..errors import SetupError
from ..lib import system
from ..models import PackageKind
from ..state_store import add_warning

logger = logging.getLogger(__name__)

MIN_FREE_DISK_GB = 10


class PreflightStep:
    step_id = "10_preflight"

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        if system.is_root():
            if not self.ctx.dry_run:
                raise SetupError("Do not run workstation-setup as root")
            logger.warning("Running as root (allowed for dry run only)")

        host = state.setdefault("host", {})
        host["system"] = platform.system()
        host["machine"] = platform.machine()
        host["cpu_count"] = self.ctx.cpu_count

        if not system.is_macos():
            logger.warning("This tool targets macOS; detected %s", host["system"])
            add_warning(state, check="os", reason="not_macos", detected=host["system"])
        elif system.is_apple_silicon():
            logger.info("Running on Apple Silicon (arm64)")
        else:
            logger.info("Running on Intel (%s)", host["machine"])

        free_gb = system.free_disk_gb(".")
        host["free_disk_gb"] = round(free_gb, 1)
        if free_gb < MIN_FREE_DISK_GB:
            logger.warning(
                "Less than %dGB disk space available (%.1fGB). Installation may fail.",
                MIN_FREE_DISK_GB,
                free_gb,
            )
            add_warning(state, check="disk", reason="low_disk_space", free_gb=round(free_gb, 1))

        online = system.is_online(dry_run=self.ctx.dry_run)
        host["online"] = online
        if not online:
            logger.warning("Network check to github.com failed. Some downloads may fail.")
            add_warning(state, check="network", reason="offline")

        logger.info(
            "Preflight checks completed (cpu=%d, brew jobs=%d, cask jobs=%d)",
            self.ctx.cpu_count,
            self.ctx.jobs_for(PackageKind.BREW),
            self.ctx.jobs_for(PackageKind.CASK),
        )
        return state
