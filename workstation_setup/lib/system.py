from __future__ import annotations

import logging
import os
import platform
import shutil

from .command import run_cmd

logger = logging.getLogger(__name__)


def cpu_count() -> int:
    return os.cpu_count() or 1


def is_macos() -> bool:
    return platform.system() == "Darwin"


def is_apple_silicon() -> bool:
    return is_macos() and platform.machine() == "arm64"


def is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def free_disk_gb(path: str = ".") -> float:
    return shutil.disk_usage(path).free / (1024 ** 3)


def is_online(host: str = "github.com", *, dry_run: bool = False) -> bool:
    """Best-effort online check."""

    r = run_cmd(["ping", "-c", "1", "-W", "2", host], check=False, timeout_s=10, dry_run=dry_run, quiet=True)
    return r.returncode == 0
