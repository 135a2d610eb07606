from __future__ import annotations

import logging
from typing import Optional

from ..errors import CommandError, InstallError, SetupError
from ..models import PackageKind
from .command import DEFAULT_TIMEOUT_S, command_exists, run_cmd

logger = logging.getLogger(__name__)


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class BrewBackend:
    """Homebrew formulae (cask=False) or casks (cask=True)."""

    def __init__(self, *, cask: bool = False, timeout_s: Optional[float] = DEFAULT_TIMEOUT_S) -> None:
        self.cask = cask
        self.kind = PackageKind.CASK if cask else PackageKind.BREW
        self.timeout_s = timeout_s

    def _args(self, verb: str, identifier: str) -> list[str]:
        argv = ["brew", verb]
        if self.cask:
            argv.append("--cask")
        argv.append(identifier)
        return argv

    def is_installed(self, identifier: str) -> bool:
        r = run_cmd(self._args("list", identifier), check=False, timeout_s=self.timeout_s, quiet=True)
        return r.returncode == 0

    def install(self, identifier: str) -> None:
        try:
            run_cmd(self._args("install", identifier), timeout_s=self.timeout_s)
        except CommandError as e:
            raise InstallError(
                identifier,
                _tail(e.stderr) or f"brew exited {e.returncode}",
                kind=self.kind.value,
                returncode=e.returncode,
            ) from e


def ensure_homebrew(*, dry_run: bool = False) -> str:
    """Return the installed Homebrew version line.

    Homebrew itself is installed by the operator (it needs an interactive
    sudo prompt and the Xcode command line tools).
    """

    if not command_exists("brew"):
        if dry_run:
            logger.info("DRY RUN: Homebrew not found; a real run would stop here")
            return ""
        raise SetupError(
            "Homebrew is not installed. Install it from https://brew.sh and re-run."
        )
    r = run_cmd(["brew", "--version"], check=False, quiet=True)
    version = (r.stdout.splitlines() or [""])[0].strip()
    logger.info("Homebrew already installed: %s", version or "unknown version")
    return version


def brew_update(*, dry_run: bool = False, timeout_s: Optional[float] = DEFAULT_TIMEOUT_S) -> bool:
    """Update Homebrew metadata. Failure is logged and tolerated."""

    r = run_cmd(["brew", "update"], check=False, timeout_s=timeout_s, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("Homebrew update failed (%s), continuing...", r.returncode)
        return False
    return True
