from __future__ import annotations

import logging
import threading
from typing import Optional, Set

from ..errors import CommandError, InstallError
from ..models import PackageKind
from .command import DEFAULT_TIMEOUT_S, run_cmd

logger = logging.getLogger(__name__)


def parse_pipx_list(stdout: str) -> Set[str]:
    """`pipx list --short` prints "<name> <version>" per line."""

    names: Set[str] = set()
    for line in stdout.splitlines():
        parts = line.split()
        if parts:
            names.add(parts[0].lower())
    return names


class PipxBackend:
    kind = PackageKind.PIPX

    def __init__(self, *, timeout_s: Optional[float] = DEFAULT_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s
        self._lock = threading.Lock()
        self._installed: Optional[Set[str]] = None

    def _installed_names(self) -> Set[str]:
        with self._lock:
            if self._installed is None:
                r = run_cmd(["pipx", "list", "--short"], check=False, timeout_s=self.timeout_s, quiet=True)
                self._installed = parse_pipx_list(r.stdout) if r.returncode == 0 else set()
            return self._installed

    def is_installed(self, identifier: str) -> bool:
        return identifier.lower() in self._installed_names()

    def install(self, identifier: str) -> None:
        try:
            run_cmd(["pipx", "install", identifier], timeout_s=self.timeout_s)
        except CommandError as e:
            raise InstallError(
                identifier,
                e.stderr.strip() or "pipx install failed",
                kind=self.kind.value,
                returncode=e.returncode,
            ) from e
        with self._lock:
            if self._installed is not None:
                self._installed.add(identifier.lower())
