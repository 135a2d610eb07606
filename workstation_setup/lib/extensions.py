from __future__ import annotations

import logging
import threading
from typing import Optional, Set

from ..errors import CommandError, InstallError
from ..models import PackageKind
from .command import DEFAULT_TIMEOUT_S, run_cmd

logger = logging.getLogger(__name__)


class EditorExtensionBackend:
    """Extensions for a VS Code compatible editor CLI (code, cursor, ...).

    The installed list is read once and kept up to date as installs succeed.
    """

    kind = PackageKind.EXTENSION

    def __init__(self, editor: str = "code", *, timeout_s: Optional[float] = DEFAULT_TIMEOUT_S) -> None:
        self.editor = editor
        self.timeout_s = timeout_s
        self._lock = threading.Lock()
        self._installed: Optional[Set[str]] = None

    def list_installed(self) -> Set[str]:
        with self._lock:
            if self._installed is None:
                r = run_cmd([self.editor, "--list-extensions"], check=False, timeout_s=self.timeout_s, quiet=True)
                if r.returncode != 0:
                    logger.warning("%s --list-extensions failed (%s)", self.editor, r.returncode)
                    return set()
                self._installed = {line.strip().lower() for line in r.stdout.splitlines() if line.strip()}
            return set(self._installed)

    def is_installed(self, identifier: str) -> bool:
        return identifier.lower() in self.list_installed()

    def install(self, identifier: str) -> None:
        try:
            run_cmd([self.editor, "--install-extension", identifier], timeout_s=self.timeout_s)
        except CommandError as e:
            raise InstallError(
                identifier,
                e.stderr.strip() or f"{self.editor} --install-extension failed",
                kind=self.kind.value,
                returncode=e.returncode,
            ) from e
        with self._lock:
            if self._installed is not None:
                self._installed.add(identifier.lower())
