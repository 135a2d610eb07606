from __future__ import annotations

from typing import List, Optional, Sequence


class SetupError(RuntimeError):
    """Base exception for workstation-setup errors."""


class ConfigNotFound(SetupError, FileNotFoundError):
    pass


class ConfigMalformed(SetupError, ValueError):
    pass


class CommandError(SetupError):
    """An external command exited non-zero (or could not be started)."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr:
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class InstallError(SetupError):
    """A single install attempt failed. Retried by the installer core."""

    def __init__(
        self,
        identifier: str,
        message: str,
        *,
        kind: Optional[str] = None,
        returncode: Optional[int] = None,
    ) -> None:
        self.identifier = identifier
        self.kind = kind
        self.returncode = returncode
        super().__init__(f"{identifier}: {message}")


class PackageFailed(SetupError):
    """Raised on request when a finished run left packages in the failed state."""

    def __init__(self, identifiers: Sequence[str]) -> None:
        self.identifiers: List[str] = list(identifiers)
        super().__init__(f"{len(self.identifiers)} package(s) failed: {', '.join(self.identifiers)}")
