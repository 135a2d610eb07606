from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PackageKind(str, Enum):
    """Which installer capability handles a package."""

    BREW = "brew"
    CASK = "cask"
    PIPX = "pipx"
    EXTENSION = "extension"
    MODEL = "model"

    # Library-style vs application-style installs.
    LIBRARY = "brew"
    APPLICATION = "cask"


class OutcomeStatus(str, Enum):
    ALREADY_INSTALLED = "already_installed"
    INSTALLED = "installed"
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class PackageSpec:
    identifier: str
    kind: PackageKind
    category: str = "core"


@dataclass(frozen=True)
class InstallOutcome:
    identifier: str
    kind: PackageKind
    status: OutcomeStatus
    duration: float = 0.0
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


@dataclass(frozen=True)
class RetryPolicy:
    """Per-package retry policy: delay before attempt n+1 is base_delay * backoff**(n-1)."""

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: float = 2.0

    def __post_init__(self) -> None:
        if int(self.max_attempts) < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.backoff < 1:
            raise ValueError(f"backoff must be >= 1, got {self.backoff}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return float(self.base_delay) * (float(self.backoff) ** (attempt - 1))
