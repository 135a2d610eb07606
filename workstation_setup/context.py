from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TextIO

from .backends import Backend, BackendFactory, default_backend_factory
from .config import SetupConfig
from .installer import PackageInstaller, dedupe_specs
from .ledger import OutcomeLedger
from .lib.system import cpu_count
from .models import PackageKind, PackageSpec, RetryPolicy
from .reporter import StatusReporter

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a step needs besides the persisted state."""

    config: SetupConfig
    dry_run: bool = False
    only: Optional[str] = None
    max_jobs: Optional[int] = None
    retry_attempts: Optional[int] = None
    retry_delay: Optional[float] = None
    cancel: threading.Event = field(default_factory=threading.Event)
    backend_factory: BackendFactory = default_backend_factory
    stream: Optional[TextIO] = None
    cpu_count: int = field(default_factory=cpu_count)
    started: float = field(default_factory=time.monotonic)
    ledgers: Dict[str, OutcomeLedger] = field(default_factory=dict)

    def retry_policy(self) -> RetryPolicy:
        base = self.config.retry_policy()
        return RetryPolicy(
            max_attempts=self.retry_attempts if self.retry_attempts is not None else base.max_attempts,
            base_delay=self.retry_delay if self.retry_delay is not None else base.base_delay,
            backoff=base.backoff,
        )

    def jobs_for(self, kind: PackageKind) -> int:
        if self.max_jobs is not None:
            return max(1, int(self.max_jobs))
        return self.config.max_jobs(kind, self.cpu_count)

    def selected_categories(self) -> List[str]:
        """--only wins over the enabled flags; otherwise every enabled category."""

        if self.only:
            if self.only not in self.config.categories:
                logger.warning("Unknown category %r: nothing configured for it", self.only)
            return [self.only]

        selected: List[str] = []
        for category in self.config.categories:
            if self.config.is_category_enabled(category):
                selected.append(category)
            else:
                logger.info("Category '%s' is disabled, skipping", category)
        return selected

    def backend(self, kind: PackageKind, *, editor: Optional[str] = None) -> Backend:
        return self.backend_factory(kind, editor=editor, timeout_s=self.config.timeout_seconds)

    def install(
        self,
        specs: Sequence[PackageSpec],
        kind: PackageKind,
        *,
        group: Optional[str] = None,
        backend: Optional[Backend] = None,
    ) -> OutcomeLedger:
        """Install one kind of package and keep the ledger for the run summary."""

        unique = dedupe_specs(specs)
        cfg_chars = self.config.progress_chars
        reporter = StatusReporter(
            len(unique),
            stream=self.stream,
            filled=cfg_chars["filled"],
            empty=cfg_chars["empty"],
        )
        installer = PackageInstaller(
            backend if backend is not None else self.backend(kind),
            progress=reporter,
            cancel=self.cancel,
        )
        ledger = installer.install_all(
            unique,
            max_jobs=self.jobs_for(kind),
            retry=self.retry_policy(),
            dry_run=self.dry_run,
        )
        self.ledgers[group or kind.value] = ledger
        return ledger

    @property
    def has_failures(self) -> bool:
        return any(ledger.has_failures for ledger in self.ledgers.values())

    def elapsed(self) -> float:
        return time.monotonic() - self.started
