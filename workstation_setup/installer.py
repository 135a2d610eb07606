from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .backends import Backend
from .errors import SetupError
from .ledger import OutcomeLedger
from .models import InstallOutcome, OutcomeStatus, PackageSpec, RetryPolicy

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int, InstallOutcome], None]


def dedupe_specs(specs: Iterable[PackageSpec]) -> List[PackageSpec]:
    """Unique specs by identifier, first occurrence wins, order preserved."""

    seen: set[str] = set()
    unique: List[PackageSpec] = []
    for spec in specs:
        if spec.identifier in seen:
            logger.debug("Skipping duplicate %s (category %s)", spec.identifier, spec.category)
            continue
        seen.add(spec.identifier)
        unique.append(spec)
    return unique


@dataclass
class _Run:
    ledger: OutcomeLedger
    total: int
    done: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class PackageInstaller:
    """Installs packages of one kind with bounded parallelism.

    A fixed pool of `max_jobs` workers drains a shared queue; each worker
    takes a package end to end (installed check, retry loop, ledger write)
    before taking the next one. install_all() returns only after every
    worker has exited.
    """

    def __init__(
        self,
        backend: Backend,
        *,
        progress: Optional[ProgressFn] = None,
        cancel: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.backend = backend
        self.progress = progress
        self.cancel = cancel if cancel is not None else threading.Event()
        self._sleep = sleep

    def install_all(
        self,
        specs: Iterable[PackageSpec],
        max_jobs: int,
        retry: RetryPolicy,
        dry_run: bool = False,
    ) -> OutcomeLedger:
        if int(max_jobs) < 1:
            raise ValueError(f"max_jobs must be >= 1, got {max_jobs}")

        unique = dedupe_specs(specs)
        run = _Run(ledger=OutcomeLedger(), total=len(unique))
        if not unique:
            return run.ledger

        if dry_run:
            for spec in unique:
                logger.info("DRY RUN: would install %s (%s)", spec.identifier, spec.kind.value)
                self._finish(run, InstallOutcome(spec.identifier, spec.kind, OutcomeStatus.DRY_RUN))
            return run.ledger

        work: "queue.Queue[PackageSpec]" = queue.Queue()
        for spec in unique:
            work.put(spec)

        workers = min(int(max_jobs), len(unique))
        logger.info(
            "Installing %d %s package(s) with %d job(s) (max_attempts=%d)",
            len(unique),
            unique[0].kind.value,
            workers,
            retry.max_attempts,
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="install") as pool:
            futures = [pool.submit(self._worker, work, run, retry) for _ in range(workers)]
        for f in futures:
            f.result()

        if self.cancel.is_set():
            logger.warning(
                "Cancelled: %d of %d package(s) were not dispatched",
                run.total - len(run.ledger),
                run.total,
            )
        return run.ledger

    def _worker(self, work: "queue.Queue[PackageSpec]", run: _Run, retry: RetryPolicy) -> None:
        while not self.cancel.is_set():
            try:
                spec = work.get_nowait()
            except queue.Empty:
                return
            self._finish(run, self.install_one(spec, retry))

    def install_one(self, spec: PackageSpec, retry: RetryPolicy) -> InstallOutcome:
        """Run one package through check -> install -> retry. Never raises."""

        started = time.monotonic()

        try:
            installed = self.backend.is_installed(spec.identifier)
        except Exception as e:
            logger.warning("%s: installed check failed (%s); assuming not installed", spec.identifier, e)
            installed = False

        if installed:
            return InstallOutcome(
                spec.identifier,
                spec.kind,
                OutcomeStatus.ALREADY_INSTALLED,
                duration=time.monotonic() - started,
            )

        attempts = 0
        last_error: Optional[str] = None
        for attempt in range(1, retry.max_attempts + 1):
            attempts = attempt
            logger.info("Installing %s (attempt %d/%d)", spec.identifier, attempt, retry.max_attempts)
            try:
                self.backend.install(spec.identifier)
            except SetupError as e:
                last_error = str(e)
            except Exception as e:
                logger.exception("%s: unexpected error from %s backend", spec.identifier, spec.kind.value)
                last_error = f"{type(e).__name__}: {e}"
            else:
                return InstallOutcome(
                    spec.identifier,
                    spec.kind,
                    OutcomeStatus.INSTALLED,
                    duration=time.monotonic() - started,
                    attempts=attempts,
                )

            if attempt < retry.max_attempts:
                delay = retry.delay_for(attempt)
                logger.warning(
                    "%s: install failed (attempt %d/%d). Retrying in %ss...",
                    spec.identifier,
                    attempt,
                    retry.max_attempts,
                    delay,
                )
                if self._wait(delay):
                    last_error = "cancelled"
                    break

        logger.error("%s: installation failed after %d attempt(s): %s", spec.identifier, attempts, last_error)
        return InstallOutcome(
            spec.identifier,
            spec.kind,
            OutcomeStatus.FAILED,
            duration=time.monotonic() - started,
            attempts=attempts,
            error=last_error,
        )

    def _wait(self, seconds: float) -> bool:
        """Back off for `seconds`. Returns True if the run was cancelled meanwhile."""
        if self._sleep is not None:
            self._sleep(seconds)
            return self.cancel.is_set()
        return self.cancel.wait(seconds)

    def _finish(self, run: _Run, outcome: InstallOutcome) -> None:
        if not run.ledger.record(outcome):
            return
        if self.progress is None:
            return
        with run.lock:
            run.done += 1
            try:
                self.progress(run.done, run.total, outcome)
            except Exception:
                logger.exception("Progress callback failed for %s", outcome.identifier)
