from __future__ import annotations

import logging
import sys
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional, TextIO

from .ledger import OutcomeLedger
from .models import InstallOutcome, OutcomeStatus

logger = logging.getLogger(__name__)

DEFAULT_FILLED = "█"
DEFAULT_EMPTY = "░"


def format_duration(seconds: float) -> str:
    s = int(seconds)
    if s < 60:
        return f"{s}s"
    if s < 3600:
        return f"{s // 60}m {s % 60}s"
    return f"{s // 3600}h {(s % 3600) // 60}m"


def render_progress(
    current: int,
    total: int,
    label: str = "",
    elapsed: float = 0.0,
    *,
    width: int = 50,
    filled: str = DEFAULT_FILLED,
    empty: str = DEFAULT_EMPTY,
) -> str:
    """One-line progress bar: "[███░░] 40% (2/5) (ETA: 9s) - label"."""

    percentage = 100 if total <= 0 else min(100, current * 100 // total)
    filled_len = percentage * width // 100
    bar = filled * filled_len + empty * (width - filled_len)

    eta = ""
    if 0 < current < total and elapsed > 0:
        remaining = (total - current) * (elapsed / current)
        eta = f" (ETA: {format_duration(remaining)})"

    line = f"[{bar}] {percentage}% ({current}/{total}){eta}"
    if label:
        line += f" - {label}"
    return line


_OUTCOME_MESSAGES = {
    OutcomeStatus.ALREADY_INSTALLED: "already installed",
    OutcomeStatus.INSTALLED: "installed",
    OutcomeStatus.FAILED: "installation failed",
    OutcomeStatus.DRY_RUN: "would be installed (dry run)",
}


class StatusReporter:
    """Progress callback for PackageInstaller: bar + ETA on the stream, outcomes to the log."""

    def __init__(
        self,
        total: int = 0,
        *,
        stream: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
        filled: str = DEFAULT_FILLED,
        empty: str = DEFAULT_EMPTY,
    ) -> None:
        self.total = total
        self.stream = stream if stream is not None else sys.stdout
        self.clock = clock
        self.filled = filled
        self.empty = empty
        self.started = clock()
        self._lock = threading.Lock()

    def __call__(self, done: int, total: int, outcome: InstallOutcome) -> None:
        with self._lock:
            elapsed = self.clock() - self.started
            line = render_progress(
                done,
                total or self.total,
                outcome.identifier,
                elapsed,
                filled=self.filled,
                empty=self.empty,
            )
            self.stream.write("\r" + line + "\n")
            self.stream.flush()

        msg = _OUTCOME_MESSAGES[outcome.status]
        took = format_duration(outcome.duration)
        if outcome.status is OutcomeStatus.FAILED:
            logger.warning("%s: %s (%s): %s", outcome.identifier, msg, took, outcome.error)
        else:
            logger.info("%s: %s (%s)", outcome.identifier, msg, took)


def summarize(ledger: OutcomeLedger, elapsed: float, expected_total: Optional[int] = None) -> List[str]:
    """Final breakdown lines. Counts always sum to len(ledger)."""

    counts = ledger.counts()
    processed = len(ledger)
    total = processed if expected_total is None else expected_total

    lines = [
        "Installation Summary:",
        f"Total time: {format_duration(elapsed)}",
        f"Packages processed: {processed}/{total}",
        "Package Status Breakdown:",
    ]
    if counts[OutcomeStatus.INSTALLED]:
        lines.append(f"  Newly installed: {counts[OutcomeStatus.INSTALLED]}")
    if counts[OutcomeStatus.ALREADY_INSTALLED]:
        lines.append(f"  Already installed: {counts[OutcomeStatus.ALREADY_INSTALLED]}")
    if counts[OutcomeStatus.DRY_RUN]:
        lines.append(f"  Dry run: {counts[OutcomeStatus.DRY_RUN]}")
    if counts[OutcomeStatus.FAILED]:
        lines.append(f"  Failed: {counts[OutcomeStatus.FAILED]}")
        for o in ledger.failed():
            lines.append(f"    - {o.identifier} ({o.kind.value}): {o.error}")
    lines.append(
        f"Total: {processed} packages ({counts[OutcomeStatus.INSTALLED]} installed, "
        f"{counts[OutcomeStatus.ALREADY_INSTALLED]} skipped, "
        f"{counts[OutcomeStatus.FAILED]} failed)"
    )
    return lines


def print_summary(lines: List[str], *, stream: Optional[TextIO] = None) -> List[str]:
    out = stream if stream is not None else sys.stdout
    out.write("\n" + "\n".join(lines) + "\n")
    out.flush()
    for line in lines:
        logger.debug("summary: %s", line)
    return lines


def summarize_run(ledgers: Mapping[str, OutcomeLedger], elapsed: float) -> List[str]:
    """Breakdown for a whole run: one line per ledger group, then totals."""

    totals: Dict[OutcomeStatus, int] = {status: 0 for status in OutcomeStatus}
    lines = ["Installation Summary:", f"Total time: {format_duration(elapsed)}"]
    for group, ledger in ledgers.items():
        counts = ledger.counts()
        for status, n in counts.items():
            totals[status] += n
        lines.append(
            f"  {group}: {len(ledger)} processed ("
            f"{counts[OutcomeStatus.INSTALLED]} installed, "
            f"{counts[OutcomeStatus.ALREADY_INSTALLED]} already installed, "
            f"{counts[OutcomeStatus.FAILED]} failed"
            + (f", {counts[OutcomeStatus.DRY_RUN]} dry run" if counts[OutcomeStatus.DRY_RUN] else "")
            + ")"
        )
        for o in ledger.failed():
            lines.append(f"    - {o.identifier}: {o.error}")
    processed = sum(totals.values())
    lines.append(
        f"Total: {processed} packages ({totals[OutcomeStatus.INSTALLED]} installed, "
        f"{totals[OutcomeStatus.ALREADY_INSTALLED]} skipped, "
        f"{totals[OutcomeStatus.FAILED]} failed)"
    )
    return lines
