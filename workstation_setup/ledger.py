from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from .errors import PackageFailed
from .models import InstallOutcome, OutcomeStatus

logger = logging.getLogger(__name__)


class OutcomeLedger:
    """Per-run record of install outcomes, at most one per package identifier.

    Workers call record() concurrently; the first outcome for an identifier
    wins and later ones are dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: Dict[str, InstallOutcome] = {}

    def record(self, outcome: InstallOutcome) -> bool:
        with self._lock:
            if outcome.identifier in self._outcomes:
                duplicate = True
            else:
                self._outcomes[outcome.identifier] = outcome
                duplicate = False
        if duplicate:
            logger.debug("Dropping duplicate outcome for %s (%s)", outcome.identifier, outcome.status.value)
            return False
        return True

    def outcomes(self) -> List[InstallOutcome]:
        with self._lock:
            return list(self._outcomes.values())

    def get(self, identifier: str) -> Optional[InstallOutcome]:
        with self._lock:
            return self._outcomes.get(identifier)

    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._outcomes)

    def counts(self) -> Dict[OutcomeStatus, int]:
        counts = {status: 0 for status in OutcomeStatus}
        for outcome in self.outcomes():
            counts[outcome.status] += 1
        return counts

    def failed(self) -> List[InstallOutcome]:
        return [o for o in self.outcomes() if o.status is OutcomeStatus.FAILED]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed())

    def raise_for_failures(self) -> None:
        failed = self.failed()
        if failed:
            raise PackageFailed([o.identifier for o in failed])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": {status.value: n for status, n in self.counts().items()},
            "failed": [o.identifier for o in self.failed()],
            "outcomes": [
                {
                    "identifier": o.identifier,
                    "kind": o.kind.value,
                    "status": o.status.value,
                    "duration": round(o.duration, 3),
                    "attempts": o.attempts,
                    "error": o.error,
                }
                for o in self.outcomes()
            ],
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def __iter__(self) -> Iterator[InstallOutcome]:
        return iter(self.outcomes())

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._outcomes
