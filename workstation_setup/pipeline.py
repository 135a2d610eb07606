from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .state_store import (
    is_step_completed,
    is_step_failed,
    mark_step_completed,
    unmark_step_completed,
)

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent step."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]
    failed_steps: List[str]


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    resume: bool = False,
    should_stop: Optional[Callable[[], bool]] = None,
) -> PipelineResult:
    """Run steps in order.

    A step is only marked completed when it did not record failures, so a
    --resume run picks up every step that still has work left.
    """

    known = {s.step_id for s in steps}
    for name, value in (("start_at", start_at), ("stop_after", stop_after)):
        if value is not None and value not in known:
            raise ValueError(f"Unknown step for {name}: {value} (known: {', '.join(sorted(known))})")

    ran: List[str] = []
    skipped: List[str] = []
    failed: List[str] = []

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        always_run = bool(getattr(step, "always_run", False))
        if should_stop is not None and should_stop() and not always_run:
            logger.warning("Interrupted; not running %s", step.step_id)
            skipped.append(step.step_id)
            continue

        state.setdefault("execution", {})["current_step"] = step.step_id

        if resume and not always_run and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
        else:
            logger.info("Running step %s", step.step_id)
            state = step.run(state)
            ran.append(step.step_id)
            if is_step_failed(state, step.step_id):
                failed.append(step.step_id)
                unmark_step_completed(state, step.step_id)
            elif should_stop is not None and should_stop() and not always_run:
                logger.warning("Step %s was interrupted; not marking it completed", step.step_id)
                unmark_step_completed(state, step.step_id)
            else:
                mark_step_completed(state, step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    state.setdefault("execution", {})["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped, failed_steps=failed)
