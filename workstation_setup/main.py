from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional, TextIO

from .backends import BackendFactory, default_backend_factory
from .config import load_config
from .context import RunContext
from .errors import ConfigMalformed, ConfigNotFound, SetupError
from .logging_utils import DEFAULT_LOG_PATH, configure_logging, parse_level
from .pipeline import run_pipeline
from .state_store import begin_run, load_state, save_state
from .steps import (
    HomebrewStep,
    InstallExtensionsStep,
    InstallPackagesStep,
    InstallPipxStep,
    PreflightStep,
    PullModelsStep,
    SummaryStep,
)

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_STATE_PATH = "~/.local/state/workstation-setup/state.json"

EXIT_OK = 0
EXIT_FAILED_PACKAGES = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


STEP_TYPES = (
    PreflightStep,
    HomebrewStep,
    InstallPackagesStep,
    InstallPipxStep,
    InstallExtensionsStep,
    PullModelsStep,
    SummaryStep,
)
STEP_IDS = [t.step_id for t in STEP_TYPES]


def build_steps(ctx: RunContext) -> List[Any]:
    return [step_type(ctx) for step_type in STEP_TYPES]


def exit_code_for(state: Dict[str, Any]) -> int:
    """0 when no ledger recorded a failed package, 1 otherwise."""

    ledgers = (state.get("execution") or {}).get("ledgers") or {}
    for summary in ledgers.values():
        if (summary or {}).get("failed"):
            return EXIT_FAILED_PACKAGES
    return EXIT_OK


def run(
    *,
    config_path: str = DEFAULT_CONFIG_PATH,
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    dry_run: bool = False,
    only: Optional[str] = None,
    max_jobs: Optional[int] = None,
    retry_attempts: Optional[int] = None,
    retry_delay: Optional[float] = None,
    resume: bool = False,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    verbose: bool = False,
    cancel: Optional[threading.Event] = None,
    backend_factory: BackendFactory = default_backend_factory,
    stream: Optional[TextIO] = None,
) -> Dict[str, Any]:
    """Run the setup pipeline, persisting state for --resume.

    Configuration errors are raised before any step runs.
    """

    actual_log_path = configure_logging(
        log_path=log_path,
        level=logging.DEBUG if verbose else logging.INFO,
    )

    cfg = load_config(config_path)
    if not verbose:
        logging.getLogger().setLevel(parse_level(cfg.log_level))

    state = begin_run(load_state(state_path))
    paths = state["execution"].setdefault("paths", {})
    paths["log_path_requested"] = log_path
    paths["log_path_actual"] = actual_log_path
    paths["config"] = config_path
    state["execution"]["options"] = {
        "dry_run": dry_run,
        "only": only,
        "max_jobs": max_jobs,
        "retry_attempts": retry_attempts,
        "retry_delay": retry_delay,
    }

    ctx = RunContext(
        config=cfg,
        dry_run=dry_run,
        only=only,
        max_jobs=max_jobs,
        retry_attempts=retry_attempts,
        retry_delay=retry_delay,
        cancel=cancel if cancel is not None else threading.Event(),
        backend_factory=backend_factory,
        stream=stream,
    )
    # Validate CLI overrides up front.
    ctx.retry_policy()

    try:
        result = run_pipeline(
            state=state,
            steps=build_steps(ctx),
            start_at=start_at,
            stop_after=stop_after,
            resume=resume,
            should_stop=ctx.cancel.is_set,
        )
        state = result.state
        summary = state["execution"].setdefault("run", {})
        summary["ran_steps"] = result.ran_steps
        summary["skipped_steps"] = result.skipped_steps
        summary["failed_steps"] = result.failed_steps
        summary["interrupted"] = ctx.cancel.is_set()
        return state
    except Exception as e:
        logger.exception("Setup failed")
        state["execution"].setdefault("errors", []).append(
            {
                "step": state["execution"].get("current_step"),
                "error": str(e),
            }
        )
        raise
    finally:
        save_state(state_path, state)


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return n


def _non_negative_float(value: str) -> float:
    f = float(value)
    if f < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return f


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="workstation-setup",
        description="Install the packages, apps, editor extensions and models listed in config.yaml.",
    )
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to run state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--dry-run", action="store_true", help="Show what would be installed, change nothing")
    p.add_argument("--only", default=None, metavar="CATEGORY", help="Install a single category (e.g. core)")
    p.add_argument("--max-jobs", type=_positive_int, default=None, help="Parallel installs per package kind")
    p.add_argument("--retry-attempts", type=_positive_int, default=None, help="Install attempts per package")
    p.add_argument("--retry-delay", type=_non_negative_float, default=None, help="Initial retry delay (seconds)")
    p.add_argument("--resume", action="store_true", help="Skip steps that completed cleanly last time")
    p.add_argument(
        "--start-at",
        default=None,
        choices=STEP_IDS,
        metavar="STEP",
        help="Start at step_id (e.g. 30_install_packages)",
    )
    p.add_argument("--stop-after", default=None, choices=STEP_IDS, metavar="STEP", help="Stop after step_id")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    cancel = threading.Event()

    def _on_sigint(signum, frame):
        # First Ctrl-C drains the run; a second one kills it.
        cancel.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)
        logger.warning("Interrupted: finishing in-flight installs (Ctrl-C again to abort)")

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        state = run(
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            dry_run=bool(args.dry_run),
            only=args.only,
            max_jobs=args.max_jobs,
            retry_attempts=args.retry_attempts,
            retry_delay=args.retry_delay,
            resume=bool(args.resume),
            start_at=args.start_at,
            stop_after=args.stop_after,
            verbose=bool(args.verbose),
            cancel=cancel,
        )
    except (ConfigNotFound, ConfigMalformed) as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    except SetupError as e:
        logger.error("%s", e)
        return EXIT_FAILED_PACKAGES
    finally:
        signal.signal(signal.SIGINT, previous)

    if cancel.is_set():
        return EXIT_INTERRUPTED
    return exit_code_for(state)


if __name__ == "__main__":
    raise SystemExit(main())
