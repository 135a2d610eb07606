from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .ledger import OutcomeLedger

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path).expanduser()
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) in {"yaml", "yml"}:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text) if text.strip() else {}

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")

    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) in {"yaml", "yml"}:
        text = yaml.safe_dump(state, sort_keys=False) + "\n"
    else:
        text = json.dumps(state, indent=2, sort_keys=True) + "\n"

    # Atomic replace.
    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(p)


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with defaults (without overriding existing values)."""

    state.setdefault("version", STATE_VERSION)
    state.setdefault("execution", {})

    exe = state["execution"]
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("errors", [])
    exe.setdefault("warnings", [])
    exe.setdefault("ledgers", {})

    return state


def begin_run(state: Dict[str, Any]) -> Dict[str, Any]:
    """Reset per-run fields; completed_steps survive for --resume."""

    exe = ensure_defaults(state)["execution"]
    exe["failed_steps"] = []
    exe["warnings"] = []
    exe["errors"] = []
    exe["ledgers"] = {}
    return state


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    exe = state.setdefault("execution", {})
    completed = exe.setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def unmark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    completed = (state.get("execution") or {}).get("completed_steps") or []
    if step_id in completed:
        completed.remove(step_id)


def is_step_completed(state: Dict[str, Any], step_id: str) -> bool:
    exe = state.get("execution") or {}
    completed = exe.get("completed_steps") or []
    return step_id in completed


def mark_step_failed(state: Dict[str, Any], step_id: str) -> None:
    failed = state.setdefault("execution", {}).setdefault("failed_steps", [])
    if step_id not in failed:
        failed.append(step_id)


def is_step_failed(state: Dict[str, Any], step_id: str) -> bool:
    return step_id in ((state.get("execution") or {}).get("failed_steps") or [])


def add_warning(state: Dict[str, Any], **warning: Any) -> None:
    state.setdefault("execution", {}).setdefault("warnings", []).append(warning)


def record_ledger(
    state: Dict[str, Any],
    step_id: str,
    ledger: OutcomeLedger,
    *,
    group: Optional[str] = None,
) -> None:
    """Store a ledger summary under `group` (default: the step id).

    A step that produced any failed outcome is marked failed.
    """

    state.setdefault("execution", {}).setdefault("ledgers", {})[group or step_id] = ledger.to_dict()
    if ledger.has_failures:
        mark_step_failed(state, step_id)
