from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from .errors import ConfigMalformed, ConfigNotFound
from .models import PackageKind, PackageSpec, RetryPolicy

DEFAULT_CATEGORIES = ["core", "frontend", "backend", "business", "ai"]
DEFAULT_EDITORS = ["code", "cursor"]


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigMalformed(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _string_list(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigMalformed(f"{where} must be a list, got {type(value).__name__}")
    out: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigMalformed(f"{where}: entries must be strings, got {item!r}")
        item = item.strip()
        if item:
            out.append(item)
    return out


def _number(value: Any, where: str, cast: Callable[[Any], Any]) -> Any:
    if isinstance(value, bool):
        raise ConfigMalformed(f"{where} must be a number, got {value!r}")
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigMalformed(f"{where} must be a number, got {value!r}") from e


def default_max_jobs(kind: PackageKind, cpu_count: int) -> int:
    """Leave a core free for formulae; casks are mostly downloads, use half."""
    cpu = max(1, int(cpu_count))
    if kind is PackageKind.BREW:
        return max(1, cpu - 1)
    if kind is PackageKind.CASK:
        return (cpu + 1) // 2 if cpu > 2 else 1
    return 1


@dataclass(frozen=True)
class SetupConfig:
    raw: Dict[str, Any]

    @property
    def settings(self) -> Dict[str, Any]:
        return _mapping(self.raw.get("config"), "config")

    @property
    def log_level(self) -> str:
        return str(self.settings.get("log_level") or "info")

    @property
    def parallel_jobs(self) -> Optional[int]:
        v = self.settings.get("parallel_jobs")
        return None if v is None else _number(v, "config.parallel_jobs", int)

    @property
    def retry_attempts(self) -> int:
        return _number(self.settings.get("retry_attempts", 3), "config.retry_attempts", int)

    @property
    def retry_delay(self) -> float:
        return _number(self.settings.get("retry_delay", 2), "config.retry_delay", float)

    @property
    def retry_backoff(self) -> float:
        return _number(self.settings.get("retry_backoff", 2), "config.retry_backoff", float)

    @property
    def timeout_seconds(self) -> float:
        timeout = _number(self.settings.get("timeout_seconds", 300), "config.timeout_seconds", float)
        if timeout <= 0:
            raise ConfigMalformed(f"config.timeout_seconds must be > 0, got {timeout}")
        return timeout

    @property
    def progress_chars(self) -> Dict[str, str]:
        ui = _mapping(self.settings.get("ui"), "config.ui")
        chars = _mapping(ui.get("progress_chars"), "config.ui.progress_chars")
        return {
            "filled": str(chars.get("filled") or "█"),
            "empty": str(chars.get("empty") or "░"),
        }

    @property
    def categories(self) -> List[str]:
        names: List[str] = list(_mapping(self.raw.get("categories"), "categories"))
        for name in _mapping(self.raw.get("packages"), "packages"):
            if name not in names:
                names.append(name)
        return names or list(DEFAULT_CATEGORIES)

    def is_category_enabled(self, category: str) -> bool:
        entry = _mapping(self.raw.get("categories"), "categories").get(category)
        if isinstance(entry, bool):
            return entry
        if isinstance(entry, dict):
            return bool(entry.get("enabled", False))
        return False

    def get_packages(self, category: str, kind: PackageKind) -> List[PackageSpec]:
        packages = _mapping(self.raw.get("packages"), "packages")
        block = _mapping(packages.get(category), f"packages.{category}")
        names = _string_list(block.get(kind.value), f"packages.{category}.{kind.value}")
        return [PackageSpec(identifier=n, kind=kind, category=category) for n in names]

    def get_extensions(self, role: str) -> List[PackageSpec]:
        extensions = _mapping(self.raw.get("extensions"), "extensions")
        names = _string_list(extensions.get(role), f"extensions.{role}")
        return [PackageSpec(identifier=n, kind=PackageKind.EXTENSION, category=role) for n in names]

    @property
    def extension_roles(self) -> List[str]:
        return list(_mapping(self.raw.get("extensions"), "extensions"))

    @property
    def editors(self) -> List[str]:
        editors = self.settings.get("editors")
        if isinstance(editors, dict):
            return [str(k) for k in editors]
        return _string_list(editors, "config.editors") or list(DEFAULT_EDITORS)

    def _top_or_settings(self, key: str) -> Any:
        if key in self.raw:
            return self.raw.get(key)
        return self.settings.get(key)

    @property
    def pipx_packages(self) -> List[PackageSpec]:
        names = _string_list(self._top_or_settings("ai_python_packages"), "ai_python_packages")
        return [PackageSpec(identifier=n, kind=PackageKind.PIPX, category="ai") for n in names]

    @property
    def ollama_models(self) -> List[PackageSpec]:
        names = _string_list(self._top_or_settings("ollama_models"), "ollama_models")
        return [PackageSpec(identifier=n, kind=PackageKind.MODEL, category="ai") for n in names]

    def max_jobs(self, kind: PackageKind, cpu_count: int) -> int:
        explicit = _mapping(self.settings.get("max_jobs"), "config.max_jobs").get(kind.value)
        if explicit is not None:
            return max(1, _number(explicit, f"config.max_jobs.{kind.value}", int))
        if self.parallel_jobs is not None:
            return max(1, self.parallel_jobs)
        return default_max_jobs(kind, cpu_count)

    def retry_policy(self) -> RetryPolicy:
        try:
            return RetryPolicy(
                max_attempts=self.retry_attempts,
                base_delay=self.retry_delay,
                backoff=self.retry_backoff,
            )
        except ValueError as e:
            raise ConfigMalformed(f"config: invalid retry settings: {e}") from e


def load_config(path: str) -> SetupConfig:
    p = Path(path).expanduser()
    if not p.exists():
        raise ConfigNotFound(f"Configuration file not found: {p}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigMalformed(f"Configuration must be YAML: {p}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigMalformed(f"Cannot parse {p}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigMalformed(f"{p} must contain a mapping/object")

    cfg = SetupConfig(raw=raw)
    # Surface shape errors now, before any install starts.
    for category in cfg.categories:
        for kind in (PackageKind.BREW, PackageKind.CASK):
            cfg.get_packages(category, kind)
    for role in cfg.extension_roles:
        cfg.get_extensions(role)
    cfg.pipx_packages
    cfg.ollama_models
    cfg.timeout_seconds
    cfg.parallel_jobs
    for kind in PackageKind:
        cfg.max_jobs(kind, cpu_count=1)
    cfg.retry_policy()
    return cfg
