from __future__ import annotations

import logging
from typing import Optional, Set

from ..errors import CommandError, InstallError
from ..models import PackageKind
from .command import run_cmd

logger = logging.getLogger(__name__)

# Model pulls are large downloads.
PULL_TIMEOUT_S = 3600.0


def _normalize(model: str) -> str:
    model = model.strip().lower()
    return model if ":" in model else f"{model}:latest"


def parse_ollama_list(stdout: str) -> Set[str]:
    """Model names from `ollama list` (header line, then NAME ID SIZE MODIFIED)."""

    names: Set[str] = set()
    for i, line in enumerate(stdout.splitlines()):
        parts = line.split()
        if not parts or (i == 0 and parts[0].upper() == "NAME"):
            continue
        names.add(_normalize(parts[0]))
    return names


class OllamaModelBackend:
    kind = PackageKind.MODEL

    def __init__(self, *, timeout_s: Optional[float] = PULL_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s

    def is_installed(self, identifier: str) -> bool:
        r = run_cmd(["ollama", "list"], check=False, timeout_s=30, quiet=True)
        if r.returncode != 0:
            return False
        return _normalize(identifier) in parse_ollama_list(r.stdout)

    def install(self, identifier: str) -> None:
        try:
            run_cmd(["ollama", "pull", identifier], timeout_s=self.timeout_s)
        except CommandError as e:
            raise InstallError(
                identifier,
                e.stderr.strip() or "ollama pull failed",
                kind=self.kind.value,
                returncode=e.returncode,
            ) from e
