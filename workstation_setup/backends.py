from __future__ import annotations

from typing import Optional, Protocol

from .models import PackageKind


class Backend(Protocol):
    """Install capability for one package kind.

    is_installed() must be side-effect free and cheap. install() raises
    InstallError on failure and must be safe to call again after a failure.
    """

    kind: PackageKind

    def is_installed(self, identifier: str) -> bool:
        ...

    def install(self, identifier: str) -> None:
        ...


class BackendFactory(Protocol):
    def __call__(
        self,
        kind: PackageKind,
        *,
        editor: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> Backend:
        ...


def default_backend_factory(
    kind: PackageKind,
    *,
    editor: Optional[str] = None,
    timeout_s: Optional[float] = None,
) -> Backend:
    from .lib.brew import BrewBackend
    from .lib.extensions import EditorExtensionBackend
    from .lib.ollama import PULL_TIMEOUT_S, OllamaModelBackend
    from .lib.pipx import PipxBackend

    if kind is PackageKind.BREW:
        return BrewBackend(cask=False, timeout_s=timeout_s)
    if kind is PackageKind.CASK:
        return BrewBackend(cask=True, timeout_s=timeout_s)
    if kind is PackageKind.PIPX:
        return PipxBackend(timeout_s=timeout_s)
    if kind is PackageKind.EXTENSION:
        return EditorExtensionBackend(editor or "code", timeout_s=timeout_s)
    if kind is PackageKind.MODEL:
        return OllamaModelBackend(timeout_s=max(timeout_s or 0, PULL_TIMEOUT_S))
    raise ValueError(f"No backend for kind {kind!r}")
