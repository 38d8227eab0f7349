"""Repository backends."""

from pathlib import Path
from typing import Any

from .abstract_backend import AbstractBackend
from .git_backend import GitBackend
from .local_backend import LocalBackend


def backend_from_dict(descriptor: dict[str, Any]) -> AbstractBackend:
    """Rebuild a backend from its persisted descriptor.

    Args:
        descriptor: ``{"kind": "remote", "address": ...}`` or
            ``{"kind": "local", "path": ...}``

    Raises:
        ValueError: If the descriptor kind is unknown
    """
    kind = descriptor.get("kind")
    if kind == GitBackend.KIND:
        return GitBackend(descriptor["address"])
    if kind == LocalBackend.KIND:
        return LocalBackend(Path(descriptor["path"]))
    raise ValueError(f"Unknown backend kind: {kind!r}")


__all__ = [
    "AbstractBackend",
    "GitBackend",
    "LocalBackend",
    "backend_from_dict",
]
