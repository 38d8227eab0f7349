"""Local directory backend."""

import shutil
from pathlib import Path
from typing import Any

from soma.backends.abstract_backend import AbstractBackend
from soma.errors import SourceUnavailableError
from soma.output import MessageType, VerbosityLevel, message


class LocalBackend(AbstractBackend):
    """Copies a directory on this machine.

    The source tree is re-read on every materialization; there is no diffing.
    """

    KIND = "local"

    def __init__(self, path: Path):
        self.path = Path(path)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.KIND, "path": str(self.path)}

    def materialize_at(self, destination: Path) -> None:
        if not self.path.is_dir():
            raise SourceUnavailableError(f"Local source directory not found: {self.path}")

        message(f"Copying {self.path} into {destination}", MessageType.DEBUG, VerbosityLevel.DEBUG)
        try:
            if destination.exists():
                shutil.rmtree(destination)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(self.path, destination, symlinks=True)
        except OSError as e:
            raise SourceUnavailableError(f"Failed to copy local source {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"LocalBackend(path={self.path})"

    def __str__(self) -> str:
        return f"Local: {self.path}"
