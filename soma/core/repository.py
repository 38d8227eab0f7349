"""A registered problem repository and its update protocol."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from soma.backends import AbstractBackend
from soma.core.problem_list import ProblemIndex, resolve_problem_list
from soma.core.resources import ResourceRecord, built_from
from soma.errors import SourceUnavailableError, UnsupportedUpdateError
from soma.output import MessageType, VerbosityLevel, message


class Repository:
    """A backend plus the problems currently materialized from it.

    ``problems`` always describes the content at ``path``. Both are only
    replaced together, at the single commit point of :meth:`update`.
    """

    def __init__(
        self,
        name: str,
        backend: AbstractBackend,
        path: Path,
        problems: Iterable[ProblemIndex] = (),
    ):
        """Initialize a repository.

        Args:
            name: Registered repository name
            backend: Source to synchronize from
            path: Local cache directory of the repository
            problems: Problems resolved from the content at *path*
        """
        self.name = name
        self.backend = backend
        self.path = path
        self._problems = tuple(problems)

    @property
    def problems(self) -> tuple[ProblemIndex, ...]:
        return self._problems

    def problem_names(self) -> Iterator[str]:
        return (problem.name for problem in self._problems)

    def get_problem(self, problem_name: str) -> ProblemIndex | None:
        for problem in self._problems:
            if problem.name == problem_name:
                return problem
        return None

    def problem_path(self, problem: ProblemIndex) -> Path:
        return self.path / problem.path

    def materialize(self) -> None:
        """Materialize the backend into the cache path and re-resolve problems.

        Used on first registration, when there is nothing to protect yet.
        """
        self.backend.materialize_at(self.path)
        self._problems = tuple(resolve_problem_list(self.path))

    def update(self, known_records: Iterable[ResourceRecord]) -> None:
        """Synchronize with the backend without orphaning built resources.

        1. Copy the cache into a staging directory beside it, materialize the
           backend there and resolve the new problem list.
        2. Find problems that would disappear.
        3. Refuse the whole update if any of them still has an image or
           container built from this repository.
        4. Rename the staged tree into the cache path and swap in the new
           problem list.

        Args:
            known_records: Images and containers currently owned by the user

        Raises:
            UnsupportedUpdateError: If a removed problem has built resources
            SourceUnavailableError: If the backend cannot be materialized
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=".stage-", dir=self.path.parent) as staging_dir:
            staging_root = Path(staging_dir)
            staging_path = staging_root / "new" / self.path.name
            message(
                f"Staging update of '{self.name}' in {staging_path}",
                MessageType.DEBUG,
                VerbosityLevel.DEBUG,
            )
            if self.path.exists():
                # Seeded from the cache so an existing clone is fetched, not re-cloned
                try:
                    shutil.copytree(self.path, staging_path, symlinks=True)
                except OSError as e:
                    raise SourceUnavailableError(f"Failed to stage '{self.name}': {e}") from e
            self.backend.materialize_at(staging_path)
            new_problems = resolve_problem_list(staging_path)

            new_names = {problem.name for problem in new_problems}
            removed = [name for name in self.problem_names() if name not in new_names]

            records = list(known_records)
            blocking = [name for name in removed if built_from(records, self.name, name)]
            if blocking:
                raise UnsupportedUpdateError(self.name, blocking)

            for name in removed:
                message(
                    f"Problem '{name}' removed from '{self.name}'",
                    MessageType.INFO,
                    VerbosityLevel.VERBOSE,
                )

            self._replace_cache(staging_path, staging_root / "old")
            self._problems = tuple(new_problems)

    def _replace_cache(self, staged: Path, backup: Path) -> None:
        """Move *staged* into the cache path, keeping the old tree on failure."""
        had_cache = self.path.exists()
        try:
            if had_cache:
                self.path.rename(backup)
            try:
                staged.rename(self.path)
            except OSError:
                if had_cache:
                    backup.rename(self.path)
                raise
        except OSError as e:
            raise SourceUnavailableError(
                f"Failed to replace the cache of '{self.name}' at {self.path}: {e}"
            ) from e

    def __repr__(self) -> str:
        return (
            f"Repository(name='{self.name}', backend={self.backend!r}, "
            f"path={self.path}, problems={len(self._problems)})"
        )
