"""Registration and persistence of repositories."""

from __future__ import annotations

import shutil
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from soma.backends import AbstractBackend, backend_from_dict
from soma.config import Config, ConfigError
from soma.core.problem_list import ProblemIndex
from soma.core.repository import Repository
from soma.core.resources import ResourceRecord
from soma.errors import (
    DuplicateRepositoryError,
    RepositoryNotFoundError,
    SomaError,
    UpdateInProgressError,
)
from soma.output import MessageType, VerbosityLevel, message
from soma.utils import check_repository_name


class RepositoryManager:
    """Owns the registered repositories of one data directory.

    The registration file is the source of truth for which repositories
    exist. Updates are serialized per repository name; repositories with
    different names are independent.
    """

    def __init__(self, config: Config):
        self.config = config
        self._repositories: dict[str, Repository] = {}
        self._update_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """(Re)load registrations from the configuration file."""
        repositories: dict[str, Repository] = {}
        for entry in self.config.read().get("repositories", []):
            name = entry["name"]
            try:
                backend = backend_from_dict(entry["backend"])
            except (KeyError, ValueError) as e:
                raise ConfigError(f"Repository '{name}' has an invalid backend: {e}") from e
            repositories[name] = Repository(
                name,
                backend,
                self.repository_path(name),
                [ProblemIndex.from_dict(problem) for problem in entry.get("problems", [])],
            )
        self._repositories = repositories
        message(f"Loaded {len(repositories)} repository registration(s)", MessageType.DEBUG, VerbosityLevel.DEBUG)

    def save(self) -> None:
        """Persist the current registrations."""
        self.config.write({
            "repositories": [
                {
                    "name": repository.name,
                    "backend": repository.backend.to_dict(),
                    "problems": [problem.to_dict() for problem in repository.problems],
                }
                for repository in self._repositories.values()
            ],
        })

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def repository_path(self, name: str) -> Path:
        """Cache directory of repository *name*; pure, no I/O.

        Raises:
            InvalidRepositoryNameError: If *name* is not a single path segment
        """
        return self.config.repos_directory / check_repository_name(name)

    def list_repositories(self) -> list[Repository]:
        return list(self._repositories.values())

    def get(self, name: str) -> Repository | None:
        return self._repositories.get(name)

    def require(self, name: str) -> Repository:
        repository = self.get(name)
        if repository is None:
            raise RepositoryNotFoundError(name)
        return repository

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_repository(self, name: str, backend: AbstractBackend) -> Repository:
        """Register a repository and materialize its content.

        Nothing is registered and no cache directory is left behind if the
        content cannot be materialized or resolved.

        Raises:
            DuplicateRepositoryError: If *name* is already registered
            InvalidRepositoryNameError: If *name* is not a single path segment
        """
        path = self.repository_path(name)
        if name in self._repositories:
            raise DuplicateRepositoryError(name)

        repository = Repository(name, backend, path)
        message(f"Fetching repository '{name}' ({backend})", MessageType.INFO, VerbosityLevel.VERBOSE)
        try:
            repository.materialize()
        except SomaError:
            if repository.path.exists():
                shutil.rmtree(repository.path, ignore_errors=True)
            raise

        self._repositories[name] = repository
        try:
            self.save()
        except ConfigError:
            del self._repositories[name]
            raise
        return repository

    def update_repository(
        self, name: str, list_records: Callable[[], Iterable[ResourceRecord]],
    ) -> Repository:
        """Run the update protocol of repository *name* and persist the result.

        *list_records* is called once the update lock is held, so the removal
        check and the commit see the same snapshot of built resources.

        Raises:
            RepositoryNotFoundError: If *name* is not registered
            UpdateInProgressError: If *name* is already being updated
        """
        repository = self.require(name)
        lock = self._update_lock(name)
        if not lock.acquire(blocking=False):
            raise UpdateInProgressError(name)
        try:
            repository.update(list_records())
            self.save()
        finally:
            lock.release()
        return repository

    def _update_lock(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._update_locks.setdefault(name, threading.Lock())
