"""Git repository backend."""

import shutil
import tempfile
from pathlib import Path
from typing import Any

import git

from soma.backends.abstract_backend import AbstractBackend
from soma.errors import SourceUnavailableError
from soma.output import MessageType, VerbosityLevel, message

# Used when the clone has no upstream configured for its active branch
DEFAULT_BRANCH = "master"


class GitBackend(AbstractBackend):
    """Materializes the tip of a remote git repository."""

    KIND = "remote"

    def __init__(self, address: str):
        """Initialize a git backend.

        Args:
            address: Clone URL of the remote repository

        Note: Does not contact the remote.
        """
        self.address = address

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.KIND, "address": self.address}

    def materialize_at(self, destination: Path) -> None:
        """Fetch and hard-reset an existing clone, or clone afresh.

        Local divergence in *destination* is discarded; the cache is
        disposable.
        """
        repo = self._open_clone(destination)
        if repo is None:
            self._fresh_clone(destination)
            return

        message(f"Fetching {self.address} into {destination}", MessageType.DEBUG, VerbosityLevel.DEBUG)
        try:
            origin = repo.remotes.origin
            origin.fetch()
            remote_ref = self._tracked_ref(repo)
            message(f"Resetting {destination} to {remote_ref}", MessageType.DEBUG, VerbosityLevel.DEBUG)
            repo.git.reset("--hard", remote_ref)
            repo.git.clean("-xdf")
        except git.exc.GitCommandError as e:
            raise SourceUnavailableError(f"Failed to update from '{self.address}': {e}") from e
        finally:
            repo.close()

    def _open_clone(self, destination: Path) -> git.Repo | None:
        """Return the clone at *destination*, or ``None`` if there is no valid one."""
        if not destination.exists():
            return None
        try:
            repo = git.Repo(destination)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            message(
                f"Directory exists but is not a valid git repository: {destination}",
                MessageType.DEBUG,
                VerbosityLevel.DEBUG,
            )
            return None

        if repo.bare or "origin" not in [remote.name for remote in repo.remotes]:
            repo.close()
            return None
        if repo.remotes.origin.url != self.address:
            message(
                f"Remote URL mismatch at {destination}. "
                f"Expected: {self.address}, Got: {repo.remotes.origin.url}",
                MessageType.WARNING,
                VerbosityLevel.VERBOSE,
            )
            repo.close()
            return None
        return repo

    def _fresh_clone(self, destination: Path) -> None:
        """Clone into a sibling directory, then move it into place."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".clone-", dir=destination.parent))
        message(f"Cloning {self.address}...", MessageType.INFO, VerbosityLevel.EXTRA_VERBOSE)
        try:
            git.Repo.clone_from(self.address, staging).close()
        except git.exc.GitCommandError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise SourceUnavailableError(f"Failed to clone '{self.address}': {e}") from e

        if destination.exists():
            shutil.rmtree(destination)
        staging.rename(destination)
        message(f"Cloned {self.address} into {destination}", MessageType.DEBUG, VerbosityLevel.DEBUG)

    @staticmethod
    def _tracked_ref(repo: git.Repo) -> str:
        """Name of the remote branch the working tree follows."""
        try:
            tracking = repo.active_branch.tracking_branch()
        except TypeError:
            # Detached HEAD
            tracking = None
        if tracking is not None:
            return tracking.name
        return f"origin/{DEFAULT_BRANCH}"

    def __repr__(self) -> str:
        return f"GitBackend(address='{self.address}')"

    def __str__(self) -> str:
        return f"Git: {self.address}"
