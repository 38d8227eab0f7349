"""Base class for repository backends."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class AbstractBackend(ABC):
    """Source a repository synchronizes its content from.

    The set of backends is closed: :class:`~soma.backends.GitBackend` and
    :class:`~soma.backends.LocalBackend`. Instances are immutable.
    """

    # Subclasses must define this to identify their kind in the registry
    KIND: str = "unknown"

    @abstractmethod
    def materialize_at(self, destination: Path) -> None:
        """Make *destination* hold the latest content of this backend.

        Only the *destination* subtree is modified; the source is never
        touched.

        Args:
            destination: Directory to materialize into

        Raises:
            SourceUnavailableError: If the content could not be obtained
        """

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Return the persisted descriptor of this backend."""

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__:
            raise AttributeError(f"{self.__class__.__name__} is immutable")
        super().__setattr__(name, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AbstractBackend):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.to_dict().items())))
