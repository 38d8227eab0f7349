"""Tracking of soma-owned images and containers.

The daemon only knows anonymous images and containers. soma labels everything
it creates with its version, the owning user and the source repository, and
reads those labels back into :class:`ResourceRecord` objects.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

LABEL_KEY_VERSION = "soma.version"
LABEL_KEY_USERNAME = "soma.username"
LABEL_KEY_REPOSITORY = "soma.repository"

# Repository name of resources that lost their repository label
NO_REPOSITORY_NAME = "**NONAME**"

IMAGE_NAMESPACE = "soma/"
CONTAINER_PORT = "1337/tcp"
RUNNING_STATE = "running"


def image_name(problem_name: str) -> str:
    """Name of the image built for *problem_name*."""
    return f"{IMAGE_NAMESPACE}{problem_name}"


def resource_labels(version: str, username: str, repository_name: str) -> dict[str, str]:
    """Labels attached to every image and container soma creates."""
    return {
        LABEL_KEY_VERSION: version,
        LABEL_KEY_USERNAME: username,
        LABEL_KEY_REPOSITORY: repository_name,
    }


class VersionStatus(Enum):
    """Version label of a resource relative to the running soma."""

    NORMAL = "normal"
    VERSION_MISMATCH = "version_mismatch"
    NO_VERSION_FOUND = "no_version_found"


def classify_labels(
    labels: Mapping[str, str] | None, current_version: str,
) -> tuple[str, VersionStatus]:
    """Read the repository name and version status out of a label set."""
    labels = labels or {}
    repository_name = labels.get(LABEL_KEY_REPOSITORY, NO_REPOSITORY_NAME)

    version = labels.get(LABEL_KEY_VERSION)
    if version is None:
        status = VersionStatus.NO_VERSION_FOUND
    elif version == current_version:
        status = VersionStatus.NORMAL
    else:
        status = VersionStatus.VERSION_MISMATCH
    return repository_name, status


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------
@dataclass(frozen=True)
class ResourceRecord:
    """A daemon object annotated with soma ownership.

    ``handle`` is the daemon's own object; records are built per query and
    never kept around.
    """

    repository_name: str
    handle: Any = field(compare=False)
    version_status: VersionStatus

    @property
    def labels(self) -> Mapping[str, str]:
        return self.handle.labels or {}

    @property
    def tags(self) -> list[str]:
        """Image tags this record refers to; none for an unknown record kind."""
        return []

    def has_image_name(self, name: str) -> bool:
        prefix = f"{name}:"
        return any(tag.startswith(prefix) for tag in self.tags)


class SomaImage(ResourceRecord):
    @property
    def tags(self) -> list[str]:
        return list(self.handle.tags or [])


class SomaContainer(ResourceRecord):
    @property
    def tags(self) -> list[str]:
        """Image reference the container was created from."""
        reference = self.handle.attrs.get("Config", {}).get("Image")
        if not reference:
            return []
        # Untagged references resolve to ":latest" on the daemon
        if ":" not in reference.rsplit("/", 1)[-1]:
            reference = f"{reference}:latest"
        return [reference]

    @property
    def state(self) -> str:
        return self.handle.status

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING_STATE


def classify(
    daemon_records: Iterable[Any],
    current_version: str,
    record_type: type[ResourceRecord] = SomaImage,
) -> list[ResourceRecord]:
    """Wrap daemon objects into records of *record_type*.

    Args:
        daemon_records: Images or containers as returned by the daemon
        current_version: Version of the running soma
        record_type: :class:`SomaImage` or :class:`SomaContainer`
    """
    records = []
    for handle in daemon_records:
        repository_name, status = classify_labels(handle.labels, current_version)
        records.append(record_type(repository_name=repository_name, handle=handle, version_status=status))
    return records


# ------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------
def image_exists(records: Iterable[ResourceRecord], name: str) -> bool:
    """True if some record carries a tag of image *name*."""
    return any(record.has_image_name(name) for record in records)


def exists_for_repository(records: Iterable[ResourceRecord], repository_name: str) -> bool:
    return any(record.repository_name == repository_name for record in records)


def running_for_repository(records: Iterable[SomaContainer], repository_name: str) -> bool:
    return any(
        record.repository_name == repository_name and record.is_running
        for record in records
    )


def filter_by_repository(
    records: Iterable[ResourceRecord], repository_name: str,
) -> list[ResourceRecord]:
    return [record for record in records if record.repository_name == repository_name]


def built_from(
    records: Iterable[ResourceRecord], repository_name: str, problem_name: str,
) -> bool:
    """True if an image or container was built from this repository's problem."""
    name = image_name(problem_name)
    return any(
        record.repository_name == repository_name and record.has_image_name(name)
        for record in records
    )


# ------------------------------------------------------------------
# Label filters
# ------------------------------------------------------------------
class LabelFilter:
    """Daemon label filter; every term must match.

    Always start from :meth:`for_user` so one user's listing or prune never
    reaches another user's resources.
    """

    def __init__(self, terms: dict[str, str] | None = None):
        self.terms = dict(terms or {})

    @classmethod
    def for_user(cls, username: str) -> LabelFilter:
        return cls({LABEL_KEY_USERNAME: username})

    def with_repository(self, repository_name: str) -> LabelFilter:
        return LabelFilter({**self.terms, LABEL_KEY_REPOSITORY: repository_name})

    def build(self) -> dict[str, list[str]]:
        """Return the filter in the daemon's ``filters`` format."""
        return {"label": [f"{key}={value}" for key, value in self.terms.items()]}

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(labels.get(key) == value for key, value in self.terms.items())

    def __repr__(self) -> str:
        return f"LabelFilter({self.terms!r})"
