"""Core infrastructure for soma."""

from .daemon import Daemon
from .manifest import (
    BinaryConfig,
    FileEntry,
    Manifest,
    SolidFileEntry,
    SolidManifest,
    load_manifest,
    parse_permissions,
)
from .operations import Environment, RepositoryStatus, add, build, clean, fetch, list_repositories, run, update
from .problem_list import ProblemIndex, resolve_problem_list
from .repository import Repository
from .repository_manager import RepositoryManager
from .resources import (
    LabelFilter,
    ResourceRecord,
    SomaContainer,
    SomaImage,
    VersionStatus,
    classify,
    image_exists,
    image_name,
)

__all__ = [
    "BinaryConfig",
    "Daemon",
    "Environment",
    "FileEntry",
    "LabelFilter",
    "Manifest",
    "ProblemIndex",
    "Repository",
    "RepositoryManager",
    "RepositoryStatus",
    "ResourceRecord",
    "SolidFileEntry",
    "SolidManifest",
    "SomaContainer",
    "SomaImage",
    "VersionStatus",
    "add",
    "build",
    "classify",
    "clean",
    "fetch",
    "image_exists",
    "image_name",
    "list_repositories",
    "load_manifest",
    "parse_permissions",
    "resolve_problem_list",
    "run",
    "update",
]
