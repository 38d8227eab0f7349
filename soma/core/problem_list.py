"""Discovery of the problems a repository contains.

A repository either lists its problem directories in ``soma-list.toml`` at
its root, or is itself a single problem with a ``soma.toml`` at the root.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any

from soma.core.manifest import MANIFEST_FILE_NAME, load_manifest
from soma.errors import InvalidProblemListError, InvalidRepositoryError
from soma.output import MessageType, VerbosityLevel, message

LIST_FILE_NAME = "soma-list.toml"


@dataclass(frozen=True)
class ProblemIndex:
    """Location of one problem inside a repository."""

    name: str
    path: PurePath

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "path": self.path.as_posix()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProblemIndex:
        return cls(name=data["name"], path=PurePath(data["path"]))


def _read_list_file(list_path: Path) -> list[PurePath]:
    try:
        with open(list_path, "rb") as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise InvalidProblemListError(f"Failed to read {list_path}: {e}") from e

    problems = data.get("problems")
    if not isinstance(problems, list) or not all(isinstance(p, str) for p in problems):
        raise InvalidProblemListError(f"{list_path}: 'problems' must be an array of paths")
    return [PurePath(p) for p in problems]


def _check_paths(repo_root: Path, relative_paths: list[PurePath]) -> None:
    """Reject entries that do not exist or point at the same directory."""
    seen: dict[Path, PurePath] = {}
    for relative_path in relative_paths:
        try:
            canonical = (repo_root / relative_path).resolve(strict=True)
        except OSError as e:
            raise InvalidProblemListError(
                f"Problem path '{relative_path}' does not exist"
            ) from e

        if canonical in seen:
            raise InvalidProblemListError(
                f"Problem paths '{seen[canonical]}' and '{relative_path}' refer to the same directory"
            )
        seen[canonical] = relative_path


def read_problem_index(repo_root: Path, relative_path: PurePath) -> ProblemIndex:
    """Load the manifest of one problem and index it by its declared name."""
    manifest_path = repo_root / relative_path / MANIFEST_FILE_NAME
    if not manifest_path.is_file():
        raise InvalidRepositoryError(manifest_path)

    manifest = load_manifest(manifest_path)
    return ProblemIndex(name=manifest.name, path=relative_path)


def resolve_problem_list(repo_root: Path) -> list[ProblemIndex]:
    """Return the problems of the repository materialized at *repo_root*.

    Args:
        repo_root: Root of a materialized repository

    Returns:
        Problem indexes in list-file order

    Raises:
        InvalidProblemListError: If list entries are missing, point at the
            same directory or declare the same problem name
        InvalidRepositoryError: If a problem directory has no manifest
    """
    list_path = repo_root / LIST_FILE_NAME
    if list_path.exists():
        relative_paths = _read_list_file(list_path)
        _check_paths(repo_root, relative_paths)
    else:
        relative_paths = [PurePath(".")]

    problems = [read_problem_index(repo_root, path) for path in relative_paths]

    names: set[str] = set()
    for problem in problems:
        if problem.name in names:
            raise InvalidProblemListError(f"Duplicate problem name '{problem.name}'")
        names.add(problem.name)

    message(
        f"Resolved {len(problems)} problem(s) in {repo_root}",
        MessageType.DEBUG,
        VerbosityLevel.DEBUG,
    )
    return problems
