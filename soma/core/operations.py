"""User-facing soma operations.

Each operation composes the repository manager, problem manifests and the
daemon. None of them retries; every failure propagates to the caller.
"""

from __future__ import annotations

import io
import json
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

from soma import VERSION
from soma.core.daemon import Daemon
from soma.core.manifest import MANIFEST_FILE_NAME, SolidManifest, load_manifest
from soma.core.problem_list import ProblemIndex
from soma.core.repository import Repository
from soma.core.repository_manager import RepositoryManager
from soma.core.resources import (
    CONTAINER_PORT,
    LabelFilter,
    ResourceRecord,
    SomaContainer,
    SomaImage,
    built_from,
    classify,
    image_name,
    resource_labels,
    running_for_repository,
)
from soma.errors import (
    AmbiguousProblemError,
    ImageNotFoundError,
    ManifestError,
    ProblemNotFoundError,
)
from soma.output import MessageType, VerbosityLevel, message
from soma.utils import parse_repository_address

QUERY_SEPARATOR = "/"
DOCKERFILE_NAME = "Dockerfile"

# Not part of any problem build context
_CONTEXT_EXCLUDES = {".git", DOCKERFILE_NAME}


@dataclass
class Environment:
    """Everything an operation needs to act for one user."""

    username: str
    manager: RepositoryManager
    daemon: Daemon
    version: str = VERSION

    def user_filter(self) -> LabelFilter:
        return LabelFilter.for_user(self.username)

    def images(self, label_filter: LabelFilter | None = None) -> list[ResourceRecord]:
        handles = self.daemon.list_images(label_filter or self.user_filter())
        return classify(handles, self.version, SomaImage)

    def containers(self, label_filter: LabelFilter | None = None) -> list[ResourceRecord]:
        handles = self.daemon.list_containers(label_filter or self.user_filter())
        return classify(handles, self.version, SomaContainer)


@dataclass
class RepositoryStatus:
    """A repository with the build state of each of its problems."""

    repository: Repository
    built: dict[str, bool] = field(default_factory=dict)
    running: bool = False


# ------------------------------------------------------------------
# Problem lookup
# ------------------------------------------------------------------
def find_problem(manager: RepositoryManager, query: str) -> tuple[Repository, ProblemIndex]:
    """Resolve ``[repository/]problem`` to a registered problem.

    Raises:
        ProblemNotFoundError: If no registered repository has the problem
        AmbiguousProblemError: If an unprefixed name exists in several repositories
    """
    repository_name, separator, problem_name = query.rpartition(QUERY_SEPARATOR)
    if separator:
        repository = manager.get(repository_name)
        problem = repository.get_problem(problem_name) if repository is not None else None
        if problem is None:
            raise ProblemNotFoundError(query)
        return repository, problem

    matches = [
        (repository, problem)
        for repository in manager.list_repositories()
        if (problem := repository.get_problem(problem_name)) is not None
    ]
    if not matches:
        raise ProblemNotFoundError(query)
    if len(matches) > 1:
        raise AmbiguousProblemError(problem_name, [repository.name for repository, _ in matches])
    return matches[0]


def solid_manifest(repository: Repository, problem: ProblemIndex) -> SolidManifest:
    manifest_path = repository.problem_path(problem) / MANIFEST_FILE_NAME
    return load_manifest(manifest_path).solidify()


# ------------------------------------------------------------------
# Repository operations
# ------------------------------------------------------------------
def add(env: Environment, address: str, name: str | None = None) -> Repository:
    """Register the repository at *address*, optionally under *name*."""
    default_name, backend = parse_repository_address(address)
    repository = env.manager.add_repository(name or default_name, backend)
    message(f"Successfully added repository '{repository.name}'", MessageType.SUCCESS, VerbosityLevel.ALWAYS)
    return repository


def update(env: Environment, repository_name: str) -> Repository:
    """Synchronize a repository, refusing to orphan built problems."""
    env.manager.require(repository_name)
    repository = env.manager.update_repository(
        repository_name, lambda: env.images() + env.containers(),
    )
    message(f"Successfully updated repository '{repository_name}'", MessageType.SUCCESS, VerbosityLevel.ALWAYS)
    return repository


def list_repositories(env: Environment) -> list[RepositoryStatus]:
    """Registered repositories with the image state of their problems."""
    images = env.images()
    containers = env.containers()

    statuses = []
    for repository in env.manager.list_repositories():
        statuses.append(RepositoryStatus(
            repository=repository,
            built={
                problem.name: built_from(images, repository.name, problem.name)
                for problem in repository.problems
            },
            running=running_for_repository(containers, repository.name),
        ))
    return statuses


# ------------------------------------------------------------------
# Problem operations
# ------------------------------------------------------------------
def _split_image_reference(reference: str) -> tuple[str, str]:
    name, separator, tag = reference.rpartition(":")
    if not separator or "/" in tag:
        return reference, "latest"
    return name, tag


def render_dockerfile(manifest: SolidManifest) -> str:
    """Dockerfile serving *manifest*'s command on port 1337."""
    user = manifest.name
    exposed_port = CONTAINER_PORT.split("/")[0]
    lines = [
        f"FROM {manifest.binary.os}",
        "RUN apt-get update && apt-get install -y --no-install-recommends socat "
        "&& rm -rf /var/lib/apt/lists/*",
        f"RUN useradd -m -d {json.dumps(manifest.work_dir)} -s /bin/false {user}",
        f"WORKDIR {manifest.work_dir}",
    ]
    for entry in manifest.binary.file_entries:
        lines.append(
            f"COPY --chown=root:{user} {json.dumps([entry.path.as_posix(), entry.target_path])}"
        )
        lines.append(f"RUN chmod {entry.permissions_string} {json.dumps(entry.target_path)}")
    lines += [
        f"USER {user}",
        f"EXPOSE {exposed_port}",
        "CMD " + json.dumps([
            "socat",
            f"tcp-listen:{exposed_port},reuseaddr,fork",
            f"exec:{manifest.binary.cmd},stderr",
        ]),
    ]
    return "\n".join(lines) + "\n"


def build_context(problem_dir: Path, dockerfile: str) -> io.BytesIO:
    """Tar the problem directory together with a generated Dockerfile."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for child in sorted(problem_dir.iterdir()):
            if child.name in _CONTEXT_EXCLUDES:
                continue
            tar.add(child, arcname=child.name)

        data = dockerfile.encode("utf-8")
        info = tarfile.TarInfo(DOCKERFILE_NAME)
        info.size = len(data)
        info.mode = 0o644
        tar.addfile(info, io.BytesIO(data))
    buffer.seek(0)
    return buffer


def build(env: Environment, query: str) -> str:
    """Build the image of a problem.

    Returns:
        Name of the built image
    """
    repository, problem = find_problem(env.manager, query)
    manifest = solid_manifest(repository, problem)
    name = image_name(problem.name)

    base_name, base_tag = _split_image_reference(manifest.binary.os)
    env.daemon.pull(base_name, base_tag)

    context = build_context(repository.problem_path(problem), render_dockerfile(manifest))
    env.daemon.build(
        context,
        tag=name,
        labels=resource_labels(env.version, env.username, repository.name),
    )
    message(f"Successfully built image {name}", MessageType.SUCCESS, VerbosityLevel.ALWAYS)
    return name


def run(env: Environment, query: str, port: str) -> str:
    """Start a container of a built problem, serving on host *port*.

    Returns:
        Id of the started container
    """
    repository, problem = find_problem(env.manager, query)
    name = image_name(problem.name)
    if not built_from(env.images(), repository.name, problem.name):
        raise ImageNotFoundError(name)

    container_id = env.daemon.create(
        name,
        labels=resource_labels(env.version, env.username, repository.name),
        port=port,
    )
    env.daemon.start(container_id)
    message(
        f"Successfully started container {container_id[:12]} on port {port}",
        MessageType.SUCCESS,
        VerbosityLevel.ALWAYS,
    )
    return container_id


def clean(env: Environment, query: str) -> None:
    """Remove a problem's containers and image, then prune its repository.

    Every daemon call is scoped to the current user; pruning is further
    scoped to the problem's repository.
    """
    repository, problem = find_problem(env.manager, query)
    name = image_name(problem.name)
    repository_filter = env.user_filter().with_repository(repository.name)

    for container in env.containers():
        if not repository_filter.matches(container.labels) or not container.has_image_name(name):
            continue
        container_id = container.handle.id
        if container.is_running:
            message(f"Stopping container {container_id[:12]}", MessageType.INFO, VerbosityLevel.VERBOSE)
            env.daemon.stop(container_id)
        message(f"Removing container {container_id[:12]}", MessageType.INFO, VerbosityLevel.VERBOSE)
        env.daemon.remove_container(container_id)

    if built_from(env.images(repository_filter), repository.name, problem.name):
        message(f"Removing image {name}", MessageType.INFO, VerbosityLevel.VERBOSE)
        env.daemon.remove_image(name)

    env.daemon.prune_containers(repository_filter)
    env.daemon.prune_images(repository_filter)
    message(f"Successfully cleaned problem '{problem.name}'", MessageType.SUCCESS, VerbosityLevel.ALWAYS)


def fetch(env: Environment, query: str, destination: Path) -> list[Path]:
    """Copy the public files of a problem into *destination*.

    Returns:
        Paths of the copied files
    """
    repository, problem = find_problem(env.manager, query)
    manifest = solid_manifest(repository, problem)
    problem_dir = repository.problem_path(problem)

    destination.mkdir(parents=True, exist_ok=True)
    copied = []
    for entry in manifest.public_files:
        source = problem_dir / entry.path
        if not source.is_file():
            raise ManifestError(f"Public file '{entry.path}' of problem '{problem.name}' not found")
        target = destination / entry.path.name
        shutil.copy2(source, target)
        message(f"Fetched {target}", MessageType.INFO, VerbosityLevel.VERBOSE)
        copied.append(target)
    return copied
