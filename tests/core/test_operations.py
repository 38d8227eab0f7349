"""Tests for core/operations.py - Problem lifecycle operations."""

import io
import tarfile
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from soma.config import Config
from soma.core.daemon import Daemon
from soma.core.manifest import load_manifest
from soma.core.operations import (
    Environment,
    _split_image_reference,
    add,
    build,
    build_context,
    clean,
    fetch,
    find_problem,
    list_repositories,
    render_dockerfile,
    run,
    update,
)
from soma.core.problem_list import LIST_FILE_NAME
from soma.core.repository_manager import RepositoryManager
from soma.core.resources import LABEL_KEY_REPOSITORY, LABEL_KEY_USERNAME, resource_labels
from soma.errors import (
    AmbiguousProblemError,
    ImageNotFoundError,
    InvalidRepositoryPathError,
    ManifestError,
    ProblemNotFoundError,
    UnsupportedUpdateError,
)

VERSION = "0.1.0"

PWN_MANIFEST = """
name = "{name}"

[binary]
os = "ubuntu:18.04"
cmd = "./pwn1"

[[binary.executable]]
path = "bin/pwn1"
public = true

[[binary.readonly]]
path = "flag"
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _write_source(source, problem_names):
    source.mkdir(parents=True, exist_ok=True)
    for name in problem_names:
        problem_dir = source / name
        (problem_dir / "bin").mkdir(parents=True, exist_ok=True)
        (problem_dir / "soma.toml").write_text(PWN_MANIFEST.format(name=name))
        (problem_dir / "bin" / "pwn1").write_bytes(b"\x7fELF")
        (problem_dir / "flag").write_text("flag{test}\n")
    entries = ", ".join(f'"{name}"' for name in problem_names)
    (source / LIST_FILE_NAME).write_text(f"problems = [{entries}]\n")
    return source


def _image(repository, problem, username="alice"):
    return SimpleNamespace(
        labels=resource_labels(VERSION, username, repository),
        tags=[f"soma/{problem}:latest"],
        id=f"sha256:{problem}",
    )


def _container(repository, problem, status="running", container_id="c0ffee000000ff"):
    return SimpleNamespace(
        labels=resource_labels(VERSION, "alice", repository),
        attrs={"Config": {"Image": f"soma/{problem}"}},
        status=status,
        id=container_id,
    )


@pytest.fixture
def daemon():
    daemon = Mock(spec=Daemon)
    daemon.list_images.return_value = []
    daemon.list_containers.return_value = []
    daemon.create.return_value = "0123456789abcdef"
    return daemon


@pytest.fixture
def env(tmp_path, daemon):
    config = Config(config_dir=tmp_path / "data")
    config.ensure_directories()
    return Environment(username="alice", manager=RepositoryManager(config), daemon=daemon, version=VERSION)


@pytest.fixture
def registered(env, tmp_path):
    """Two repositories; ``pwn1`` exists in both, ``pwn2`` only in the first."""
    add(env, str(_write_source(tmp_path / "first", ["pwn1", "pwn2"])))
    add(env, str(_write_source(tmp_path / "second", ["pwn1"])))
    return env


# ===========================================================================
# Problem lookup
# ===========================================================================
class TestFindProblem:

    def test_unique_name(self, registered):
        repository, problem = find_problem(registered.manager, "pwn2")
        assert repository.name == "#first"
        assert problem.name == "pwn2"

    def test_prefixed_name(self, registered):
        repository, problem = find_problem(registered.manager, "#second/pwn1")
        assert repository.name == "#second"
        assert problem.name == "pwn1"

    def test_ambiguous_name(self, registered):
        with pytest.raises(AmbiguousProblemError) as exc_info:
            find_problem(registered.manager, "pwn1")
        assert exc_info.value.repository_names == ["#first", "#second"]

    @pytest.mark.parametrize("query", ["nope", "#second/pwn2", "#missing/pwn1"])
    def test_not_found(self, registered, query):
        with pytest.raises(ProblemNotFoundError):
            find_problem(registered.manager, query)


# ===========================================================================
# Repository operations
# ===========================================================================
class TestRepositoryOperations:

    def test_add_uses_derived_name(self, registered):
        assert [r.name for r in registered.manager.list_repositories()] == ["#first", "#second"]

    def test_add_with_explicit_name(self, env, tmp_path):
        repository = add(env, str(_write_source(tmp_path / "src", ["pwn1"])), name="custom")
        assert repository.name == "custom"
        assert env.manager.get("custom") is repository

    def test_update_passes_user_resources(self, registered, tmp_path, daemon):
        _write_source(tmp_path / "first", ["pwn1"])
        daemon.list_images.return_value = [_image("#first", "pwn2")]

        with pytest.raises(UnsupportedUpdateError):
            update(registered, "#first")

        assert daemon.list_images.call_args[0][0].terms == {LABEL_KEY_USERNAME: "alice"}
        assert list(registered.manager.require("#first").problem_names()) == ["pwn1", "pwn2"]

    def test_update_succeeds_when_clean(self, registered, tmp_path):
        _write_source(tmp_path / "first", ["pwn1"])

        repository = update(registered, "#first")

        assert list(repository.problem_names()) == ["pwn1"]

    def test_update_lists_resources_while_locked(self, registered, tmp_path, daemon):
        _write_source(tmp_path / "first", ["pwn1"])
        lock = registered.manager._update_lock("#first")
        lock_states = []

        def list_images(label_filter):
            lock_states.append(lock.locked())
            return []

        daemon.list_images.side_effect = list_images

        update(registered, "#first")

        assert lock_states == [True]
        assert not lock.locked()

    def test_add_rejects_traversing_address(self, registered):
        with pytest.raises(InvalidRepositoryPathError):
            add(registered, "https://example.invalid/group/..")

        assert registered.manager.config.config_file.is_file()
        assert [r.name for r in registered.manager.list_repositories()] == ["#first", "#second"]

    def test_list_repositories(self, registered, daemon):
        daemon.list_images.return_value = [_image("#first", "pwn2")]
        daemon.list_containers.return_value = [_container("#second", "pwn1")]

        statuses = list_repositories(registered)

        first, second = statuses
        assert first.built == {"pwn1": False, "pwn2": True}
        assert first.running is False
        assert second.built == {"pwn1": False}
        assert second.running is True


# ===========================================================================
# Dockerfile and build context
# ===========================================================================
class TestBuildInputs:

    def test_split_image_reference(self):
        assert _split_image_reference("ubuntu:18.04") == ("ubuntu", "18.04")
        assert _split_image_reference("ubuntu") == ("ubuntu", "latest")
        assert _split_image_reference("localhost:5000/base") == ("localhost:5000/base", "latest")

    def test_render_dockerfile(self, tmp_path):
        _write_source(tmp_path, ["pwn1"])
        manifest = load_manifest(tmp_path / "pwn1" / "soma.toml").solidify()

        lines = render_dockerfile(manifest).splitlines()

        assert lines[0] == "FROM ubuntu:18.04"
        assert "WORKDIR /home/pwn1" in lines
        assert 'COPY --chown=root:pwn1 ["bin/pwn1", "/home/pwn1/pwn1"]' in lines
        assert 'RUN chmod 550 "/home/pwn1/pwn1"' in lines
        assert 'RUN chmod 440 "/home/pwn1/flag"' in lines
        assert "USER pwn1" in lines
        assert "EXPOSE 1337" in lines
        assert lines[-1] == 'CMD ["socat", "tcp-listen:1337,reuseaddr,fork", "exec:./pwn1,stderr"]'

    def test_build_context(self, tmp_path):
        problem_dir = _write_source(tmp_path, ["pwn1"]) / "pwn1"
        (problem_dir / ".git").mkdir()
        (problem_dir / "Dockerfile").write_text("FROM scratch\n")

        context = build_context(problem_dir, "FROM ubuntu\n")

        with tarfile.open(fileobj=context) as tar:
            names = tar.getnames()
            dockerfile = tar.extractfile("Dockerfile").read()
        assert "soma.toml" in names
        assert "bin/pwn1" in names
        assert ".git" not in names
        assert names.count("Dockerfile") == 1
        assert dockerfile == b"FROM ubuntu\n"

    def test_build_context_is_rewound(self, tmp_path):
        problem_dir = _write_source(tmp_path, ["pwn1"]) / "pwn1"
        context = build_context(problem_dir, "FROM ubuntu\n")
        assert isinstance(context, io.BytesIO)
        assert context.tell() == 0


# ===========================================================================
# Problem operations
# ===========================================================================
class TestBuild:

    def test_build_pulls_base_and_labels_image(self, registered, daemon):
        name = build(registered, "pwn2")

        assert name == "soma/pwn2"
        daemon.pull.assert_called_once_with("ubuntu", "18.04")
        kwargs = daemon.build.call_args.kwargs
        assert kwargs["tag"] == "soma/pwn2"
        assert kwargs["labels"] == resource_labels(VERSION, "alice", "#first")

    def test_build_unknown_problem(self, registered, daemon):
        with pytest.raises(ProblemNotFoundError):
            build(registered, "nope")
        daemon.build.assert_not_called()


class TestRun:

    def test_run_requires_image(self, registered, daemon):
        with pytest.raises(ImageNotFoundError):
            run(registered, "pwn2", "31337")
        daemon.create.assert_not_called()

    def test_image_of_other_repository_does_not_count(self, registered, daemon):
        daemon.list_images.return_value = [_image("#second", "pwn1")]
        with pytest.raises(ImageNotFoundError):
            run(registered, "#first/pwn1", "31337")

    def test_run_creates_and_starts(self, registered, daemon):
        daemon.list_images.return_value = [_image("#first", "pwn2")]

        container_id = run(registered, "pwn2", "31337")

        assert container_id == "0123456789abcdef"
        daemon.create.assert_called_once_with(
            "soma/pwn2",
            labels=resource_labels(VERSION, "alice", "#first"),
            port="31337",
        )
        daemon.start.assert_called_once_with("0123456789abcdef")


class TestClean:

    def test_clean_stops_removes_and_prunes(self, registered, daemon):
        daemon.list_containers.return_value = [
            _container("#first", "pwn2", "running", "aaaa"),
            _container("#first", "pwn2", "exited", "bbbb"),
            _container("#first", "pwn1", "running", "cccc"),
            _container("#second", "pwn2", "running", "dddd"),
        ]
        daemon.list_images.return_value = [_image("#first", "pwn2")]

        clean(registered, "pwn2")

        daemon.stop.assert_called_once_with("aaaa")
        assert [c.args[0] for c in daemon.remove_container.call_args_list] == ["aaaa", "bbbb"]
        daemon.remove_image.assert_called_once_with("soma/pwn2")
        expected_terms = {LABEL_KEY_USERNAME: "alice", LABEL_KEY_REPOSITORY: "#first"}
        assert daemon.prune_containers.call_args[0][0].terms == expected_terms
        assert daemon.prune_images.call_args[0][0].terms == expected_terms

    def test_clean_without_image(self, registered, daemon):
        clean(registered, "pwn2")

        daemon.remove_image.assert_not_called()
        daemon.prune_images.assert_called_once()

    def test_clean_never_touches_other_users(self, registered, daemon):
        foreign = _container("#first", "pwn2", "running", "eeee")
        foreign.labels = resource_labels(VERSION, "bob", "#first")
        daemon.list_containers.return_value = [foreign]

        clean(registered, "pwn2")

        daemon.stop.assert_not_called()
        daemon.remove_container.assert_not_called()


class TestFetch:

    def test_fetch_copies_public_files(self, registered, tmp_path):
        destination = tmp_path / "out"

        copied = fetch(registered, "pwn2", destination)

        assert copied == [destination / "pwn1"]
        assert (destination / "pwn1").read_bytes() == b"\x7fELF"
        assert not (destination / "flag").exists()

    def test_fetch_missing_public_file(self, registered, tmp_path):
        repository, problem = find_problem(registered.manager, "pwn2")
        (repository.problem_path(problem) / "bin" / "pwn1").unlink()

        with pytest.raises(ManifestError, match="bin/pwn1"):
            fetch(registered, "pwn2", tmp_path / "out")
