"""Tests for utils/url.py - Repository address parsing."""

import pytest

from soma.backends import GitBackend, LocalBackend
from soma.errors import InvalidRepositoryNameError, InvalidRepositoryPathError
from soma.utils.url import (
    check_repository_name,
    is_file_url,
    is_valid_repository_name,
    parse_repository_address,
    resolve_file_path,
)


class TestIsFileUrl:

    @pytest.mark.parametrize("url", ["file:///srv/x", "/srv/x", "~/x", "./x", "../x", ".", ".."])
    def test_file_urls(self, url):
        assert is_file_url(url)

    @pytest.mark.parametrize("url", ["https://example.com/x.git", "x", " /srv/x", "git@example.com:x"])
    def test_not_file_urls(self, url):
        assert not is_file_url(url)

    def test_resolve_strips_scheme(self, tmp_path):
        assert resolve_file_path(f"file://{tmp_path}") == tmp_path.resolve()


class TestParseRepositoryAddress:

    def test_git_url(self):
        name, backend = parse_repository_address("https://github.com/org/ctf-problems.git")
        assert name == "ctf-problems"
        assert backend == GitBackend("https://github.com/org/ctf-problems.git")

    def test_git_url_without_suffix(self):
        name, _ = parse_repository_address("https://github.com/org/ctf-problems/")
        assert name == "ctf-problems"

    def test_local_directory(self, tmp_path):
        source = tmp_path / "problems"
        source.mkdir()

        name, backend = parse_repository_address(str(source))

        assert name == "#problems"
        assert backend == LocalBackend(source.resolve())

    def test_file_url(self, tmp_path):
        source = tmp_path / "problems"
        source.mkdir()

        name, backend = parse_repository_address(f"file://{source}")

        assert name == "#problems"
        assert isinstance(backend, LocalBackend)

    @pytest.mark.parametrize("address", [
        "not a url",
        "https://example.com",
        "https://example.com/.git",
        "example.com/org/ctf.git",
        "https://example.invalid/group/..",
        "https://example.invalid/group/.",
        "https://example.invalid/group/...git",
    ])
    def test_invalid(self, address):
        with pytest.raises(InvalidRepositoryPathError):
            parse_repository_address(address)

    def test_missing_local_directory(self, tmp_path):
        with pytest.raises(InvalidRepositoryPathError):
            parse_repository_address(str(tmp_path / "missing"))


class TestRepositoryNames:

    @pytest.mark.parametrize("name", ["ctf", "#problems", "ctf-2024", "#..", "old"])
    def test_valid(self, name):
        assert is_valid_repository_name(name)
        assert check_repository_name(name) == name

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "../repos", "/abs", "nul\0byte"])
    def test_invalid(self, name):
        assert not is_valid_repository_name(name)
        with pytest.raises(InvalidRepositoryNameError):
            check_repository_name(name)
