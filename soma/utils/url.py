"""Repository address utilities for soma."""

import os
from pathlib import Path
from urllib.parse import urlparse

from soma.backends import AbstractBackend, GitBackend, LocalBackend
from soma.errors import InvalidRepositoryNameError, InvalidRepositoryPathError

# Prefix of names derived from local directories, keeps them apart from git names
LOCAL_NAME_PREFIX = "#"

_RESERVED_NAMES = ("", ".", "..")


def is_valid_repository_name(name: str) -> bool:
    """True if *name* is usable as a single cache directory name."""
    if name in _RESERVED_NAMES:
        return False
    separators = {"/", os.sep} | ({os.altsep} if os.altsep else set())
    return not any(separator in name for separator in separators) and "\0" not in name


def check_repository_name(name: str) -> str:
    """Return *name* unchanged, or raise if it is not a valid repository name.

    Raises:
        InvalidRepositoryNameError: If *name* is empty, ``.``, ``..`` or
            contains a path separator
    """
    if not is_valid_repository_name(name):
        raise InvalidRepositoryNameError(name)
    return name


def is_file_url(url: str) -> bool:
    """Check if a URL is a file:// URL or a plain filesystem path.

    Args:
        url: The URL to check

    Returns:
        True if it's a file:// URL or plain path, False otherwise
    """
    # Reject URLs with leading/trailing whitespace
    if url != url.strip():
        return False

    if url.startswith("file://"):
        return True

    if url.startswith("/") or url.startswith("~"):
        return True

    if url.startswith("./") or url.startswith("../"):
        return True

    return bool(url == "." or url == "..")


def resolve_file_path(url: str) -> Path:
    """Resolve a file:// URL (or plain path) to an absolute path."""
    path_str = url[7:] if url.startswith("file://") else url
    return Path(path_str).expanduser().resolve()


def parse_repository_address(address: str) -> tuple[str, AbstractBackend]:
    """Derive a default repository name and backend from *address*.

    An existing directory becomes a local backend named ``#<dirname>``.
    Anything else must be a URL with a scheme and host; its name is the last
    path segment without a ``.git`` suffix.

    Args:
        address: Local path, ``file://`` URL or git URL

    Returns:
        Tuple of (repository name, backend)

    Raises:
        InvalidRepositoryPathError: If no name or backend can be derived
    """
    if is_file_url(address) or Path(address).is_dir():
        path = resolve_file_path(address)
        if not path.is_dir() or not path.name:
            raise InvalidRepositoryPathError(address)
        return check_repository_name(f"{LOCAL_NAME_PREFIX}{path.name}"), LocalBackend(path)

    parsed = urlparse(address)
    if not parsed.scheme or not parsed.netloc:
        raise InvalidRepositoryPathError(address)

    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        raise InvalidRepositoryPathError(address)

    name = segments[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not is_valid_repository_name(name):
        raise InvalidRepositoryPathError(address)

    return name, GitBackend(address)
