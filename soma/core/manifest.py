"""Problem manifests and their solidified form.

Each problem directory holds a ``soma.toml`` manifest describing the image
OS, the command to serve and the files to place in the container.
:meth:`Manifest.solidify` resolves every optional field into the concrete
placement and permission plan the image build uses.
"""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any

from soma.errors import (
    FileNameNotFoundError,
    InvalidUnicodeError,
    ManifestError,
    PermissionParseError,
)
from soma.output import MessageType, VerbosityLevel, message

MANIFEST_FILE_NAME = "soma.toml"

# Default permission bits per file group
EXECUTABLE_PERMISSIONS = 0o550
READONLY_PERMISSIONS = 0o440
MAX_PERMISSIONS = 0o777

_OCTAL_RE = re.compile(r"[0-7]+")


def parse_permissions(value: str) -> int:
    """Parse an octal permission string such as ``"755"``.

    Raises:
        PermissionParseError: If *value* is not octal or exceeds ``0o777``
    """
    if not isinstance(value, str) or not _OCTAL_RE.fullmatch(value):
        raise PermissionParseError(str(value))
    permissions = int(value, 8)
    if permissions > MAX_PERMISSIONS:
        raise PermissionParseError(value)
    return permissions


def format_permissions(permissions: int) -> str:
    """Format permission bits as a 3-digit octal string."""
    return format(permissions, "03o")


def default_work_dir(problem_name: str) -> str:
    """Working directory used when the manifest does not set one."""
    return f"/home/{problem_name}"


def _utf8(text: str) -> str:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidUnicodeError(f"Path is not valid unicode: {text!r}") from e
    return text


# ------------------------------------------------------------------
# Declared form
# ------------------------------------------------------------------
@dataclass(frozen=True)
class FileEntry:
    """A file to place in the problem container."""

    path: PurePath
    public: bool = False
    target_path: str | None = None
    permissions: int | None = None

    def solidify(self, work_dir: str, default_permissions: int) -> SolidFileEntry:
        if self.target_path is not None:
            target_path = self.target_path
        else:
            file_name = self.path.name
            if file_name in ("", ".", ".."):
                raise FileNameNotFoundError(f"No file name in path '{self.path}'")
            # Target lives inside the container, so always join with "/"
            target_path = f"{_utf8(work_dir)}/{_utf8(file_name)}"

        return SolidFileEntry(
            path=self.path,
            public=self.public,
            target_path=target_path,
            permissions=default_permissions if self.permissions is None else self.permissions,
        )


@dataclass(frozen=True)
class BinaryConfig:
    """How the problem binary is served."""

    os: str
    cmd: str
    executable: tuple[FileEntry, ...] = ()
    readonly: tuple[FileEntry, ...] = ()


@dataclass(frozen=True)
class Manifest:
    """Declared content of a ``soma.toml`` file."""

    name: str
    binary: BinaryConfig
    work_dir: str | None = None

    def solidify(self) -> SolidManifest:
        """Resolve target paths and permissions of every file entry.

        Pure: the same manifest always yields an equal result.
        """
        work_dir = self.work_dir if self.work_dir is not None else default_work_dir(self.name)
        file_entries = tuple(
            [entry.solidify(work_dir, EXECUTABLE_PERMISSIONS) for entry in self.binary.executable]
            + [entry.solidify(work_dir, READONLY_PERMISSIONS) for entry in self.binary.readonly]
        )
        return SolidManifest(
            name=self.name,
            work_dir=work_dir,
            binary=SolidBinaryConfig(
                os=self.binary.os,
                cmd=self.binary.cmd,
                file_entries=file_entries,
            ),
        )


# ------------------------------------------------------------------
# Solidified form
# ------------------------------------------------------------------
@dataclass(frozen=True)
class SolidFileEntry:
    path: PurePath
    public: bool
    target_path: str
    permissions: int

    @property
    def permissions_string(self) -> str:
        return format_permissions(self.permissions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path.as_posix(),
            "public": self.public,
            "target_path": self.target_path,
            "permissions": self.permissions_string,
        }


@dataclass(frozen=True)
class SolidBinaryConfig:
    os: str
    cmd: str
    file_entries: tuple[SolidFileEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SolidManifest:
    """Fully resolved manifest, ready to be rendered into an image build."""

    name: str
    work_dir: str
    binary: SolidBinaryConfig

    @property
    def public_files(self) -> list[SolidFileEntry]:
        return [entry for entry in self.binary.file_entries if entry.public]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "work_dir": self.work_dir,
            "binary": {
                "os": self.binary.os,
                "cmd": self.binary.cmd,
                "file_entries": [entry.to_dict() for entry in self.binary.file_entries],
            },
        }


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------
def _require_str(table: dict[str, Any], key: str, where: str) -> str:
    value = table.get(key)
    if not isinstance(value, str) or not value:
        raise ManifestError(f"{where}: '{key}' must be a non-empty string")
    return value


def _parse_file_entries(binary: dict[str, Any], key: str) -> tuple[FileEntry, ...]:
    raw_entries = binary.get(key, [])
    if not isinstance(raw_entries, list):
        raise ManifestError(f"binary.{key} must be an array of tables")

    entries = []
    for idx, raw in enumerate(raw_entries):
        where = f"binary.{key}[{idx}]"
        if not isinstance(raw, dict):
            raise ManifestError(f"{where} must be a table")

        public = raw.get("public", False)
        if not isinstance(public, bool):
            raise ManifestError(f"{where}: 'public' must be a boolean")

        target_path = raw.get("target_path")
        if target_path is not None and not isinstance(target_path, str):
            raise ManifestError(f"{where}: 'target_path' must be a string")

        permissions = raw.get("permissions")
        entries.append(
            FileEntry(
                path=PurePath(_require_str(raw, "path", where)),
                public=public,
                target_path=target_path,
                permissions=None if permissions is None else parse_permissions(permissions),
            )
        )
    return tuple(entries)


def parse_manifest(data: dict[str, Any]) -> Manifest:
    """Build a :class:`Manifest` from decoded TOML data.

    Raises:
        ManifestError: If a required field is missing or mistyped
        PermissionParseError: If a permission override is not valid octal
    """
    name = _require_str(data, "name", "manifest")

    work_dir = data.get("work_dir")
    if work_dir is not None and not isinstance(work_dir, str):
        raise ManifestError("manifest: 'work_dir' must be a string")

    binary = data.get("binary")
    if not isinstance(binary, dict):
        raise ManifestError("manifest: missing [binary] table")

    return Manifest(
        name=name,
        work_dir=work_dir,
        binary=BinaryConfig(
            os=_require_str(binary, "os", "binary"),
            cmd=_require_str(binary, "cmd", "binary"),
            executable=_parse_file_entries(binary, "executable"),
            readonly=_parse_file_entries(binary, "readonly"),
        ),
    )


def load_manifest(manifest_path: Path) -> Manifest:
    """Read and parse a ``soma.toml`` file."""
    message(f"Loading manifest {manifest_path}", MessageType.DEBUG, VerbosityLevel.DEBUG)
    try:
        with open(manifest_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"Failed to parse {manifest_path}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read {manifest_path}: {e}") from e

    try:
        return parse_manifest(data)
    except ManifestError as e:
        raise ManifestError(f"{manifest_path}: {e}") from e
