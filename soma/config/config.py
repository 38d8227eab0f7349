"""Configuration management class for soma.

The data directory holds the repository registration file and the local
cache of every registered repository.
"""

from pathlib import Path
from typing import Any, TypedDict

import yaml

from soma.errors import SomaError
from soma.output import MessageType, VerbosityLevel, message
from soma.utils import is_valid_repository_name

BACKEND_KINDS = {"remote": "address", "local": "path"}


class BackendEntry(TypedDict, total=False):
    """Type definition for a persisted backend descriptor."""

    kind: str
    address: str
    path: str


class ProblemEntry(TypedDict):
    """Type definition for a persisted problem index entry."""

    name: str
    path: str


class RepositoryEntry(TypedDict, total=False):
    """Type definition for a repository registration."""

    name: str
    backend: BackendEntry
    problems: list[ProblemEntry]


class ConfigData(TypedDict, total=False):
    """Type definition for the registration file."""

    repositories: list[RepositoryEntry]


class ConfigError(SomaError):
    """Exception raised for configuration validation errors.

    Can contain multiple error messages.
    """

    def __init__(self, errors: str | list[str]):
        """Initialize ConfigError.

        Args:
            errors: Single error message or list of error messages
        """
        if isinstance(errors, str):
            self.errors = [errors]
        else:
            self.errors = errors
        super().__init__(self._format_errors())

    def _format_errors(self) -> str:
        """Format errors for display."""
        if len(self.errors) == 1:
            return self.errors[0]
        else:
            error_list = "\n".join(f"  - {err}" for err in self.errors)
            return f"Configuration has {len(self.errors)} errors:\n{error_list}"


class Config:
    """Manages the soma data directory."""

    def __init__(self, config_dir: Path | None = None):
        """Initialize the Config manager.

        Args:
            config_dir: Optional custom data directory.
                       Defaults to ~/.soma
        """
        if config_dir is None:
            config_dir = Path.home() / ".soma"

        self.config_directory = config_dir
        self.config_file = self.config_directory / "config.yaml"
        self.repos_directory = self.config_directory / "repos"

    def ensure_directories(self) -> None:
        """Create the data directories if they don't exist.

        Raises:
            ConfigError: If a directory cannot be created
        """
        directories = {
            "config": self.config_directory,
            "repos": self.repos_directory,
        }

        for dir_name, dir_path in directories.items():
            try:
                dir_path.mkdir(parents=True, exist_ok=True)
                message(f"Ensured {dir_name} directory exists: {dir_path}", MessageType.DEBUG, VerbosityLevel.DEBUG)
            except PermissionError as e:
                raise ConfigError(f"Permission denied creating {dir_name} directory: {dir_path}") from e
            except OSError as e:
                raise ConfigError(f"Failed to create {dir_name} directory: {e}") from e

    def exists(self) -> bool:
        """Check if the registration file exists."""
        return self.config_file.exists()

    @staticmethod
    def validate(config: dict[str, Any]) -> None:
        """Validate the registration file structure.

        Collects all validation errors before raising an exception.

        Args:
            config: The configuration dictionary to validate

        Raises:
            ConfigError: If the configuration is invalid, with all errors
        """
        errors: list[str] = []

        repositories = config.get("repositories", [])
        if not isinstance(repositories, list):
            raise ConfigError("'repositories' must be a list")

        names: set[str] = set()
        for idx, entry in enumerate(repositories):
            if not isinstance(entry, dict):
                errors.append(f"Repository entry {idx} must be a dictionary")
                continue

            missing_keys = [key for key in ("name", "backend") if key not in entry]
            if missing_keys:
                errors.append(f"Repository entry {idx} is missing required keys: {', '.join(missing_keys)}")

            if "name" in entry:
                name = entry["name"]
                if not isinstance(name, str):
                    errors.append(f"Repository entry {idx} 'name' must be a string, got {type(name).__name__}")
                elif not name:
                    errors.append(f"Repository entry {idx} 'name' cannot be empty")
                elif not is_valid_repository_name(name):
                    errors.append(f"Repository entry {idx} 'name' must be a single path segment, got '{name}'")
                elif name in names:
                    errors.append(f"Repository entry {idx} has duplicate name '{name}'")
                else:
                    names.add(name)

            if "backend" in entry:
                backend = entry["backend"]
                if not isinstance(backend, dict):
                    errors.append(f"Repository entry {idx} 'backend' must be a dictionary")
                elif backend.get("kind") not in BACKEND_KINDS:
                    errors.append(
                        f"Repository entry {idx} backend 'kind' must be one of: "
                        f"{', '.join(sorted(BACKEND_KINDS))}"
                    )
                else:
                    location_key = BACKEND_KINDS[backend["kind"]]
                    location = backend.get(location_key)
                    if not isinstance(location, str) or not location:
                        errors.append(
                            f"Repository entry {idx} {backend['kind']} backend requires a non-empty '{location_key}'"
                        )

            problems = entry.get("problems", [])
            if not isinstance(problems, list):
                errors.append(f"Repository entry {idx} 'problems' must be a list")
                continue
            for p_idx, problem in enumerate(problems):
                if (
                    not isinstance(problem, dict)
                    or not isinstance(problem.get("name"), str)
                    or not isinstance(problem.get("path"), str)
                ):
                    errors.append(
                        f"Repository entry {idx} problem {p_idx} must have string 'name' and 'path'"
                    )

        if errors:
            raise ConfigError(errors)

    def read(self) -> ConfigData:
        """Load the registration file.

        A missing file reads as an empty registry.

        Raises:
            ConfigError: If the file cannot be read or is invalid
        """
        if not self.exists():
            message(f"No registration file at {self.config_file}", MessageType.DEBUG, VerbosityLevel.DEBUG)
            return {"repositories": []}

        try:
            with open(self.config_file) as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file {self.config_file} must contain a mapping")

        self.validate(config)
        config.setdefault("repositories", [])
        message(f"Configuration loaded from {self.config_file}", MessageType.DEBUG, VerbosityLevel.DEBUG)
        return config

    def write(self, config: ConfigData) -> None:
        """Validate and write the registration file.

        The file is replaced in one rename so readers never see a partial write.

        Raises:
            ConfigError: If validation fails or the file cannot be written
        """
        self.validate(config)

        clean_config: dict[str, Any] = {"repositories": []}
        for entry in config.get("repositories", []):
            clean_config["repositories"].append({
                "name": entry["name"],
                "backend": dict(entry["backend"]),
                "problems": [
                    {"name": problem["name"], "path": problem["path"]}
                    for problem in entry.get("problems", [])
                ],
            })

        temp_file = self.config_file.with_suffix(".yaml.tmp")
        try:
            self.config_directory.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                yaml.dump(clean_config, f, default_flow_style=False, sort_keys=False)
            temp_file.replace(self.config_file)
        except OSError as e:
            raise ConfigError(f"Failed to write configuration file: {e}") from e
        message(f"Configuration saved to {self.config_file}", MessageType.DEBUG, VerbosityLevel.DEBUG)
