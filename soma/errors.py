"""Error types raised by soma.

Every error is a :class:`SomaError`; the CLI entry point is the only place
that turns them into messages and exit codes.
"""


class SomaError(Exception):
    """Base class for all soma errors."""


class InvalidRepositoryPathError(SomaError):
    """The repository address is neither a directory nor a usable URL."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Invalid repository path: '{address}'")


class InvalidRepositoryNameError(SomaError):
    """The repository name cannot be used as a cache directory name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid repository name '{name}': must be a single path segment other than '.' and '..'"
        )


class InvalidProblemListError(SomaError):
    """The problem list file has duplicate or unresolvable entries."""


class InvalidRepositoryError(SomaError):
    """A declared problem directory has no manifest."""

    def __init__(self, manifest_path):
        self.manifest_path = manifest_path
        super().__init__(f"Problem manifest not found: {manifest_path}")


class UnsupportedUpdateError(SomaError):
    """The update would remove problems that still have built resources."""

    def __init__(self, repository_name: str, problem_names: list[str]):
        self.repository_name = repository_name
        self.problem_names = problem_names
        super().__init__(
            f"Update of repository '{repository_name}' would remove problems "
            f"with existing images or containers: {', '.join(problem_names)}. "
            f"Clean them first."
        )


class SourceUnavailableError(SomaError):
    """The backend could not materialize its content."""


class InvalidUnicodeError(SomaError):
    """A path cannot be represented as a UTF-8 target path string."""


class FileNameNotFoundError(SomaError):
    """A manifest file entry has no base name to place it under."""


class DuplicateRepositoryError(SomaError):
    """A repository with this name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Repository '{name}' already exists")


class PermissionParseError(SomaError):
    """A permission string is not an octal value in [0, 0o777]."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"Invalid file permissions '{value}': expected an octal string no greater than 777"
        )


class ManifestError(SomaError):
    """A problem manifest is malformed."""


class RepositoryNotFoundError(SomaError):
    """No repository is registered under this name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Repository '{name}' not found")


class ProblemNotFoundError(SomaError):
    """No registered repository contains the queried problem."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Problem '{query}' not found")


class AmbiguousProblemError(SomaError):
    """A problem name without repository prefix matches several repositories."""

    def __init__(self, problem_name: str, repository_names: list[str]):
        self.problem_name = problem_name
        self.repository_names = repository_names
        candidates = ", ".join(f"{name}/{problem_name}" for name in repository_names)
        super().__init__(
            f"Problem '{problem_name}' exists in several repositories; use one of: {candidates}"
        )


class ImageNotFoundError(SomaError):
    """The problem image has not been built."""

    def __init__(self, image_name: str):
        self.image_name = image_name
        super().__init__(f"Image '{image_name}' not found. Build the problem first.")


class UpdateInProgressError(SomaError):
    """Another update of the same repository is running."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Repository '{name}' is already being updated")


class DaemonError(SomaError):
    """The container daemon rejected or failed an operation."""
