"""CLI command extensions for soma."""

from .problem_commands import ProblemCommands
from .repository_commands import RepositoryCommands

__all__ = [
    "ProblemCommands",
    "RepositoryCommands",
]
