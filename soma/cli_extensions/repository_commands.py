"""CLI commands for managing registered repositories."""

import argparse

from soma.core import operations
from soma.core.operations import Environment
from soma.output import MessageType, VerbosityLevel, message


class RepositoryCommands:
    """Manages CLI commands for repository operations."""

    COMMANDS = ("add", "update", "list")

    @staticmethod
    def add_cli_arguments(subparsers) -> None:
        """Add repository-related CLI arguments.

        Args:
            subparsers: The argparse subparsers to add to
        """
        add_parser = subparsers.add_parser("add", help="Register a problem repository")
        add_parser.add_argument("repository", help="git address or local path of a problem repository")
        add_parser.add_argument(
            "--name", dest="repository_name",
            help="Name to register the repository under (derived from the address if omitted)",
        )

        update_parser = subparsers.add_parser(
            "update", help="Update a repository from its source",
        )
        update_parser.add_argument("repository", help="Registered repository name")

        subparsers.add_parser("list", help="List registered repositories and their problems")

    @classmethod
    def process_cli_command(cls, args: argparse.Namespace, env: Environment) -> None:
        """Process repository commands."""
        if args.command == "add":
            operations.add(env, args.repository, getattr(args, "repository_name", None))
        elif args.command == "update":
            operations.update(env, args.repository)
        elif args.command == "list":
            cls.list_repositories(env)

    @staticmethod
    def list_repositories(env: Environment) -> None:
        """List registered repositories."""
        statuses = operations.list_repositories(env)

        if not statuses:
            message("No repositories registered.", MessageType.NORMAL, VerbosityLevel.ALWAYS)
            message("Use 'soma add <repository>' to add one.", MessageType.NORMAL, VerbosityLevel.ALWAYS)
            return

        message("\n=== Registered Repositories ===\n", MessageType.NORMAL, VerbosityLevel.ALWAYS)
        for status in statuses:
            repository = status.repository
            running = " (running)" if status.running else ""
            message(f"  {repository.name}{running}", MessageType.NORMAL, VerbosityLevel.ALWAYS)
            message(f"    {repository.backend}", MessageType.NORMAL, VerbosityLevel.ALWAYS)
            for problem_name, built in status.built.items():
                marker = "built" if built else "not built"
                message(f"    - {problem_name} [{marker}]", MessageType.NORMAL, VerbosityLevel.ALWAYS)

        message("", MessageType.NORMAL, VerbosityLevel.ALWAYS)
        message(f"Total: {len(statuses)} repository(s)", MessageType.NORMAL, VerbosityLevel.ALWAYS)
