"""CLI commands acting on a single problem."""

import argparse
from pathlib import Path

from soma.core import operations
from soma.core.operations import Environment
from soma.output import MessageType, VerbosityLevel, message

PROBLEM_HELP = "problem name with optional repository name prefix (repository/problem)"


class ProblemCommands:
    """Manages CLI commands for problem operations."""

    COMMANDS = ("build", "run", "clean", "fetch")

    @staticmethod
    def add_cli_arguments(subparsers) -> None:
        """Add problem-related CLI arguments.

        Args:
            subparsers: The argparse subparsers to add to
        """
        build_parser = subparsers.add_parser("build", help="Build a problem image")
        build_parser.add_argument("problem", help=PROBLEM_HELP)

        run_parser = subparsers.add_parser("run", help="Run a problem container")
        run_parser.add_argument("problem", help=PROBLEM_HELP)
        run_parser.add_argument("port", help="Host port to serve the problem on")

        clean_parser = subparsers.add_parser("clean", help="Remove a problem's containers and image")
        clean_parser.add_argument("problem", help=PROBLEM_HELP)

        fetch_parser = subparsers.add_parser("fetch", help="Copy a problem's public files")
        fetch_parser.add_argument("problem", help=PROBLEM_HELP)
        fetch_parser.add_argument(
            "--output", "-o", type=Path, default=Path.cwd(),
            help="Directory to copy the files into (default: current directory)",
        )

    @staticmethod
    def process_cli_command(args: argparse.Namespace, env: Environment) -> None:
        """Process problem commands."""
        if args.command == "build":
            operations.build(env, args.problem)
        elif args.command == "run":
            operations.run(env, args.problem, args.port)
        elif args.command == "clean":
            operations.clean(env, args.problem)
        elif args.command == "fetch":
            copied = operations.fetch(env, args.problem, args.output)
            if not copied:
                message(f"Problem '{args.problem}' has no public files", MessageType.WARNING, VerbosityLevel.ALWAYS)
            for path in copied:
                message(f"  {path}", MessageType.NORMAL, VerbosityLevel.ALWAYS)
