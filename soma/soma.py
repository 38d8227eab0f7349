#!/usr/bin/env python

"""Your one-stop CTF problem management tool."""

import argparse
import getpass
import sys
from pathlib import Path

from soma import VERSION
from soma.cli_extensions import ProblemCommands, RepositoryCommands
from soma.config import Config
from soma.core import Daemon, Environment, RepositoryManager
from soma.errors import SomaError
from soma.output import MessageType, VerbosityLevel, get_output, message


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soma",
        description="Your one-stop CTF problem management tool",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase verbosity (-v, -vv, -vvv)",
    )
    parser.add_argument(
        "--no-color", action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--data-dir", type=Path, default=None,
        help="Data directory (default: ~/.soma)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    RepositoryCommands.add_cli_arguments(subparsers)  # add, update, list
    ProblemCommands.add_cli_arguments(subparsers)     # build, run, clean, fetch
    return parser


def create_environment(data_dir: Path | None) -> Environment:
    config = Config(config_dir=data_dir)
    config.ensure_directories()
    return Environment(
        username=getpass.getuser(),
        manager=RepositoryManager(config),
        daemon=Daemon(),
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the soma CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    output_mgr = get_output()
    output_mgr.verbosity = args.verbose
    output_mgr.use_color = not args.no_color and sys.stdout.isatty()

    message(f"Command: {args.command}", MessageType.DEBUG, VerbosityLevel.DEBUG)

    if args.command is None:
        parser.print_help()
        return

    try:
        env = create_environment(args.data_dir)
        if args.command in RepositoryCommands.COMMANDS:
            RepositoryCommands.process_cli_command(args, env)
        elif args.command in ProblemCommands.COMMANDS:
            ProblemCommands.process_cli_command(args, env)
    except SomaError as e:
        message(str(e), MessageType.ERROR, VerbosityLevel.ALWAYS)
        sys.exit(1)


if __name__ == "__main__":
    main()
