"""Tests for cli_extensions/problem_commands.py - Problem CLI commands."""

import argparse
from pathlib import Path
from unittest.mock import Mock, patch

from soma.cli_extensions.problem_commands import ProblemCommands


def _parser():
    parser = argparse.ArgumentParser()
    subparsers = parser.add_subparsers(dest="command")
    ProblemCommands.add_cli_arguments(subparsers)
    return parser


class TestProblemCommandsAddCliArguments:

    def test_adds_parsers(self):
        mock_subparsers = Mock()
        mock_subparsers.add_parser.return_value = Mock()

        ProblemCommands.add_cli_arguments(mock_subparsers)

        calls = [call[0][0] for call in mock_subparsers.add_parser.call_args_list]
        assert calls == ["build", "run", "clean", "fetch"]

    def test_parses_run(self):
        args = _parser().parse_args(["run", "ctf/pwn1", "31337"])
        assert args.problem == "ctf/pwn1"
        assert args.port == "31337"

    def test_fetch_output_defaults_to_cwd(self):
        args = _parser().parse_args(["fetch", "pwn1"])
        assert args.output == Path.cwd()

    def test_fetch_output(self):
        args = _parser().parse_args(["fetch", "pwn1", "-o", "/tmp/out"])
        assert args.output == Path("/tmp/out")


class TestProblemCommandsProcess:

    def test_build(self):
        env = Mock()
        with patch("soma.cli_extensions.problem_commands.operations") as mock_ops:
            ProblemCommands.process_cli_command(argparse.Namespace(command="build", problem="pwn1"), env)
        mock_ops.build.assert_called_once_with(env, "pwn1")

    def test_run(self):
        env = Mock()
        args = argparse.Namespace(command="run", problem="pwn1", port="31337")
        with patch("soma.cli_extensions.problem_commands.operations") as mock_ops:
            ProblemCommands.process_cli_command(args, env)
        mock_ops.run.assert_called_once_with(env, "pwn1", "31337")

    def test_clean(self):
        env = Mock()
        with patch("soma.cli_extensions.problem_commands.operations") as mock_ops:
            ProblemCommands.process_cli_command(argparse.Namespace(command="clean", problem="pwn1"), env)
        mock_ops.clean.assert_called_once_with(env, "pwn1")

    def test_fetch_lists_copied_files(self, tmp_path):
        args = argparse.Namespace(command="fetch", problem="pwn1", output=tmp_path)
        with (
            patch("soma.cli_extensions.problem_commands.operations") as mock_ops,
            patch("soma.cli_extensions.problem_commands.message") as mock_message,
        ):
            mock_ops.fetch.return_value = [tmp_path / "pwn1"]
            ProblemCommands.process_cli_command(args, Mock())

        mock_message.assert_called_once()
        assert str(tmp_path / "pwn1") in mock_message.call_args[0][0]

    def test_fetch_warns_without_public_files(self, tmp_path):
        args = argparse.Namespace(command="fetch", problem="pwn1", output=tmp_path)
        with (
            patch("soma.cli_extensions.problem_commands.operations") as mock_ops,
            patch("soma.cli_extensions.problem_commands.message") as mock_message,
        ):
            mock_ops.fetch.return_value = []
            ProblemCommands.process_cli_command(args, Mock())

        assert "no public files" in mock_message.call_args[0][0]
