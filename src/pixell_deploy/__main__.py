"""CLI entrypoint for the deployment agent (pixell-deploy <command>)."""

from __future__ import annotations

import argparse
import sys
import traceback
from typing import List, Optional

from pixell_deploy.commands import COMMANDS, get_command
from pixell_deploy.core.config import load_settings
from pixell_deploy.core.exceptions import DeployAgentError
from pixell_deploy.utils.logging import setup_logging
from pixell_deploy.utils.service_messages import AbstractLog, ConsoleLog


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pixell-deploy", description="Pixell deployment agent")
    sub = parser.add_subparsers(dest="cmd")
    for name, command_class in COMMANDS.items():
        command_parser = sub.add_parser(name, help=command_class.help)
        command_class.add_arguments(command_parser)
    return parser


def describe_error(error: BaseException) -> str:
    """Message of the error followed by each message in its cause chain."""
    messages = [str(error)]
    cause = error.__cause__
    while cause is not None:
        messages.append(str(cause))
        cause = cause.__cause__
    return " --> ".join(m for m in messages if m)


def run(argv: Optional[List[str]] = None, log: Optional[AbstractLog] = None) -> int:
    log = log or ConsoleLog()
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()

    try:
        if argv and not argv[0].startswith("-"):
            get_command(argv[0])
        args = parser.parse_args(argv)
        if not args.cmd:
            parser.print_help(sys.stderr)
            return 1
        settings = load_settings()
        setup_logging(log, settings.log_level, settings.log_format)
        command = get_command(args.cmd)(settings, log)
        return command.execute(args)
    except DeployAgentError as e:
        log.error(f"Error: {describe_error(e)}")
        return 1
    except Exception as e:
        log.error(f"Error: {describe_error(e)}")
        log.verbose(traceback.format_exc())
        return 100


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
