"""Print the agent version."""

import argparse

from pixell_deploy import __version__
from pixell_deploy.commands.base import Command


class VersionCommand(Command):
    name = "version"
    help = "Show the agent version"

    def execute(self, args: argparse.Namespace) -> int:
        self.log.info(__version__)
        return 0
