"""Agent commands, registered by name."""

from typing import Dict, Type

from pixell_deploy.commands.base import Command
from pixell_deploy.commands.deploy_package import DeployPackageCommand
from pixell_deploy.commands.download_package import DownloadPackageCommand
from pixell_deploy.commands.version import VersionCommand
from pixell_deploy.core.exceptions import CommandError

COMMANDS: Dict[str, Type[Command]] = {
    DownloadPackageCommand.name: DownloadPackageCommand,
    DeployPackageCommand.name: DeployPackageCommand,
    VersionCommand.name: VersionCommand,
}


def get_command(name: str) -> Type[Command]:
    try:
        return COMMANDS[name]
    except KeyError:
        raise CommandError(f"Command '{name}' is not supported; expected one of: {', '.join(COMMANDS)}") from None


__all__ = ["COMMANDS", "Command", "get_command"]
