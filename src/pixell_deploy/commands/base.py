"""Common shape of an agent command."""

from __future__ import annotations

import argparse
from abc import ABC, abstractmethod

from pixell_deploy.core.config import Settings
from pixell_deploy.utils.service_messages import AbstractLog


class Command(ABC):
    """A named sub-command of the agent.

    Commands receive the settings and the service-message log from the entry
    point and return the process exit code.
    """

    name: str = ""
    help: str = ""

    def __init__(self, settings: Settings, log: AbstractLog):
        self.settings = settings
        self.log = log

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        pass

    @abstractmethod
    def execute(self, args: argparse.Namespace) -> int:
        ...
