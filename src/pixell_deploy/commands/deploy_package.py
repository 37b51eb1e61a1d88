"""Deploy a package by running the convention pipeline."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

import structlog

from pixell_deploy.commands.base import Command
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions import (
    AcquirePackageConvention,
    AlreadyInstalledConvention,
    Convention,
    ExtractPackageConvention,
    JournalWriterConvention,
)
from pixell_deploy.deploy.journal import DeploymentJournal
from pixell_deploy.deploy.runner import ConventionProcessor
from pixell_deploy.deploy.variables import SpecialVariables, VariableDictionary
from pixell_deploy.packages.resolver import PackageResolver
from pixell_deploy.utils.logging import bind_deployment_context

logger = structlog.get_logger()


class DeployPackageCommand(Command):
    name = "deploy-package"
    help = "Extracts a package and records the installation in the journal"

    def __init__(
        self,
        settings,
        log,
        resolver: Optional[PackageResolver] = None,
        journal: Optional[DeploymentJournal] = None,
    ):
        super().__init__(settings, log)
        self.resolver = resolver or PackageResolver(settings, log)
        self.journal = journal or DeploymentJournal(settings.journal_file)

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--package", dest="package", help="Path to a package file to deploy")
        parser.add_argument("--variables", dest="variables", help="Path to a YAML or JSON variables file")

    def conventions(self) -> List[Convention]:
        return [
            AlreadyInstalledConvention(self.log, self.journal),
            AcquirePackageConvention(self.log, self.resolver),
            ExtractPackageConvention(self.log, self.settings.applications_root),
            JournalWriterConvention(self.log, self.journal),
        ]

    def execute(self, args: argparse.Namespace) -> int:
        variables = VariableDictionary.from_file(Path(args.variables)) if args.variables else VariableDictionary()
        package_file = Path(args.package).resolve() if args.package else None

        bind_deployment_context(
            deployment_id=variables.get(SpecialVariables.DEPLOYMENT_ID), command=self.name
        )
        if variables.get_flag(SpecialVariables.PRINT_VARIABLES):
            self.print_variables(variables)

        deployment = RunningDeployment(variables, package_file=package_file)
        state = ConventionProcessor(deployment, self.conventions(), self.log).run()
        logger.info("Deployment finished", state=state.value, package_id=deployment.package_id)
        return 0

    def print_variables(self, variables: VariableDictionary) -> None:
        self.log.verbose("The following variables are available:")
        for name in sorted(variables, key=str.casefold):
            value = "********" if "password" in name.lower() else variables.get(name, "")
            self.log.verbose(f"[{name}] = '{value}'")
