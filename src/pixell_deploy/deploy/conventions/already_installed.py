"""Skip the deployment when the same package was already installed successfully."""

from __future__ import annotations

from typing import Optional

from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions.base import Convention, ConventionResult
from pixell_deploy.deploy.journal import DeploymentJournal
from pixell_deploy.deploy.variables import SpecialVariables
from pixell_deploy.utils.service_messages import AbstractLog


class AlreadyInstalledConvention(Convention):

    def __init__(self, log: AbstractLog, journal: DeploymentJournal):
        self.log = log
        self.journal = journal

    def install(self, deployment: RunningDeployment) -> Optional[ConventionResult]:
        variables = deployment.variables
        if not variables.get_flag(SpecialVariables.Package.SKIP_IF_ALREADY_INSTALLED):
            return ConventionResult.CONTINUE

        package_id = deployment.package_id
        version = deployment.package_version
        if not package_id or not version:
            return ConventionResult.CONTINUE

        previous = self.journal.get_latest_installation(deployment.retention_policy_set, package_id, version)
        if previous is None:
            return ConventionResult.CONTINUE

        if not previous.was_successful:
            self.log.info("The previous attempt to deploy this package was not successful; re-deploying.")
            return ConventionResult.CONTINUE

        self.log.info("The package has already been installed on this machine, so installation will be skipped.")
        extracted_to = previous.extracted_to or ""
        self.log.set_output_variable_but_do_not_add_to_variables(
            SpecialVariables.Package.Output.INSTALLATION_DIRECTORY_PATH, extracted_to
        )
        self.log.set_output_variable_but_do_not_add_to_variables(
            SpecialVariables.Package.Output.DEPRECATED_INSTALLATION_DIRECTORY_PATH, extracted_to
        )
        deployment.skip_remaining()
        variables.set_flag(SpecialVariables.Action.SKIP_JOURNAL, True)
        return ConventionResult.SKIP_REMAINING
