"""Record the outcome of the deployment in the installation journal."""

from __future__ import annotations

from typing import Optional

from pixell_deploy.core.models import JournalEntry
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions.base import Convention, ConventionResult
from pixell_deploy.deploy.journal import DeploymentJournal
from pixell_deploy.deploy.variables import SpecialVariables
from pixell_deploy.utils.service_messages import AbstractLog


class JournalWriterConvention(Convention):
    """Final step: writes success after the install phase, failure on rollback."""

    install_phase = False

    def __init__(self, log: AbstractLog, journal: DeploymentJournal):
        self.log = log
        self.journal = journal

    def install(self, deployment: RunningDeployment) -> Optional[ConventionResult]:
        self.write(deployment, was_successful=True)
        return ConventionResult.CONTINUE

    def rollback(self, deployment: RunningDeployment) -> None:
        self.write(deployment, was_successful=False)

    def write(self, deployment: RunningDeployment, was_successful: bool) -> None:
        if deployment.skip_journal:
            return

        package_id = deployment.package_id
        version = deployment.package_version
        if deployment.resolved_package is not None:
            package_id = package_id or deployment.resolved_package.package_id
            version = version or str(deployment.resolved_package.version)
        if not package_id or not version:
            self.log.verbose("No package id or version is known; the journal will not be updated")
            return

        entry = JournalEntry(
            retention_policy_set=deployment.retention_policy_set,
            package_id=package_id,
            version=version,
            was_successful=was_successful,
            extracted_to=str(deployment.staging_directory) if deployment.staging_directory else None,
            deployment_id=deployment.variables.get(SpecialVariables.DEPLOYMENT_ID),
        )
        self.journal.record(entry)
