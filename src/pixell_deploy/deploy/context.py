"""State shared by the conventions of a single deployment."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pixell_deploy.core.models import PackagePhysicalFile
from pixell_deploy.deploy.variables import SpecialVariables, VariableDictionary


class RunningDeployment:
    """The deployment being executed.

    Created once per invocation and discarded when the pipeline finishes.
    Conventions communicate through the variables and the attributes here.
    """

    def __init__(
        self,
        variables: VariableDictionary,
        package_file: Optional[Path] = None,
        current_directory: Optional[Path] = None,
    ):
        self.variables = variables
        self.package_file = package_file
        self.current_directory = current_directory or Path.cwd()
        self.staging_directory: Optional[Path] = None
        self.resolved_package: Optional[PackagePhysicalFile] = None
        self.error: Optional[BaseException] = None

    @property
    def skip_remaining_conventions(self) -> bool:
        return self.variables.get_flag(SpecialVariables.Action.SKIP_REMAINING_CONVENTIONS)

    def skip_remaining(self) -> None:
        self.variables.set_flag(SpecialVariables.Action.SKIP_REMAINING_CONVENTIONS, True)

    @property
    def skip_journal(self) -> bool:
        return self.variables.get_flag(SpecialVariables.Action.SKIP_JOURNAL)

    @property
    def package_id(self) -> Optional[str]:
        return self.variables.get(SpecialVariables.Package.PACKAGE_ID)

    @property
    def package_version(self) -> Optional[str]:
        return self.variables.get(SpecialVariables.Package.PACKAGE_VERSION)

    @property
    def retention_policy_set(self) -> Optional[str]:
        return self.variables.get(SpecialVariables.RETENTION_POLICY_SET)

    def __repr__(self) -> str:
        return (
            f"RunningDeployment(package_id={self.package_id!r}, version={self.package_version!r}, "
            f"current_directory='{self.current_directory}')"
        )
