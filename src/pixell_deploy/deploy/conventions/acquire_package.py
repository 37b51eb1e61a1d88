"""Materialize the package file the rest of the pipeline works on."""

from __future__ import annotations

from typing import Optional

from pixell_deploy.core.exceptions import ConfigurationError, PackageNotFoundError
from pixell_deploy.core.models import FeedCredentials, FeedType, PackageIdentity, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions.base import Convention, ConventionResult
from pixell_deploy.deploy.variables import SpecialVariables, VariableDictionary
from pixell_deploy.packages.naming import split_extension
from pixell_deploy.packages.resolver import PackageResolver
from pixell_deploy.utils.service_messages import AbstractLog


def feed_credentials(variables: VariableDictionary) -> Optional[FeedCredentials]:
    username = variables.get(SpecialVariables.Package.FEED_USERNAME)
    password = variables.get(SpecialVariables.Package.FEED_PASSWORD)
    if not username:
        return None
    return FeedCredentials(username, password or "")


class AcquirePackageConvention(Convention):
    """Uses the package file given on the command line, or resolves it from its feed."""

    def __init__(self, log: AbstractLog, resolver: PackageResolver):
        self.log = log
        self.resolver = resolver

    def install(self, deployment: RunningDeployment) -> Optional[ConventionResult]:
        if deployment.package_file is not None:
            deployment.resolved_package = self._local_package(deployment)
        else:
            deployment.resolved_package = self._resolve(deployment)
            deployment.package_file = deployment.resolved_package.path

        package = deployment.resolved_package
        self.log.package_found(
            package.package_id, package.version, package.hash, package.extension, str(package.path)
        )
        return ConventionResult.CONTINUE

    def _local_package(self, deployment: RunningDeployment) -> PackagePhysicalFile:
        path = deployment.package_file
        if not path.is_file():
            raise PackageNotFoundError(f"Could not find package file: {path}")

        _, extension = split_extension(path.name)
        if extension is None:
            raise ConfigurationError(f"Unsupported package file type: {path.name}")

        package_id = deployment.package_id or path.name[: -len(extension)]
        version = SemanticVersion.try_parse(deployment.package_version) or SemanticVersion(0)
        self.log.verbose(f"Using package file '{path}'")
        return PackagePhysicalFile.build(path, PackageIdentity(package_id, version), extension.lower())

    def _resolve(self, deployment: RunningDeployment) -> PackagePhysicalFile:
        variables = deployment.variables
        package_id = deployment.package_id
        version = deployment.package_version
        feed_uri = variables.get(SpecialVariables.Package.FEED_URI)
        if not package_id or not version or not feed_uri:
            raise ConfigurationError(
                "A package file or the package id, version and feed URI variables are required"
            )

        feed_type_name = variables.get(SpecialVariables.Package.FEED_TYPE)
        try:
            feed_type = FeedType(feed_type_name.lower()) if feed_type_name else None
        except ValueError as e:
            raise ConfigurationError(f"Unknown feed type '{feed_type_name}'") from e

        return self.resolver.resolve(
            package_id,
            version,
            variables.get(SpecialVariables.Package.FEED_ID),
            feed_uri,
            credentials=feed_credentials(variables),
            force_download=variables.get_flag(SpecialVariables.Package.FORCE_DOWNLOAD),
            feed_type=feed_type,
            required_free_space_mb=variables.get_int(SpecialVariables.FREE_DISK_SPACE_OVERRIDE_MB),
            skip_free_space_check=variables.get_flag(SpecialVariables.SKIP_FREE_DISK_SPACE_CHECK) or None,
        )
