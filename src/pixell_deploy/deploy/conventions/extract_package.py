"""Extract the package into its application directory."""

from __future__ import annotations

import tarfile
import zipfile
from pathlib import Path
from typing import Optional

import structlog

from pixell_deploy.core.exceptions import ConfigurationError, PackageError
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions.base import Convention, ConventionResult
from pixell_deploy.deploy.variables import SpecialVariables
from pixell_deploy.utils.service_messages import AbstractLog

logger = structlog.get_logger()

ZIP_EXTENSIONS = (".zip", ".nupkg", ".jar")
TAR_EXTENSIONS = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.bz", ".tbz")

# NuGet packaging metadata that never belongs in the application directory
_NUGET_METADATA = ("_rels/", "package/services/metadata/", "[Content_Types].xml")


def _is_nuget_metadata(name: str) -> bool:
    return name.startswith(_NUGET_METADATA) or ("/" not in name and name.endswith(".nuspec"))


def _safe_target(root: Path, member_name: str) -> Path:
    target = (root / member_name).resolve()
    if target != root and root not in target.parents:
        raise PackageError(f"Archive entry escapes the extraction directory: {member_name}")
    return target


def extract_zip(archive: Path, destination: Path, skip_nuget_metadata: bool = False) -> int:
    count = 0
    root = destination.resolve()
    with zipfile.ZipFile(archive, "r") as zf:
        for info in zf.infolist():
            if skip_nuget_metadata and _is_nuget_metadata(info.filename):
                continue
            _safe_target(root, info.filename)
            zf.extract(info, destination)
            if not info.is_dir():
                count += 1
    return count


def extract_tar(archive: Path, destination: Path) -> int:
    count = 0
    root = destination.resolve()
    with tarfile.open(archive, "r:*") as tf:
        members = []
        for member in tf.getmembers():
            if not (member.isfile() or member.isdir()):
                logger.debug("Skipping special tar member", member=member.name)
                continue
            _safe_target(root, member.name)
            members.append(member)
            if member.isfile():
                count += 1
        tf.extractall(destination, members=members, filter="data")
    return count


def next_free_directory(base: Path) -> Path:
    """base, or base_1, base_2, ... whichever does not exist yet."""
    candidate = base
    suffix = 0
    while candidate.exists():
        suffix += 1
        candidate = base.with_name(f"{base.name}_{suffix}")
    return candidate


class ExtractPackageConvention(Convention):

    def __init__(self, log: AbstractLog, applications_root: Path):
        self.log = log
        self.applications_root = applications_root

    def target_directory(self, deployment: RunningDeployment) -> Path:
        custom = deployment.variables.get(SpecialVariables.Package.CUSTOM_INSTALLATION_DIRECTORY)
        if custom:
            return Path(custom)
        package = deployment.resolved_package
        return next_free_directory(self.applications_root / package.package_id / str(package.version))

    def install(self, deployment: RunningDeployment) -> Optional[ConventionResult]:
        package = deployment.resolved_package
        if package is None:
            raise ConfigurationError("No package has been acquired for extraction")

        target = self.target_directory(deployment)
        target.mkdir(parents=True, exist_ok=True)
        self.log.verbose(f"Extracting package to: {target}")

        extension = package.extension.lower()
        if extension in ZIP_EXTENSIONS:
            count = extract_zip(package.path, target, skip_nuget_metadata=extension == ".nupkg")
        elif extension in TAR_EXTENSIONS:
            count = extract_tar(package.path, target)
        else:
            raise ConfigurationError(f"Don't know how to extract packages of type '{extension}'")

        self.log.verbose(f"Extracted {count} files")

        deployment.staging_directory = target
        deployment.current_directory = target
        variables = deployment.variables
        variables.set(SpecialVariables.ORIGINAL_PACKAGE_DIRECTORY_PATH, str(target))
        self.log.set_output_variable(
            SpecialVariables.Package.Output.INSTALLATION_DIRECTORY_PATH, str(target), variables
        )
        self.log.set_output_variable(
            SpecialVariables.Package.Output.DEPRECATED_INSTALLATION_DIRECTORY_PATH, str(target), variables
        )
        return ConventionResult.CONTINUE
