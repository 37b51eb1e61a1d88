"""Download a package into the local cache."""

from __future__ import annotations

import argparse
from typing import Optional

import structlog

from pixell_deploy.commands.base import Command
from pixell_deploy.core.exceptions import CommandError, DeployAgentError
from pixell_deploy.core.models import FeedCredentials, FeedType
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.deploy.variables import SpecialVariables
from pixell_deploy.packages.resolver import PackageResolver

logger = structlog.get_logger()


class DownloadPackageCommand(Command):
    """Resolve one package from a feed and report it to the orchestrator."""

    name = "download-package"
    help = "Downloads a package from a feed, or reuses the cached copy"

    def __init__(self, settings, log, resolver: Optional[PackageResolver] = None):
        super().__init__(settings, log)
        self.resolver = resolver or PackageResolver(settings, log)

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--packageId", dest="package_id", help="Package ID to download")
        parser.add_argument("--packageVersion", dest="package_version", help="Package version to download")
        parser.add_argument("--feedId", dest="feed_id", help="Id of the feed, used to partition the cache")
        parser.add_argument("--feedUri", dest="feed_uri", help="URL or path of the feed")
        parser.add_argument(
            "--feedType",
            dest="feed_type",
            choices=[t.value for t in FeedType],
            help="Feed protocol; inferred from the feed URI when omitted",
        )
        parser.add_argument("--feedUsername", dest="feed_username", help="[Optional] Username for the feed")
        parser.add_argument("--feedPassword", dest="feed_password", help="[Optional] Password for the feed")
        parser.add_argument(
            "--forcePackageDownload",
            dest="force_download",
            action="store_true",
            help="[Optional] Download even when the package is already cached",
        )
        parser.add_argument("--attempts", dest="attempts", help="[Optional] Number of download attempts")
        parser.add_argument(
            "--attemptBackoffSeconds",
            dest="attempt_backoff",
            help="[Optional] Seconds to wait between download attempts",
        )

    def execute(self, args: argparse.Namespace) -> int:
        version, attempts, backoff = self.validate(args)
        credentials = None
        if args.feed_username:
            credentials = FeedCredentials(args.feed_username, args.feed_password or "")

        try:
            package = self.resolver.resolve(
                args.package_id,
                version,
                args.feed_id,
                args.feed_uri,
                credentials=credentials,
                force_download=args.force_download,
                max_attempts=attempts,
                backoff=backoff,
                feed_type=FeedType(args.feed_type) if args.feed_type else None,
            )
        except DeployAgentError:
            self.log.error(
                f"Failed to download package {args.package_id} {args.package_version} "
                f"from feed: '{args.feed_uri}'"
            )
            raise

        logger.debug("Package resolved", package_id=package.package_id, path=str(package.path), size=package.size)
        self.log.info(f"Found package {package.package_id} v{package.version}")
        self.log.set_output_variable(SpecialVariables.Package.Output.HASH, package.hash)
        self.log.set_output_variable(SpecialVariables.Package.Output.SIZE, str(package.size))
        self.log.set_output_variable(
            SpecialVariables.Package.Output.DEPRECATED_INSTALLATION_DIRECTORY_PATH, str(package.path)
        )
        self.log.package_found(package.package_id, package.version, package.hash, package.extension, str(package.path))
        self.log.info(
            f"Package {package.package_id} {package.version} successfully downloaded from feed: '{args.feed_uri}'"
        )
        return 0

    @staticmethod
    def validate(args: argparse.Namespace):
        """Check the command line and return (version, attempts, backoff)."""
        if not args.package_id:
            raise CommandError("No package ID was specified. Please pass --packageId YourPackage")
        if not args.package_version:
            raise CommandError("No package version was specified. Please pass --packageVersion 1.0.0.0")

        version = SemanticVersion.try_parse(args.package_version)
        if version is None:
            raise CommandError(f"Package version '{args.package_version}' specified is not a valid semantic version")

        if not args.feed_id:
            raise CommandError("No feed ID was specified. Please pass --feedId feed-id")
        if not args.feed_uri:
            raise CommandError("No feed URI was specified. Please pass --feedUri https://url/to/nuget/feed")

        attempts = None
        if args.attempts is not None:
            try:
                attempts = int(args.attempts)
            except ValueError:
                attempts = 0
            if attempts < 1:
                raise CommandError(
                    f"The requested number of download attempts '{args.attempts}' "
                    "is not a valid integer number greater than zero"
                )

        backoff = None
        if args.attempt_backoff is not None:
            try:
                backoff = float(args.attempt_backoff)
            except ValueError:
                backoff = -1.0
            if backoff < 0:
                raise CommandError(
                    f"The requested download attempt backoff '{args.attempt_backoff}' "
                    "is not a valid number of seconds"
                )

        return version, attempts, backoff
