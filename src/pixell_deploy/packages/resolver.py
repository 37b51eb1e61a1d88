"""Resolve a package reference to a local file."""

from __future__ import annotations

import re
import time
from typing import Callable, Dict, Optional, Type, Union

import httpx
import structlog

from pixell_deploy.core.config import Settings
from pixell_deploy.core.models import FeedCredentials, FeedType, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.cache import PackageCache
from pixell_deploy.packages.downloaders import (
    FileSharePackageDownloader,
    GitHubPackageDownloader,
    NuGetPackageDownloader,
    PackageDownloader,
    UrlPackageDownloader,
)
from pixell_deploy.packages.downloaders.url import url_extension
from pixell_deploy.utils.service_messages import AbstractLog

logger = structlog.get_logger()

DOWNLOADERS: Dict[FeedType, Type[PackageDownloader]] = {
    FeedType.NUGET: NuGetPackageDownloader,
    FeedType.GITHUB: GitHubPackageDownloader,
    FeedType.FILE_SHARE: FileSharePackageDownloader,
    FeedType.URL: UrlPackageDownloader,
}

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def detect_feed_type(feed_uri: str) -> FeedType:
    """Guess the feed protocol from its URI."""
    if feed_uri.startswith(("\\\\", "/", ".")) or _WINDOWS_DRIVE.match(feed_uri):
        return FeedType.FILE_SHARE

    scheme = feed_uri.split(":", 1)[0].lower() if ":" in feed_uri else ""
    if scheme in ("", "file"):
        return FeedType.FILE_SHARE

    url = httpx.URL(feed_uri)
    if url.host.lower() == "api.github.com":
        return FeedType.GITHUB
    if url_extension(feed_uri) is not None:
        return FeedType.URL
    return FeedType.NUGET


class PackageResolver:
    """Front door of the package acquisition subsystem.

    Picks the downloader for the feed and hands it the request; the
    downloader decides between the cache and the network.
    """

    def __init__(
        self,
        settings: Settings,
        log: AbstractLog,
        cache: Optional[PackageCache] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.log = log
        self.cache = cache or PackageCache(settings.package_cache_dir)
        self.transport = transport
        self.sleep = sleep

    def downloader_for(self, feed_type: FeedType) -> PackageDownloader:
        downloader_class = DOWNLOADERS[feed_type]
        return downloader_class(self.cache, self.log, self.settings, transport=self.transport, sleep=self.sleep)

    def resolve(
        self,
        package_id: str,
        version: Union[str, SemanticVersion],
        feed_id: Optional[str],
        feed_uri: str,
        credentials: Optional[FeedCredentials] = None,
        force_download: bool = False,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        feed_type: Optional[FeedType] = None,
        required_free_space_mb: Optional[int] = None,
        skip_free_space_check: Optional[bool] = None,
    ) -> PackagePhysicalFile:
        """Return the package file, from the cache when possible.

        Raises:
            PackageError: Any of the acquisition failures (not found, auth,
                rate limit, rejected request, exhausted retries, ...)
        """
        if isinstance(version, str):
            version = SemanticVersion.parse(version)

        feed_type = feed_type or detect_feed_type(feed_uri)
        logger.debug(
            "Resolving package",
            package_id=package_id,
            version=str(version),
            feed_id=feed_id,
            feed_type=feed_type.value,
            force_download=force_download,
        )

        return self.downloader_for(feed_type).download_package(
            package_id,
            version,
            feed_id,
            feed_uri,
            credentials,
            force_download,
            self.settings.max_download_attempts if max_attempts is None else max_attempts,
            self.settings.download_attempt_backoff_seconds if backoff is None else backoff,
            required_free_space_mb=required_free_space_mb,
            skip_free_space_check=skip_free_space_check,
        )
