"""Downloads a package straight from an artifact URL."""

from __future__ import annotations

from typing import Optional

import httpx

from pixell_deploy.core.exceptions import ConfigurationError
from pixell_deploy.core.models import FeedCredentials, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.downloaders.base import PackageDownloader
from pixell_deploy.packages.naming import split_extension


def url_extension(feed_uri: str) -> Optional[str]:
    path = httpx.URL(feed_uri).path
    _, extension = split_extension(path.rsplit("/", 1)[-1])
    return extension.lower() if extension else None


class UrlPackageDownloader(PackageDownloader):
    """The feed URI is the artifact itself; id and version only name the cache entry."""

    def _download(
        self,
        package_id: str,
        version: SemanticVersion,
        feed_id: Optional[str],
        feed_uri: str,
        credentials: Optional[FeedCredentials],
        max_attempts: int,
        backoff: float,
    ) -> PackagePhysicalFile:
        extension = url_extension(feed_uri)
        if extension is None:
            raise ConfigurationError(f"Cannot tell the package type from the URL '{feed_uri}'")

        final_path = self.cache.path_for(package_id, version, feed_id, extension)
        download_path = self.cache.temporary_path(final_path)
        reporter = self.progress_reporter(package_id, version)
        description = f"{package_id} v{version}"

        with self.create_client(credentials) as client:
            try:
                self.with_retries(
                    lambda: self.stream_to_file(client, feed_uri, download_path, description, reporter),
                    description,
                    max_attempts,
                    backoff,
                )
                return self.cache.store(download_path, package_id, version, feed_id, extension)
            finally:
                self.discard(download_path)
