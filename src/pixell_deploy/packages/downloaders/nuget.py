"""Downloads packages from NuGet feeds (v3 service index or v2 download endpoint)."""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pixell_deploy.core.exceptions import FeedResponseError, PackageNotFoundError
from pixell_deploy.core.models import FeedCredentials, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.downloaders.base import PackageDownloader

logger = structlog.get_logger()

EXTENSION = ".nupkg"
PACKAGE_BASE_ADDRESS = "PackageBaseAddress/3.0.0"


class ServiceIndexResource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="@id")
    type: str = Field(..., alias="@type")


class ServiceIndex(BaseModel):
    version: Optional[str] = None
    resources: List[ServiceIndexResource] = Field(default_factory=list)


class PackageVersions(BaseModel):
    versions: List[str]


def is_v3_feed(feed_uri: str) -> bool:
    return httpx.URL(feed_uri).path.lower().endswith("index.json")


class NuGetPackageDownloader(PackageDownloader):
    """Queries the feed's package index for an exact id and version."""

    extensions = (EXTENSION,)
    feed_description = "NuGet package"

    def package_base_address(self, client: httpx.Client, feed_uri: str, max_attempts: int, backoff: float) -> str:
        response = self.with_retries(
            lambda: self.get_json(client, feed_uri, "the feed service index"),
            "the feed service index",
            max_attempts,
            backoff,
        )
        try:
            index = ServiceIndex.model_validate_json(response.content)
        except ValidationError as e:
            raise FeedResponseError(f"Unexpected service index from '{feed_uri}': {e}") from e

        for resource in index.resources:
            if resource.type.startswith(PACKAGE_BASE_ADDRESS):
                return resource.id.rstrip("/") + "/"
        raise FeedResponseError(f"Feed '{feed_uri}' does not advertise a {PACKAGE_BASE_ADDRESS} resource")

    def find_v3_download_url(
        self,
        client: httpx.Client,
        package_id: str,
        version: SemanticVersion,
        feed_uri: str,
        max_attempts: int,
        backoff: float,
    ) -> str:
        base = self.package_base_address(client, feed_uri, max_attempts, backoff)
        lower_id = package_id.lower()
        versions_url = f"{base}{quote(lower_id)}/index.json"

        response = self.with_retries(
            lambda: self.get_json(client, versions_url, f"versions of {package_id}"),
            f"versions of {package_id}",
            max_attempts,
            backoff,
        )
        try:
            listing = PackageVersions.model_validate_json(response.content)
        except ValidationError as e:
            raise FeedResponseError(f"Unexpected version listing from '{versions_url}': {e}") from e

        for candidate in listing.versions:
            if SemanticVersion.try_parse(candidate) == version:
                lower_version = candidate.lower()
                logger.debug("Matched feed version", package_id=package_id, version=candidate)
                return f"{base}{quote(lower_id)}/{quote(lower_version)}/{quote(lower_id)}.{quote(lower_version)}.nupkg"

        raise PackageNotFoundError(f"Could not find package {package_id} {version} in feed: '{feed_uri}'")

    def v2_download_url(self, package_id: str, version: SemanticVersion, feed_uri: str) -> str:
        return f"{feed_uri.rstrip('/')}/package/{quote(package_id)}/{quote(str(version))}"

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
        with self.create_client(credentials) as client:
            if is_v3_feed(feed_uri):
                url = self.find_v3_download_url(client, package_id, version, feed_uri, max_attempts, backoff)
            else:
                url = self.v2_download_url(package_id, version, feed_uri)

            final_path = self.cache.path_for(package_id, version, feed_id, EXTENSION)
            download_path = self.cache.temporary_path(final_path)
            reporter = self.progress_reporter(package_id, version)
            description = f"{package_id} v{version}"

            try:
                self.with_retries(
                    lambda: self.stream_to_file(client, url, download_path, description, reporter),
                    description,
                    max_attempts,
                    backoff,
                )
                return self.cache.store(download_path, package_id, version, feed_id, EXTENSION)
            finally:
                self.discard(download_path)
