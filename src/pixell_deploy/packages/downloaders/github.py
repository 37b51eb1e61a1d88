"""Downloads packages from GitHub release tags."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from pixell_deploy.core.exceptions import (
    FeedResponseError,
    InvalidPackageIdentifierError,
    PackageNotFoundError,
)
from pixell_deploy.core.models import FeedCredentials, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion, parse_tag_version
from pixell_deploy.packages.archive import denest_archive, has_single_root
from pixell_deploy.packages.downloaders.base import PackageDownloader

logger = structlog.get_logger()

OWNER_REPO_SEPARATOR = "/"
EXTENSION = ".zip"
GITHUB_ACCEPT = "application/vnd.github.v3+json"


class GitHubTag(BaseModel):
    name: str
    zipball_url: str


_TAG_LIST = TypeAdapter(List[GitHubTag])


def split_package_id(package_id: str) -> Tuple[str, str]:
    """Split ``owner/repo`` on the first separator.

    Raises:
        InvalidPackageIdentifierError: If either part is empty
    """
    owner, separator, repo = package_id.partition(OWNER_REPO_SEPARATOR)
    if not separator or not owner.strip() or not repo.strip():
        raise InvalidPackageIdentifierError(
            f"Invalid PackageId '{package_id}' for GitHub feed. Expecting format `<owner>/<repo>`"
        )
    return owner, repo


class GitHubPackageDownloader(PackageDownloader):
    """Finds a tag whose name is the requested version and downloads its zipball."""

    extensions = (EXTENSION,)
    feed_description = "GitHub package"

    def tags_url(self, feed_uri: str, owner: str, repo: str, page: int) -> str:
        return (
            f"{feed_uri.rstrip('/')}/repos/{quote(owner)}/{quote(repo)}/tags"
            f"?page={page}&per_page={self.settings.github_page_size}"
        )

    def find_zipball_url(
        self,
        client: httpx.Client,
        package_id: str,
        version: SemanticVersion,
        feed_uri: str,
        max_attempts: int,
        backoff: float,
    ) -> Optional[str]:
        """Page through the repository tags until one matches the version."""
        owner, repo = split_package_id(package_id)
        page_size = self.settings.github_page_size

        for page in range(1, self.settings.github_max_pages + 1):
            url = self.tags_url(feed_uri, owner, repo, page)
            response = self.with_retries(
                lambda: self.get_json(client, url, f"tags of {package_id}"),
                f"tags of {package_id}",
                max_attempts,
                backoff,
            )
            try:
                tags = _TAG_LIST.validate_json(response.content)
            except ValidationError as e:
                raise FeedResponseError(f"Unexpected tag listing from '{url}': {e}") from e

            logger.debug("Fetched tag page", package_id=package_id, page=page, tags=len(tags))
            if not tags:
                return None

            for tag in tags:
                if parse_tag_version(tag.name) == version:
                    return tag.zipball_url

            if "next" not in response.links and (response.headers.get("Link") or len(tags) < page_size):
                return None

        self.log.warn(
            f"Stopped searching tags of {package_id} after {self.settings.github_max_pages} pages "
            "without finding the requested version"
        )
        return None

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
        with self.create_client(credentials, accept=GITHUB_ACCEPT) as client:
            zipball_url = self.find_zipball_url(client, package_id, version, feed_uri, max_attempts, backoff)
            if zipball_url is None:
                raise PackageNotFoundError(
                    f"Unable to find package {package_id} v{version} from feed: '{feed_uri}'"
                )

            final_path = self.cache.path_for(package_id, version, feed_id, EXTENSION)
            download_path = self.cache.temporary_path(final_path)
            normalized_path = download_path
            reporter = self.progress_reporter(package_id, version)

            def attempt() -> int:
                return self.stream_to_file(client, zipball_url, download_path, package_id, reporter)

            try:
                self.with_retries(attempt, f"{package_id} v{version}", max_attempts, backoff)
                normalized_path = self._normalize(download_path, final_path)
                return self.cache.store(normalized_path, package_id, version, feed_id, EXTENSION)
            finally:
                self.discard(download_path)
                self.discard(normalized_path)

    def _normalize(self, download_path: Path, final_path: Path) -> Path:
        """De-nest a source archive into a second scratch file when it has a single root."""
        try:
            if not has_single_root(download_path):
                return download_path

            denested_path = self.cache.temporary_path(final_path)
            result = denest_archive(download_path, denested_path)
        except zipfile.BadZipFile as e:
            raise FeedResponseError(f"Downloaded archive is not a valid zip file: {e}") from e

        for warning in result.warnings:
            self.log.warn(f"Skipped archive entry while removing the top-level directory: {warning}")
        return denested_path
