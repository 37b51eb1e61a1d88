"""Copies packages from a file share or local directory feed."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

import structlog

from pixell_deploy.core.exceptions import PackageNotFoundError, TransientNetworkError
from pixell_deploy.core.models import FeedCredentials, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.downloaders.base import CHUNK_SIZE, PackageDownloader, ProgressCallback
from pixell_deploy.packages.naming import parse_feed_file_name

logger = structlog.get_logger()


def feed_path(feed_uri: str) -> Path:
    """Local path for a ``file:`` URI, UNC path or plain directory."""
    if feed_uri.lower().startswith("file:"):
        parsed = urlparse(feed_uri)
        path = unquote(parsed.path)
        if parsed.netloc:
            return Path(f"//{parsed.netloc}{path}")
        return Path(path)
    return Path(feed_uri)


def copy_with_progress(source: Path, destination: Path, on_progress: Optional[ProgressCallback] = None) -> int:
    total = source.stat().st_size
    copied = 0
    with open(source, "rb") as src, open(destination, "wb") as dst:
        for chunk in iter(lambda: src.read(CHUNK_SIZE), b""):
            dst.write(chunk)
            copied += len(chunk)
            if on_progress is not None:
                on_progress(copied, total)
    return copied


class FileSharePackageDownloader(PackageDownloader):
    """Finds ``<id>.<version><ext>`` on the share and copies it into the cache."""

    feed_description = "package"

    def find_in_share(self, share: Path, package_id: str, version: SemanticVersion) -> Optional[Tuple[Path, str]]:
        if not share.is_dir():
            return None
        for path in sorted(share.rglob("*")):
            if not path.is_file():
                continue
            parsed = parse_feed_file_name(path.name, package_id)
            if parsed is None:
                continue
            found_version, extension = parsed
            if found_version == version:
                return path, extension
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
        share = feed_path(feed_uri)
        found = self.find_in_share(share, package_id, version)
        if found is None:
            raise PackageNotFoundError(f"Could not find package {package_id} {version} in feed: '{feed_uri}'")

        source, extension = found
        logger.debug("Found package on file share", source=str(source))

        final_path = self.cache.path_for(package_id, version, feed_id, extension)
        download_path = self.cache.temporary_path(final_path)
        reporter = self.progress_reporter(package_id, version)

        def attempt() -> int:
            try:
                return copy_with_progress(source, download_path, reporter)
            except OSError as e:
                raise TransientNetworkError(f"Copy from '{source}' failed: {e}") from e

        try:
            self.with_retries(attempt, f"{package_id} v{version}", max_attempts, backoff)
            return self.cache.store(download_path, package_id, version, feed_id, extension)
        finally:
            self.discard(download_path)
