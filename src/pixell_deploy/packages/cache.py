"""Local cache of downloaded packages, one directory per feed."""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Iterator, Optional, Sequence
from urllib.parse import quote

import structlog

from pixell_deploy.core.exceptions import CacheDecodeError
from pixell_deploy.core.models import PackageIdentity, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.naming import (
    SECTION_DELIMITER,
    SUPPORTED_EXTENSIONS,
    from_cached_file,
    to_cached_file_name,
)

logger = structlog.get_logger()

DOWNLOADING_EXTENSION = ".downloading"

# Used when no feed id is given. quote() escapes parentheses, so no feed id
# encodes to this name
DEFAULT_FEED_DIRECTORY = "(default)"


class PackageCache:
    """Finds and stores package files under a feed-scoped cache root.

    Files are never written in place: a download lands in a temporary file next
    to its final name and is renamed over it, so concurrent readers only ever
    see complete packages. Storing the same package twice simply replaces it.
    """

    def __init__(self, root: Path):
        self.root = root

    def feed_directory(self, feed_id: Optional[str]) -> Path:
        if not feed_id:
            return self.root / DEFAULT_FEED_DIRECTORY
        return self.root / quote(feed_id, safe="._~-")

    def ensure_feed_directory(self, feed_id: Optional[str]) -> Path:
        directory = self.feed_directory(feed_id)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def _candidates(self, directory: Path) -> Iterator[Path]:
        for path in directory.rglob(f"*{SECTION_DELIMITER}*"):
            if path.is_file() and not path.name.endswith(DOWNLOADING_EXTENSION):
                yield path

    def find(
        self,
        package_id: str,
        version: SemanticVersion,
        feed_id: Optional[str],
        extensions: Sequence[str] = SUPPORTED_EXTENSIONS,
    ) -> Optional[PackagePhysicalFile]:
        """Return the cached file for the package, or None.

        The canonical file name is preferred. Other names that decode to an
        equal identity are only used when no canonical file exists.
        """
        directory = self.feed_directory(feed_id)
        if not directory.is_dir():
            return None

        identity = PackageIdentity(package_id, version, feed_id)
        for extension in extensions:
            path = self.path_for(package_id, version, feed_id, extension)
            if path.is_file():
                return PackagePhysicalFile.build(path, identity, extension.lower())

        wanted = {e.lower() for e in extensions}
        for path in sorted(self._candidates(directory)):
            try:
                cached, extension = from_cached_file(path)
            except CacheDecodeError as e:
                logger.debug("Skipping unrecognised cache entry", path=str(path), reason=str(e))
                continue

            if extension not in wanted or not cached.matches(package_id, version):
                continue

            return PackagePhysicalFile.build(path, identity, extension)
        return None

    def path_for(self, package_id: str, version: SemanticVersion, feed_id: Optional[str], extension: str) -> Path:
        return self.feed_directory(feed_id) / to_cached_file_name(package_id, version, extension)

    def temporary_path(self, final_path: Path) -> Path:
        """Unique scratch file beside final_path, on the same file system."""
        return final_path.with_name(f"{final_path.name}.{uuid.uuid4().hex}{DOWNLOADING_EXTENSION}")

    def store(
        self,
        source: Path,
        package_id: str,
        version: SemanticVersion,
        feed_id: Optional[str],
        extension: str,
    ) -> PackagePhysicalFile:
        """Move a finished download into its deterministic cache location."""
        self.ensure_feed_directory(feed_id)
        final_path = self.path_for(package_id, version, feed_id, extension)

        if source.parent != final_path.parent:
            # os.replace is only atomic within one file system
            staged = self.temporary_path(final_path)
            with open(source, "rb") as src, open(staged, "wb") as dst:
                for block in iter(lambda: src.read(65536), b""):
                    dst.write(block)
                dst.flush()
                os.fsync(dst.fileno())
            source.unlink()
            source = staged

        os.replace(source, final_path)
        logger.debug("Stored package in cache", path=str(final_path))
        return PackagePhysicalFile.build(
            final_path, PackageIdentity(package_id, version, feed_id), extension.lower()
        )

