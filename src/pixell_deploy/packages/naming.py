"""Package file names.

Cached packages are stored as ``<id>@<version><extension>`` with both parts
percent-encoded, so a name can always be decoded back to the identity it was
built from. The id is lower-cased and the version normalized, so identities
that compare equal always share one file name. File-share feeds use the conventional ``<id>.<version><ext>``
layout instead, which is only parseable when the id is already known.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Tuple
from urllib.parse import quote, unquote

from pixell_deploy.core.exceptions import CacheDecodeError
from pixell_deploy.core.models import PackageIdentity
from pixell_deploy.core.versioning import SemanticVersion


SECTION_DELIMITER = "@"

SUPPORTED_EXTENSIONS: Tuple[str, ...] = (
    ".tar.bz2",
    ".tar.gz",
    ".tar.bz",
    ".nupkg",
    ".tbz",
    ".tgz",
    ".tar",
    ".zip",
    ".jar",
)


def _encode(value: str) -> str:
    return quote(value, safe="._~-")


def split_extension(file_name: str, extensions: Sequence[str] = SUPPORTED_EXTENSIONS) -> Tuple[str, Optional[str]]:
    """Split a supported extension off a file name, matching case-insensitively."""
    lowered = file_name.lower()
    for extension in sorted(extensions, key=len, reverse=True):
        if lowered.endswith(extension) and len(file_name) > len(extension):
            return file_name[: -len(extension)], file_name[-len(extension):]
    return file_name, None


def to_cached_file_name(package_id: str, version: SemanticVersion, extension: str) -> str:
    """Deterministic cache file name for a package."""
    if not extension.startswith("."):
        extension = "." + extension
    return f"{_encode(package_id.lower())}{SECTION_DELIMITER}{_encode(version.normalized())}{extension.lower()}"


def from_cached_file_name(file_name: str) -> Tuple[PackageIdentity, str]:
    """Decode a cache file name into its identity and extension.

    Raises:
        CacheDecodeError: If the name was not produced by to_cached_file_name
    """
    stem, extension = split_extension(file_name)
    if extension is None:
        raise CacheDecodeError(f"Unsupported package extension: {file_name}")

    parts = stem.split(SECTION_DELIMITER)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise CacheDecodeError(f"Unexpected cache file name format: {file_name}")

    package_id = unquote(parts[0])
    version = SemanticVersion.try_parse(unquote(parts[1]))
    if version is None:
        raise CacheDecodeError(f"Cache file name has an invalid version: {file_name}")

    return PackageIdentity(package_id, version), extension.lower()


def from_cached_file(path: Path) -> Tuple[PackageIdentity, str]:
    return from_cached_file_name(path.name)


def parse_feed_file_name(file_name: str, package_id: str) -> Optional[Tuple[SemanticVersion, str]]:
    """Parse ``<id>.<version><ext>`` for a known id. Returns None when it does not fit."""
    stem, extension = split_extension(file_name)
    if extension is None:
        return None

    prefix = package_id + "."
    if not stem.casefold().startswith(prefix.casefold()):
        return None

    version = SemanticVersion.try_parse(stem[len(prefix):])
    if version is None:
        return None
    return version, extension.lower()
