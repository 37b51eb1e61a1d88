"""Core data models for Pixell Deploy."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from pixell_deploy.core.versioning import SemanticVersion


class FeedType(str, Enum):
    """Protocols a feed can speak."""

    NUGET = "nuget"
    GITHUB = "github"
    FILE_SHARE = "file-share"
    URL = "url"


@dataclass(frozen=True)
class FeedCredentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"FeedCredentials(username={self.username!r}, password='[REDACTED]')"


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """A package id and version, optionally tied to the feed it came from.

    Identities compare equal when the ids match case-insensitively and the
    versions are semantically equal. The feed id does not take part.
    """

    package_id: str
    version: SemanticVersion
    feed_id: Optional[str] = None

    def matches(self, package_id: str, version: SemanticVersion) -> bool:
        return self.package_id.casefold() == package_id.casefold() and self.version == version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.matches(other.package_id, other.version)

    def __hash__(self) -> int:
        return hash((self.package_id.casefold(), self.version))

    def __str__(self) -> str:
        return f"{self.package_id} v{self.version}"


def calculate_hash(path: Path) -> str:
    """SHA-1 hex digest of a file, read in blocks."""
    hasher = hashlib.sha1()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            hasher.update(block)
    return hasher.hexdigest()


@dataclass(frozen=True)
class PackagePhysicalFile:
    """A package file resolved on the local file system."""

    path: Path
    identity: PackageIdentity
    extension: str
    hash: str
    size: int

    @classmethod
    def build(cls, path: Path, identity: PackageIdentity, extension: str) -> "PackagePhysicalFile":
        return cls(
            path=path,
            identity=identity,
            extension=extension,
            hash=calculate_hash(path),
            size=path.stat().st_size,
        )

    @property
    def package_id(self) -> str:
        return self.identity.package_id

    @property
    def version(self) -> SemanticVersion:
        return self.identity.version


class JournalEntry(BaseModel):
    """One deployment attempt recorded in the installation journal."""

    retention_policy_set: Optional[str] = Field(None, description="Retention policy grouping key")
    package_id: str = Field(..., description="Deployed package id")
    version: str = Field(..., description="Deployed package version, as supplied")
    was_successful: bool = Field(..., description="Outcome of the attempt")
    extracted_to: Optional[str] = Field(None, description="Directory the package was extracted to")
    deployment_id: Optional[str] = Field(None, description="Orchestrator deployment id")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def semantic_version(self) -> Optional[SemanticVersion]:
        return SemanticVersion.try_parse(self.version)
