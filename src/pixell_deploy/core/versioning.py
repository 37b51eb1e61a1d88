"""Semantic versions as understood by package feeds.

Versions follow the NuGet flavour of SemVer: up to four numeric parts, an
optional pre-release label and optional build metadata. Missing numeric parts
count as zero, so ``1.0``, ``1.0.0`` and ``1.0.0.0`` are the same version.
"""

from __future__ import annotations

import functools
import re
from typing import Optional, Tuple

from pixell_deploy.core.exceptions import InvalidVersionError


_VERSION_RE = re.compile(
    r"^(?P<major>\d+)"
    r"(?:\.(?P<minor>\d+))?"
    r"(?:\.(?P<patch>\d+))?"
    r"(?:\.(?P<revision>\d+))?"
    r"(?:-(?P<release>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def _compare_labels(left: Tuple[str, ...], right: Tuple[str, ...]) -> int:
    """Compare pre-release labels using SemVer 2 precedence."""
    # A release sorts after every pre-release of the same version
    if not left and not right:
        return 0
    if not left:
        return 1
    if not right:
        return -1

    for a, b in zip(left, right):
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            diff = int(a) - int(b)
            if diff:
                return -1 if diff < 0 else 1
        elif a_num != b_num:
            return -1 if a_num else 1
        else:
            a_low, b_low = a.lower(), b.lower()
            if a_low != b_low:
                return -1 if a_low < b_low else 1

    if len(left) == len(right):
        return 0
    return -1 if len(left) < len(right) else 1


@functools.total_ordering
class SemanticVersion:
    """An immutable, comparable package version."""

    __slots__ = ("major", "minor", "patch", "revision", "release_labels", "metadata", "_text")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        revision: int = 0,
        release_labels: Tuple[str, ...] = (),
        metadata: Optional[str] = None,
        text: Optional[str] = None,
    ):
        self.major = major
        self.minor = minor
        self.patch = patch
        self.revision = revision
        self.release_labels = tuple(release_labels)
        self.metadata = metadata
        self._text = text

    @classmethod
    def parse(cls, value: str) -> "SemanticVersion":
        """Parse a version string.

        Raises:
            InvalidVersionError: If the value is not a valid version
        """
        version = cls.try_parse(value)
        if version is None:
            raise InvalidVersionError(f"'{value}' is not a valid semantic version")
        return version

    @classmethod
    def try_parse(cls, value: Optional[str]) -> Optional["SemanticVersion"]:
        if value is None:
            return None
        text = value.strip()
        match = _VERSION_RE.match(text)
        if not match:
            return None

        release = match.group("release")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            revision=int(match.group("revision") or 0),
            release_labels=tuple(release.split(".")) if release else (),
            metadata=match.group("metadata"),
            text=text,
        )

    @property
    def release(self) -> str:
        return ".".join(self.release_labels)

    def _numbers(self) -> Tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch, self.revision)

    def normalized(self) -> str:
        """Canonical text: three or four numeric parts plus any pre-release label."""
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.release_labels:
            text += f"-{self.release}"
        return text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return (
            self._numbers() == other._numbers()
            and _compare_labels(self.release_labels, other.release_labels) == 0
        )

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        if self._numbers() != other._numbers():
            return self._numbers() < other._numbers()
        return _compare_labels(self.release_labels, other.release_labels) < 0

    def __hash__(self) -> int:
        return hash((self._numbers(), tuple(label.lower() for label in self.release_labels)))

    def __str__(self) -> str:
        return self._text if self._text is not None else self.normalized()

    def __repr__(self) -> str:
        return f"SemanticVersion('{self}')"


def parse_tag_version(tag_name: Optional[str]) -> Optional[SemanticVersion]:
    """Parse a source-control tag name such as ``v1.2.3`` into a version."""
    if not tag_name:
        return None
    if tag_name[0] in ("v", "V"):
        tag_name = tag_name[1:]
    return SemanticVersion.try_parse(tag_name)
