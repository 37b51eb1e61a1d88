"""Installation journal.

The journal is an append-only JSON Lines file. Every deployment attempt adds
one line once it has concluded; lookups return the newest line for a key. The
next invocation, possibly a retry after a crash, reads it to decide between
skipping and redeploying, so each append is fsynced before returning.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, List, Optional

import structlog
from pydantic import ValidationError

from pixell_deploy.core.exceptions import JournalError
from pixell_deploy.core.models import JournalEntry
from pixell_deploy.core.versioning import SemanticVersion

logger = structlog.get_logger()


def _same_policy_set(left: Optional[str], right: Optional[str]) -> bool:
    return (left or "").casefold() == (right or "").casefold()


class DeploymentJournal:
    """Durable record of deployment attempts keyed by policy set, package and version."""

    def __init__(self, path: Path):
        self.path = path

    def _read_entries(self) -> Iterator[JournalEntry]:
        try:
            with open(self.path, "rb") as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield JournalEntry.model_validate_json(line)
                    except (ValidationError, UnicodeDecodeError) as e:
                        # A crash mid-append can leave a torn final line, possibly
                        # cut inside a multi-byte character
                        logger.warning(
                            "Skipping unreadable journal line",
                            journal=str(self.path),
                            line=line_number,
                            error=str(e).splitlines()[0],
                        )
        except FileNotFoundError:
            return
        except OSError as e:
            raise JournalError(f"Could not read deployment journal '{self.path}': {e}") from e

    def get_all_entries(self) -> List[JournalEntry]:
        return list(self._read_entries())

    def get_latest_installation(
        self, retention_policy_set: Optional[str], package_id: str, version: str
    ) -> Optional[JournalEntry]:
        """Last appended entry for the key, or None if the package was never attempted.

        Raises:
            InvalidVersionError: If version is not a valid semantic version
            JournalError: If the journal cannot be read
        """
        wanted = SemanticVersion.parse(version)
        latest: Optional[JournalEntry] = None
        for entry in self._read_entries():
            if not _same_policy_set(entry.retention_policy_set, retention_policy_set):
                continue
            if entry.package_id.casefold() != package_id.casefold():
                continue
            if entry.semantic_version() != wanted:
                continue
            # Append order wins over timestamps, which can step backwards
            latest = entry
        return latest

    @staticmethod
    def _ends_with_torn_line(fd: int) -> bool:
        size = os.fstat(fd).st_size
        if size == 0:
            return False
        return os.pread(fd, 1, size - 1) != b"\n"

    def record(self, entry: JournalEntry) -> None:
        """Append an entry and flush it to disk.

        Raises:
            JournalError: If the entry could not be written durably
        """
        line = entry.model_dump_json() + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # One write on an O_APPEND descriptor so concurrent agents never interleave lines
            fd = os.open(self.path, os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                if self._ends_with_torn_line(fd):
                    line = "\n" + line
                os.write(fd, line.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as e:
            raise JournalError(f"Could not write to deployment journal '{self.path}': {e}") from e

        logger.debug(
            "Recorded journal entry",
            package_id=entry.package_id,
            version=entry.version,
            was_successful=entry.was_successful,
        )
