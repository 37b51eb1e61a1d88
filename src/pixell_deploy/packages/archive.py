"""Archive rewriting.

Source-control archive exports wrap every file in a synthetic top-level
directory (``owner-repo-sha/``). De-nesting rewrites such an archive so its
entries sit at the root, which keeps extraction layout and package hashes the
same regardless of which feed produced the package.
"""

from __future__ import annotations

import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import structlog

from pixell_deploy.core.exceptions import ArchiveEntryError

logger = structlog.get_logger()

# Entries larger than this are spooled to disk while being rewritten
_SPOOL_LIMIT = 8 * 1024 * 1024
_CHUNK_SIZE = 64 * 1024


@dataclass
class DenestResult:
    """Outcome of a de-nesting rewrite."""

    entries_written: int = 0
    root: Optional[str] = None
    warnings: List[ArchiveEntryError] = field(default_factory=list)


def strip_root(entry_name: str, root: str) -> Optional[str]:
    """Remove the root segment from an entry name. None when nothing is left."""
    if not entry_name.startswith(root):
        return None
    stripped = entry_name[len(root):]
    return stripped or None


def denest_archive(source: Path, destination: Path) -> DenestResult:
    """Rewrite a zip archive without its leading directory.

    The root segment is taken from the first file entry. Directory entries are
    dropped and every entry keeps its original compression. An entry that
    cannot be rewritten is skipped and reported in the result rather than
    aborting the whole archive.
    """
    result = DenestResult()

    with zipfile.ZipFile(source, "r") as reader, zipfile.ZipFile(destination, "w") as writer:
        for info in reader.infolist():
            if info.is_dir():
                continue

            if result.root is None:
                separator = info.filename.find("/")
                result.root = info.filename[: separator + 1] if separator >= 0 else ""

            try:
                new_name = strip_root(info.filename, result.root)
                if new_name is None:
                    raise ArchiveEntryError(
                        f"Entry '{info.filename}' is outside the archive root '{result.root}'",
                        info.filename,
                    )
                _copy_entry(reader, writer, info, new_name)
                result.entries_written += 1
            except ArchiveEntryError as e:
                result.warnings.append(e)
            except (zipfile.BadZipFile, OSError, RuntimeError, EOFError) as e:
                result.warnings.append(
                    ArchiveEntryError(f"Failed to rewrite entry '{info.filename}': {e}", info.filename)
                )

    logger.debug(
        "De-nested archive",
        source=str(source),
        root=result.root,
        entries=result.entries_written,
        skipped=len(result.warnings),
    )
    return result


def _copy_entry(reader: zipfile.ZipFile, writer: zipfile.ZipFile, info: zipfile.ZipInfo, new_name: str) -> None:
    # Read the whole entry first so a corrupt entry never leaves a truncated copy
    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_LIMIT) as spool:
        with reader.open(info, "r") as src:
            shutil.copyfileobj(src, spool, _CHUNK_SIZE)
        spool.seek(0)

        target = zipfile.ZipInfo(new_name, date_time=info.date_time)
        target.compress_type = info.compress_type
        target.external_attr = info.external_attr
        target.comment = info.comment
        with writer.open(target, "w", force_zip64=info.file_size > zipfile.ZIP64_LIMIT) as dst:
            shutil.copyfileobj(spool, dst, _CHUNK_SIZE)


def has_single_root(path: Path) -> bool:
    """True when every file in the zip lives under one top-level directory."""
    roots = set()
    with zipfile.ZipFile(path, "r") as reader:
        for info in reader.infolist():
            if info.is_dir():
                continue
            separator = info.filename.find("/")
            if separator < 0:
                return False
            roots.add(info.filename[:separator])
            if len(roots) > 1:
                return False
    return len(roots) == 1
