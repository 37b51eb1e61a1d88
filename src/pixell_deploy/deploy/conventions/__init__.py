"""Deployment conventions."""

from .acquire_package import AcquirePackageConvention
from .already_installed import AlreadyInstalledConvention
from .base import Convention, ConventionOutcome, ConventionResult
from .extract_package import ExtractPackageConvention
from .journal_writer import JournalWriterConvention

__all__ = [
    "AcquirePackageConvention",
    "AlreadyInstalledConvention",
    "Convention",
    "ConventionOutcome",
    "ConventionResult",
    "ExtractPackageConvention",
    "JournalWriterConvention",
]
