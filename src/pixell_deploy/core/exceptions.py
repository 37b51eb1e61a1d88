"""Custom exceptions for Pixell Deploy."""

from typing import Optional


class DeployAgentError(Exception):
    """Base exception for all deployment agent errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(DeployAgentError):
    """Configuration error."""
    pass


class CommandError(DeployAgentError):
    """Invalid command or command-line arguments."""
    pass


class InvalidVersionError(DeployAgentError):
    """A version string is not a valid semantic version."""
    pass


class VariablesFileError(DeployAgentError):
    """Variables file could not be read or failed its schema."""
    pass


class PackageError(DeployAgentError):
    """Package acquisition errors."""
    pass


class InvalidPackageIdentifierError(PackageError):
    """Package id is malformed for the feed that has to serve it."""
    pass


class PackageNotFoundError(PackageError):
    """Feed was searched to the end without finding the requested version."""
    pass


class InsufficientDiskSpaceError(PackageError):
    """Not enough free space to download a package."""
    pass


class CacheDecodeError(PackageError):
    """Cached file name does not decode to a package identity."""
    pass


class ArchiveEntryError(PackageError):
    """A single archive entry could not be rewritten."""

    def __init__(self, message: str, entry_name: str):
        super().__init__(message)
        self.entry_name = entry_name


class FeedError(PackageError):
    """Feed communication error."""
    pass


class TransientNetworkError(FeedError):
    """Connection reset, timeout, 5xx and similar. Subject to retry."""
    pass


class AuthenticationError(FeedError):
    """Feed rejected our credentials (HTTP 401)."""
    pass


class RateLimitExceededError(FeedError):
    """Feed quota is exhausted (HTTP 403 with zero remaining requests)."""

    def __init__(self, message: str, wait_seconds: int):
        super().__init__(message)
        self.wait_seconds = wait_seconds


class RequestRejectedError(FeedError):
    """Feed refused to process the request (HTTP 422)."""
    pass


class FeedResponseError(FeedError):
    """Feed returned a body that does not match the expected schema."""
    pass


class DownloadExhaustedError(FeedError):
    """Every download attempt failed."""

    def __init__(self, message: str, attempts: int, last_error: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class JournalError(DeployAgentError):
    """Journal could not be read or written."""
    pass


class ConventionFailureError(DeployAgentError):
    """A deployment convention raised an error and the pipeline aborted."""

    def __init__(self, message: str, convention: str):
        super().__init__(message)
        self.convention = convention
