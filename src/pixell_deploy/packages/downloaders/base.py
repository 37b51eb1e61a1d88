"""Shared plumbing for feed downloaders: cache lookup, retries, HTTP transfer."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

import httpx
import structlog

from pixell_deploy import __version__
from pixell_deploy.core.config import Settings
from pixell_deploy.core.exceptions import (
    AuthenticationError,
    DownloadExhaustedError,
    PackageNotFoundError,
    RateLimitExceededError,
    RequestRejectedError,
    TransientNetworkError,
)
from pixell_deploy.core.models import FeedCredentials, PackagePhysicalFile
from pixell_deploy.core.versioning import SemanticVersion
from pixell_deploy.packages.cache import PackageCache
from pixell_deploy.packages.freespace import ensure_free_space
from pixell_deploy.packages.naming import SUPPORTED_EXTENSIONS
from pixell_deploy.utils.service_messages import AbstractLog

logger = structlog.get_logger()

T = TypeVar("T")

ProgressCallback = Callable[[int, Optional[int]], None]

USER_AGENT = f"PixellDeploy/{__version__} (+https://github.com/pixell-global)"
CHUNK_SIZE = 64 * 1024


def rate_limit_wait_seconds(headers: httpx.Headers, now: Optional[float] = None) -> Optional[int]:
    """Seconds until the feed quota resets, when the quota is exhausted.

    Returns None while requests remain, and -1 when the quota is exhausted but
    the reset time is missing or unreadable.
    """
    if headers.get("X-RateLimit-Remaining") != "0":
        return None
    try:
        reset = int(headers.get("X-RateLimit-Reset", ""))
    except ValueError:
        return -1
    current = time.time() if now is None else now
    return reset - int(current)


def raise_for_feed_status(response: httpx.Response, description: str) -> None:
    """Map an HTTP error status onto the feed error taxonomy.

    401, 422, 404 and an exhausted 403 are fatal. Every other error status is
    transient and left to the retry loop.
    """
    status = response.status_code
    if status < 400:
        return

    if status == 401:
        raise AuthenticationError(f"Failed to authenticate request for {description}")
    if status == 403:
        wait_seconds = rate_limit_wait_seconds(response.headers)
        if wait_seconds is not None:
            raise RateLimitExceededError(
                f"Feed request rate limit has been hit. Try the operation again in {wait_seconds} seconds. "
                "Anonymous requests have a much lower limit; providing credentials raises it.",
                wait_seconds=wait_seconds,
            )
    if status == 404:
        raise PackageNotFoundError(f"Could not find {description} (HTTP 404)")
    if status == 422:
        raise RequestRejectedError(f"Feed rejected the request for {description} (HTTP 422)")

    raise TransientNetworkError(f"Feed returned HTTP {status} for {description}")


class PackageDownloader(ABC):
    """Resolves a package against one kind of feed.

    Subclasses implement ``_download``; the cache lookup, free space check and
    retry loop live here so every feed behaves the same way.
    """

    extensions: Sequence[str] = SUPPORTED_EXTENSIONS
    feed_description = "package"

    def __init__(
        self,
        cache: PackageCache,
        log: AbstractLog,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cache = cache
        self.log = log
        self.settings = settings
        self.transport = transport
        self.sleep = sleep

    def download_package(
        self,
        package_id: str,
        version: SemanticVersion,
        feed_id: Optional[str],
        feed_uri: str,
        credentials: Optional[FeedCredentials],
        force_download: bool,
        max_attempts: int,
        backoff: float,
        required_free_space_mb: Optional[int] = None,
        skip_free_space_check: Optional[bool] = None,
    ) -> PackagePhysicalFile:
        cache_directory = self.cache.ensure_feed_directory(feed_id)

        if not force_download:
            self.log.verbose(f"Checking package cache for package {package_id} v{version}")
            cached = self.cache.find(package_id, version, feed_id, self.extensions)
            if cached is not None:
                self.log.verbose(f"Package was found in cache. No need to download. Using file: '{cached.path}'")
                return cached

        self.log.info(f"Downloading {self.feed_description} {package_id} v{version} from feed: '{feed_uri}'")
        self.log.verbose(f"Downloaded package will be stored in: '{cache_directory}'")

        ensure_free_space(
            cache_directory,
            self.settings.min_free_disk_space_mb if required_free_space_mb is None else required_free_space_mb,
            skip=self.settings.skip_free_disk_space_check if skip_free_space_check is None else skip_free_space_check,
        )

        return self._download(
            package_id,
            version,
            feed_id,
            feed_uri,
            credentials,
            max(1, max_attempts),
            max(0.0, backoff),
        )

    @abstractmethod
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
        ...

    def with_retries(self, operation: Callable[[], T], description: str, max_attempts: int, backoff: float) -> T:
        """Run operation until it succeeds, sleeping backoff after each transient failure.

        Fatal feed errors propagate immediately.

        Raises:
            DownloadExhaustedError: If every attempt failed transiently
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            try:
                if attempt > 1:
                    self.log.verbose(f"Download attempt #{attempt}")
                return operation()
            except TransientNetworkError as e:
                last_error = e
                logger.warning(
                    "Download attempt failed",
                    target=description,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                if attempt < max_attempts:
                    self.sleep(backoff)

        raise DownloadExhaustedError(
            f"Failed to download {description} after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
            last_error=last_error,
        ) from last_error

    def create_client(self, credentials: Optional[FeedCredentials], accept: Optional[str] = None) -> httpx.Client:
        headers = {"User-Agent": USER_AGENT}
        if accept:
            headers["Accept"] = accept
        return httpx.Client(
            headers=headers,
            auth=(credentials.username, credentials.password) if credentials else None,
            timeout=httpx.Timeout(self.settings.request_timeout_seconds),
            follow_redirects=True,
            transport=self.transport,
        )

    def get_json(self, client: httpx.Client, url: str, description: str) -> httpx.Response:
        """GET a JSON document, mapping failures onto the feed error taxonomy."""
        try:
            response = client.get(url)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Request for {description} failed: {e}") from e
        raise_for_feed_status(response, description)
        return response

    def stream_to_file(
        self,
        client: httpx.Client,
        url: str,
        destination: Path,
        description: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream a URL into destination, reporting progress per chunk.

        Returns the number of bytes written.
        """
        bytes_written = 0
        try:
            with client.stream("GET", url) as response:
                raise_for_feed_status(response, description)
                total = response.headers.get("Content-Length")
                total_bytes = int(total) if total and total.isdigit() else None
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        bytes_written += len(chunk)
                        if on_progress is not None:
                            on_progress(bytes_written, total_bytes)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Transfer of {description} failed: {e}") from e
        return bytes_written

    def progress_reporter(self, package_id: str, version: SemanticVersion) -> ProgressCallback:
        """Progress callback that emits a service message when the percentage changes."""
        last = {"percentage": -1}
        message = f"Downloading {package_id} v{version}"

        def report(bytes_read: int, total: Optional[int]) -> None:
            if not total:
                return
            percentage = min(100, int(bytes_read * 100 / total))
            if percentage != last["percentage"]:
                last["percentage"] = percentage
                self.log.progress(percentage, message)

        return report

    def discard(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
