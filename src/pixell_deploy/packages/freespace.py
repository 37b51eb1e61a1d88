"""Free disk space checks before downloading packages."""

import shutil
from pathlib import Path

import structlog

from pixell_deploy.core.exceptions import InsufficientDiskSpaceError

logger = structlog.get_logger()

MEGABYTE = 1024 * 1024


def ensure_free_space(directory: Path, required_mb: int, skip: bool = False) -> None:
    """Fail when the volume holding directory has less than required_mb free.

    Raises:
        InsufficientDiskSpaceError: If the volume is too full
    """
    if skip or required_mb <= 0:
        logger.debug("Skipping free disk space check", directory=str(directory))
        return

    usage = shutil.disk_usage(directory)
    free_mb = usage.free // MEGABYTE
    if free_mb < required_mb:
        raise InsufficientDiskSpaceError(
            f"The drive containing the directory '{directory}' on this machine does not have enough "
            f"free disk space available for this operation to proceed. The disk only has {free_mb} MB "
            f"available; please free up at least {required_mb} MB."
        )
    logger.debug("Free disk space check passed", directory=str(directory), free_mb=free_mb)
