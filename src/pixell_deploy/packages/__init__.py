"""Package acquisition: naming, cache, feed downloaders and archive handling."""

from .cache import PackageCache
from .resolver import PackageResolver, detect_feed_type

__all__ = ["PackageCache", "PackageResolver", "detect_feed_type"]
