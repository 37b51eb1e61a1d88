"""Feed-specific package downloaders."""

from .base import PackageDownloader, USER_AGENT
from .fileshare import FileSharePackageDownloader
from .github import GitHubPackageDownloader
from .nuget import NuGetPackageDownloader
from .url import UrlPackageDownloader

__all__ = [
    "PackageDownloader",
    "USER_AGENT",
    "FileSharePackageDownloader",
    "GitHubPackageDownloader",
    "NuGetPackageDownloader",
    "UrlPackageDownloader",
]
