"""Dependency management for higgs-boson.

This module handles fetching, resolving and building external dependencies.
"""

from .cache import ProjectCache
from .dependency import Dependency, ManualDependency, SubprojectDependency
from .downloader import ChecksumError, DownloadError, ExtractionError, PackageDownloader
from .fetcher import DependencyFetcher, FetchError
from .resolver import DependencyResolver, ManifestSnapshot, SnapshotFactory

__all__ = [
    "ProjectCache",
    "Dependency",
    "ManualDependency",
    "SubprojectDependency",
    "ChecksumError",
    "DownloadError",
    "ExtractionError",
    "PackageDownloader",
    "DependencyFetcher",
    "FetchError",
    "DependencyResolver",
    "ManifestSnapshot",
    "SnapshotFactory",
]
