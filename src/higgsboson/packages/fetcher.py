"""
Dependency fetching.

Materializes every declared dependency under <sync_dir>/<name>/:
- git: fetched through the execution session and checked out at 'rev'
  (or the remote HEAD when no rev is given)
- curl: downloaded with PackageDownloader, unpacked when 'unpack' is set

The sync directory may already contain generated recipe scripts, so git
checkouts are initialized in place rather than cloned into a fresh directory.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

from ..config.manifest import DependencySpec
from ..execution import ExecutionSession
from .downloader import (
    ChecksumError,
    DownloadError,
    ExtractionError,
    PackageDownloader,
    filename_from_url,
)


ARCHIVE_FORMATS = ("tar", "zip")


class FetchError(Exception):
    """Raised when a dependency entry cannot be fetched as declared."""

    pass


class DependencyFetcher:
    """Fetches dependency sources into the cache."""

    def __init__(
        self,
        session: ExecutionSession,
        downloads_dir: Path,
        downloader: Optional[PackageDownloader] = None,
        show_progress: bool = True,
    ):
        """
        Initialize fetcher.

        Args:
            session: Session git commands run in
            downloads_dir: Where raw curl downloads are kept before unpacking
            downloader: Downloader for curl sources
            show_progress: Whether to show download progress bars
        """
        self.session = session
        self.downloads_dir = Path(downloads_dir)
        self.downloader = downloader or PackageDownloader()
        self.show_progress = show_progress

    def sync(self, entries: Sequence[DependencySpec], sync_dir: Path) -> bool:
        """
        Fetch every entry into the sync directory.

        Every entry is attempted even after a failure.

        Args:
            entries: Dependencies to fetch
            sync_dir: Directory receiving one sub-directory per dependency

        Returns:
            True if every entry was fetched
        """
        sync_dir = Path(sync_dir)
        sync_dir.mkdir(parents=True, exist_ok=True)

        success = True
        for entry in entries:
            success &= self.fetch(entry, sync_dir / entry.name)
        return success

    def fetch(self, entry: DependencySpec, dest_dir: Path) -> bool:
        """Fetch a single dependency into dest_dir."""
        properties = entry.fetch_properties()
        try:
            if entry.source == "git":
                return self._fetch_git(entry.name, properties["url"], properties["rev"], dest_dir)
            if entry.source == "curl":
                return self._fetch_curl(entry.name, properties["url"], properties["unpack"], dest_dir)
            raise FetchError(f"Unsupported source '{entry.source}' for dependency {entry.name}")
        except (FetchError, DownloadError, ChecksumError, ExtractionError) as e:
            print(f"Fetching {entry.name} ... FAIL")
            print(e)
            return False

    def _fetch_git(self, name: str, url: str, rev: str, dest_dir: Path) -> bool:
        if not url:
            raise FetchError(f"No url configured for dependency {name}")

        dest_dir.mkdir(parents=True, exist_ok=True)
        if not (dest_dir / ".git").exists():
            init = f"git init -q {dest_dir} && git -C {dest_dir} remote add origin {url}"
            if not self.session.run_checked(f"Initializing {name}", init):
                return False
        else:
            self.session.run(f"git -C {dest_dir} remote set-url origin {url}")

        ref = rev or "HEAD"
        logging.debug(f"Fetching {url} at {ref} into {dest_dir}")
        return self.session.run_checked(
            f"Fetching {name} ({ref})",
            f"git -C {dest_dir} fetch -q --tags origin {ref}"
            f" && git -C {dest_dir} checkout -q -f FETCH_HEAD",
        )

    def _fetch_curl(self, name: str, url: str, unpack: str, dest_dir: Path) -> bool:
        if not url:
            raise FetchError(f"No url configured for dependency {name}")

        filename = filename_from_url(url, fallback=name)
        if not unpack:
            self.downloader.download(url, dest_dir / filename, show_progress=self.show_progress)
            print(f"Fetching {name} ... OK")
            return True

        archive_path = self.downloads_dir / name / filename
        self.downloader.download(url, archive_path, show_progress=self.show_progress)
        archive_format = unpack if unpack in ARCHIVE_FORMATS else ""
        self.downloader.extract_archive(archive_path, dest_dir, archive_format)
        print(f"Fetching {name} ... OK")
        return True
