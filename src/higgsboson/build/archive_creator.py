"""Archive Creator.

This module handles packaging a target's output tree into a portable
.hbsn archive (an uncompressed tar of the tree's contents).

Design:
    - Archives everything under the output tree except the archive itself
    - Writes to a temporary name and renames on success
    - Shows archive size information
"""

import tarfile
from pathlib import Path


class ArchiveError(Exception):
    """Raised when archive creation operations fail."""
    pass


class ArchiveCreator:
    """Creates .hbsn package archives from output trees."""

    def __init__(self, show_progress: bool = True):
        """Initialize archive creator.

        Args:
            show_progress: Whether to show archive creation progress
        """
        self.show_progress = show_progress

    def create_package(self, source_dir: Path, archive_path: Path) -> Path:
        """Create a package archive from a directory's contents.

        Members are stored relative to source_dir ('./bin/...', './lib/...').

        Args:
            source_dir: Directory to archive
            archive_path: Path for the output .hbsn file

        Returns:
            Path to generated archive file

        Raises:
            ArchiveError: If archive creation fails
        """
        source_dir = Path(source_dir)
        archive_path = Path(archive_path)

        if not source_dir.is_dir():
            raise ArchiveError(f"Nothing to package, directory not found: {source_dir}")

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = archive_path.with_name(archive_path.name + ".tmp")

        if self.show_progress:
            print(f"Creating package {archive_path.name}...")

        skipped = (archive_path.name, temp_path.name)

        def exclude_self(info: tarfile.TarInfo):
            return None if info.name.endswith(skipped) else info

        try:
            with tarfile.open(temp_path, "w") as tar:
                for entry in sorted(source_dir.iterdir()):
                    tar.add(entry, arcname=f"./{entry.name}", filter=exclude_self)
            temp_path.replace(archive_path)
        except (OSError, tarfile.TarError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ArchiveError(f"Failed to create package {archive_path.name}: {e}") from e

        if self.show_progress:
            size = archive_path.stat().st_size
            print(f"✓ Created {archive_path.name}: {size:,} bytes ({size / 1024 / 1024:.2f} MB)")

        return archive_path
