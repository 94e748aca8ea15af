"""Cache management for higgs-boson projects.

This module provides the cache layout shared by the fetch, dependency build,
project build and test phases.

Cache Structure:
    .higgs-boson/
    ├── external/
    │   └── raw/
    │       └── {dependency}/       # Fetched dependency checkout
    ├── output/
    │   └── {target}/
    │       └── {dependency}/       # Cached dependency libraries
    ├── includes/
    │   └── {target}/               # Merged dependency headers
    ├── builds/
    │   ├── compile/{target}/       # Native build tree per target
    │   └── {test_type}/            # Native build tree per test flavour
    ├── downloads/                  # Raw curl downloads
    └── CMakeLists.txt              # Generated native build file

Project Output Structure:
    output/
    └── {target}/
        ├── bin/
        ├── lib/
        ├── deps/
        └── pkg/{name}-{version}-{target}.hbsn
"""

import os
from pathlib import Path
from typing import Optional


class ProjectCache:
    """Manages the higgs-boson cache directory structure.

    The cache lives in the project directory (.higgs-boson/) unless the
    HIGGS_BOSON_CACHE_DIR environment variable points elsewhere.
    """

    def __init__(self, project_dir: Optional[Path] = None):
        """Initialize cache manager.

        Args:
            project_dir: Project directory. If None, uses current directory.
        """
        if project_dir is None:
            project_dir = Path.cwd()

        self.project_dir = Path(project_dir).resolve()

        cache_env = os.environ.get("HIGGS_BOSON_CACHE_DIR")
        if cache_env:
            self.cache_root = Path(cache_env).resolve()
        else:
            self.cache_root = self.project_dir / ".higgs-boson"

    @property
    def raw_dir(self) -> Path:
        """Directory fetched dependencies are synced into."""
        return self.cache_root / "external" / "raw"

    @property
    def downloads_dir(self) -> Path:
        """Directory for raw curl downloads before unpacking."""
        return self.cache_root / "downloads"

    @property
    def builds_dir(self) -> Path:
        """Directory for native build trees."""
        return self.cache_root / "builds"

    def get_dependency_dir(self, name: str) -> Path:
        """Get the checkout directory of a dependency.

        Args:
            name: Dependency name

        Returns:
            Path to the dependency checkout
        """
        return self.raw_dir / name

    def get_output_dir(self, target: str) -> Path:
        """Get the cached dependency library directory for a target.

        Args:
            target: Target triple

        Returns:
            Path holding one sub-directory of libraries per dependency
        """
        return self.cache_root / "output" / target

    def get_includes_dir(self, target: str) -> Path:
        """Get the merged dependency header directory for a target."""
        return self.cache_root / "includes" / target

    def get_compile_dir(self, target: str) -> Path:
        """Get the native build tree for a target."""
        return self.builds_dir / "compile" / target

    def get_test_build_dir(self, flavour: str) -> Path:
        """Get the native build tree for a test flavour (e.g. 'coverage')."""
        return self.builds_dir / flavour

    def get_project_output_dir(self, target: str) -> Path:
        """Get the final output tree of the project for a target."""
        return self.project_dir / "output" / target

    def ensure_directories(self) -> None:
        """Create the base cache directories if they don't exist."""
        for directory in [self.raw_dir, self.downloads_dir, self.builds_dir]:
            directory.mkdir(parents=True, exist_ok=True)
