"""
Source file discovery.

This module handles:
- Scanning the project source directory for C/C++ sources and headers
- Scanning the project test directory for test headers
- Building source file collections for the native build file
"""

from pathlib import Path
from typing import List, Optional, Set
from dataclasses import dataclass


SOURCE_EXTENSIONS = {'.c', '.cpp', '.cxx'}
HEADER_EXTENSIONS = {'.h', '.hpp', '.hxx'}


@dataclass
class SourceCollection:
    """Collection of project files categorized by role."""

    sources: List[Path]     # .c/.cpp/.cxx files, main file excluded
    headers: List[Path]     # .h/.hpp/.hxx files under the source directory
    tests: List[Path]       # .h/.hpp/.hxx files under the test directory


class SourceScanner:
    """
    Scans a project for files to hand to the native build.

    The scanner:
    1. Finds all C/C++ sources in the source directory, skipping the main file
    2. Finds all headers in the source directory
    3. Finds all test headers in the test directory
    4. Returns a sorted SourceCollection
    """

    # Directories never scanned
    EXCLUDED_DIRS = {'.higgs-boson', '.git', 'output', '__pycache__', 'node_modules'}

    def __init__(self, project_dir: Path):
        """
        Initialize source scanner.

        Args:
            project_dir: Root project directory
        """
        self.project_dir = Path(project_dir)

    def scan(
        self,
        source_dir: str,
        test_dir: str = "",
        main_file: str = "",
    ) -> SourceCollection:
        """
        Scan for all project files.

        Args:
            source_dir: Source directory relative to the project
            test_dir: Test directory relative to the project (optional)
            main_file: Main file relative to the project, excluded from sources

        Returns:
            SourceCollection with all discovered files
        """
        src = self.project_dir / source_dir
        main_path: Optional[Path] = (self.project_dir / main_file).resolve() if main_file else None

        sources = [
            path for path in self._find_files(src, SOURCE_EXTENSIONS)
            if path.resolve() != main_path
        ]
        headers = self._find_files(src, HEADER_EXTENSIONS)
        tests = self._find_files(self.project_dir / test_dir, HEADER_EXTENSIONS) if test_dir else []

        return SourceCollection(sources=sources, headers=headers, tests=tests)

    def _find_files(self, directory: Path, extensions: Set[str]) -> List[Path]:
        if not directory.is_dir():
            return []

        found = []
        for path in directory.rglob('*'):
            if any(part in self.EXCLUDED_DIRS for part in path.relative_to(directory).parts):
                continue
            if path.is_file() and path.suffix.lower() in extensions:
                found.append(path)
        return sorted(found)
