"""
Build system components for higgs-boson.

This module provides the build system implementation including:
- Source file discovery
- CMake project generation and execution
- Package archiving
- Pipeline orchestration
"""

from .archive_creator import ArchiveCreator, ArchiveError
from .cmake_project import CMakeProject, TestType
from .orchestrator import BuildPipeline, run_all
from .source_scanner import SourceCollection, SourceScanner

__all__ = [
    'ArchiveCreator',
    'ArchiveError',
    'CMakeProject',
    'TestType',
    'BuildPipeline',
    'run_all',
    'SourceCollection',
    'SourceScanner',
]
