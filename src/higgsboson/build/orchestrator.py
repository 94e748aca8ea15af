"""
Build orchestration for higgs-boson projects.

This module drives the four pipeline phases:
- download: fetch every dependency into the cache
- build-deps <target>: build every dependency and cache its libraries/headers
- build <target>: build the project and assemble its output tree and package
- test <type>: build and run the project's tests against host dependencies

Every phase re-reads the manifest through a snapshot factory, so a phase
that runs after download sees the nested manifests download created. Each
phase returns a single success flag; steps inside a phase all run even
after one fails.
"""

import logging
import shutil
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..config.targets import DEFAULT_TARGET
from ..execution import ExecutionSession
from ..packages.dependency import list_files
from ..packages.fetcher import DependencyFetcher
from ..packages.resolver import ManifestSnapshot, SnapshotFactory
from .archive_creator import ArchiveCreator, ArchiveError
from .cmake_project import CMakeProject, TestType
from .source_scanner import SourceScanner


def run_all(steps: Iterable[Callable[[], bool]]) -> bool:
    """Run every step, even after a failure, and report whether all succeeded."""
    success = True
    for step in steps:
        success &= bool(step())
    return success


class BuildPipeline:
    """
    Orchestrates the build phases of a higgs-boson project.

    Example usage:
        resolver = DependencyResolver(Path("."), session)
        pipeline = BuildPipeline(resolver.resolve, session)
        if pipeline.download() and pipeline.build_dependencies("linux-x64"):
            pipeline.build_project("linux-x64")
    """

    def __init__(
        self,
        snapshot_factory: SnapshotFactory,
        session: ExecutionSession,
        fetcher: Optional[DependencyFetcher] = None,
        archive_creator: Optional[ArchiveCreator] = None,
        cmake_factory: Optional[Callable[[ManifestSnapshot], CMakeProject]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            snapshot_factory: Builds a fresh ManifestSnapshot from disk
            session: Session commands run in
            fetcher: Dependency fetcher (defaults to one using the session)
            archive_creator: Package archiver
            cmake_factory: Builds the native build collaborator for a snapshot
        """
        self.snapshot_factory = snapshot_factory
        self.session = session
        self.fetcher = fetcher
        self.archive_creator = archive_creator or ArchiveCreator()
        self.cmake_factory = cmake_factory or self.create_cmake_project

    def download(self) -> bool:
        """Fetch every dependency into the cache."""
        snapshot = self.snapshot_factory()
        cache = snapshot.cache
        fetcher = self.fetcher or DependencyFetcher(self.session, cache.downloads_dir)
        logging.info(f"Downloading {len(snapshot.manifest.dependencies)} dependencies")
        return fetcher.sync(snapshot.manifest.dependencies, cache.raw_dir)

    def build_dependencies(self, target: str) -> bool:
        """
        Build every dependency for a target and cache the results.

        Libraries land in <cache>/output/<target>/<dependency>/ and headers are
        merged into <cache>/includes/<target>/.

        Args:
            target: Target triple, must be declared by the project

        Returns:
            True if every dependency built and cached successfully
        """
        snapshot = self.snapshot_factory()
        if not snapshot.manifest.has_target(target):
            logging.warning(f"Target {target} is not configured for this project")
            return False

        cache = snapshot.cache
        output_dir = cache.get_output_dir(target)
        includes_dir = cache.get_includes_dir(target)
        self.session.run(f"rm -rf {output_dir}")
        self.session.run(f"rm -rf {includes_dir}")

        success = self._make_dir(includes_dir)
        for dependency in snapshot.dependencies:
            dependency_cache = output_dir / dependency.name
            success &= dependency.compile(
                target,
                snapshot.registry.libraries(dependency.name, target),
                snapshot.registry.headers(dependency.name, target),
            )
            success &= self._make_dir(dependency_cache)
            for library in dependency.list_libraries(target):
                success &= self._copy_file(Path(library), dependency_cache)
            success &= self._merge_dir(dependency.header_dir(target), includes_dir)
        return success

    def build_project(self, target: str) -> bool:
        """
        Build the project for a target and assemble its output tree.

        Output tree:
            output/<target>/bin/   executable (exe projects)
            output/<target>/lib/   libraries (library projects)
            output/<target>/deps/  dependency libraries
            output/<target>/pkg/   <name>-<version>-<target>.hbsn

        Args:
            target: Target triple, must be declared by the project

        Returns:
            True if the build and every assembly step succeeded
        """
        snapshot = self.snapshot_factory()
        manifest = snapshot.manifest
        if not manifest.has_target(target):
            logging.warning(f"Target {target} is not configured for this project")
            return False

        cache = snapshot.cache
        output_dir = cache.get_project_output_dir(target)
        self.session.run(f"rm -rf {output_dir}")

        cmake = self.cmake_factory(snapshot)
        libraries = self.cached_libraries(snapshot, target)
        for library in libraries:
            cmake.add_library(library)
        for dependency in snapshot.dependencies:
            cmake.add_include_dir(str(dependency.header_dir(target)))

        if not cmake.build(target):
            return False

        success = run_all(
            partial(self._make_dir, output_dir / sub)
            for sub in ("bin", "lib", "deps", "pkg")
        )

        artifact_kind = "bin" if manifest.is_executable else "lib"
        success &= self._move_contents(
            cache.get_compile_dir(target) / artifact_kind, output_dir / artifact_kind
        )
        for library in libraries:
            success &= self._copy_file(Path(library), output_dir / "deps")

        package = output_dir / "pkg" / f"{manifest.name}-{manifest.version}-{target}.hbsn"
        try:
            self.archive_creator.create_package(output_dir, package)
        except ArchiveError as e:
            print(e)
            success = False
        return success

    def test(self, test_type: TestType = TestType.TEST, test_filter: str = "") -> bool:
        """
        Build and run the project's tests on the host target.

        Args:
            test_type: Test flavour
            test_filter: Test filter passed to the test executable

        Returns:
            True if the tests built and passed
        """
        snapshot = self.snapshot_factory()
        cmake = self.cmake_factory(snapshot)
        for library in self.cached_libraries(snapshot, DEFAULT_TARGET):
            cmake.add_library(library)
        for dependency in snapshot.dependencies:
            cmake.add_include_dir(str(dependency.header_dir(DEFAULT_TARGET)))
        return cmake.test(test_type, test_filter)

    def create_cmake_project(self, snapshot: ManifestSnapshot) -> CMakeProject:
        """Build the native build collaborator for the project in a snapshot."""
        manifest = snapshot.manifest
        project_dir = snapshot.cache.project_dir

        cmake = CMakeProject(
            name=manifest.name,
            version=manifest.version,
            project_dir=project_dir,
            cache_dir=snapshot.cache.cache_root,
            session=self.session,
            build_commands=manifest.build_commands,
            test_commands=manifest.test_commands,
        )
        scanner = SourceScanner(project_dir)
        cmake.add_sources(scanner.scan(manifest.source, manifest.test, manifest.main))
        if manifest.is_executable and manifest.main:
            cmake.set_main_file(project_dir / manifest.main)
        return cmake

    @staticmethod
    def cached_libraries(snapshot: ManifestSnapshot, target: str) -> List[str]:
        """Cached dependency libraries for a target, in dependency order."""
        output_dir = snapshot.cache.get_output_dir(target)
        libraries: List[str] = []
        for dependency in snapshot.dependencies:
            libraries.extend(list_files(output_dir / dependency.name))
        return libraries

    @staticmethod
    def _make_dir(directory: Path) -> bool:
        try:
            directory.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logging.warning(f"Failed to create {directory}: {e}")
            return False

    @staticmethod
    def _copy_file(source: Path, dest_dir: Path) -> bool:
        try:
            shutil.copy2(source, dest_dir)
            return True
        except OSError as e:
            logging.warning(f"Failed to copy {source} to {dest_dir}: {e}")
            return False

    @staticmethod
    def _merge_dir(source: Path, dest_dir: Path) -> bool:
        if not source.is_dir():
            logging.warning(f"Header directory not found: {source}")
            return False
        try:
            shutil.copytree(source, dest_dir, symlinks=True, dirs_exist_ok=True)
            return True
        except (OSError, shutil.Error) as e:
            logging.warning(f"Failed to merge {source} into {dest_dir}: {e}")
            return False

    @staticmethod
    def _move_contents(source: Path, dest_dir: Path) -> bool:
        entries = sorted(source.iterdir()) if source.is_dir() else []
        if not entries:
            logging.warning(f"No build artifacts found in {source}")
            return False
        try:
            for entry in entries:
                shutil.move(str(entry), str(dest_dir / entry.name))
            return True
        except OSError as e:
            logging.warning(f"Failed to move build artifacts from {source}: {e}")
            return False
