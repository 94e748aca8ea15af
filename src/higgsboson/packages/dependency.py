"""
Runtime dependency model.

Two kinds of dependencies exist:
- ManualDependency: a flat shell recipe per target, declared inline in the
  manifest
- SubprojectDependency: a dependency that is itself a higgs-boson project;
  it builds by re-invoking higgs-boson inside its checkout through a private
  ManualDependency

Both expose the same operations: available targets, compile, library
listing and the per-target output directories.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

from ..config.manifest import MANIFEST_FILENAME, read_declared_targets, read_project_source
from ..config.targets import ANY_TARGET
from ..execution import ExecutionSession, ScriptWriter


def unescape_step(step: str) -> str:
    """Expand the escapes recipes use for characters YAML would mangle."""
    return step.replace("__COLON__", ":").replace("__QUOTE__", '"')


def list_files(directory: Path) -> List[str]:
    """Recursively list regular files under a directory, sorted."""
    if not directory.is_dir():
        return []
    return sorted(str(path) for path in directory.rglob("*") if path.is_file())


class Dependency(ABC):
    """
    Base class for external dependencies.

    Per-target outputs are cached inside the dependency checkout:
        <dir>/higgs-boson_<target>_libraries
        <dir>/higgs-boson_<target>_headers
    """

    def __init__(self, name: str, directory: Path, session: ExecutionSession):
        """
        Initialize dependency.

        Args:
            name: Unique dependency name
            directory: Dependency checkout directory
            session: Session recipe commands run in
        """
        self.name = name
        self.directory = Path(directory)
        self.session = session

    def library_dir(self, target: str) -> Path:
        return self.directory / f"higgs-boson_{target}_libraries"

    def header_dir(self, target: str) -> Path:
        return self.directory / f"higgs-boson_{target}_headers"

    @abstractmethod
    def get_available_targets(self) -> List[str]:
        """Get the targets this dependency can be built for."""

    def is_valid_target(self, target: str) -> bool:
        return target in self.get_available_targets()

    @abstractmethod
    def compile(self, target: str, lib_paths: Sequence[str], header_dirs: Sequence[str]) -> bool:
        """
        Build the dependency for a target and cache its outputs.

        Args:
            target: Target triple
            lib_paths: Library files to cache, relative to the checkout
            header_dirs: Header directories to cache, relative to the checkout

        Returns:
            True if the build and caching succeeded
        """

    def list_libraries(self, target: str) -> List[str]:
        """
        List the cached library files for a target.

        Returns:
            Sorted absolute paths, or an empty list for unsupported targets
        """
        if not self.is_valid_target(target):
            return []
        return list_files(self.library_dir(target))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, directory={str(self.directory)!r})"


class ManualDependency(Dependency):
    """
    Dependency built from inline shell recipe steps.

    Each target gets its own recipe script, <dir>/higgs-build_<target>.sh,
    which starts with a fixed preamble exporting the output locations.
    """

    def __init__(
        self,
        name: str,
        directory: Path,
        session: ExecutionSession,
        targets: Sequence[str],
    ):
        super().__init__(name, directory, session)
        self._targets = [target for target in targets if target != ANY_TARGET]

    def get_available_targets(self) -> List[str]:
        return list(self._targets)

    def recipe_path(self, target: str) -> Path:
        return self.directory / f"higgs-build_{target}.sh"

    def set_build_steps(self, target: str, steps: Sequence[str]) -> bool:
        """
        Write the recipe script for a target.

        Args:
            target: Target triple
            steps: Shell lines appended after the preamble

        Returns:
            True if the recipe was written, False for unsupported targets
        """
        if not self.is_valid_target(target):
            return False

        header_dir = self.header_dir(target)
        library_dir = self.library_dir(target)
        with ScriptWriter(self.session, self.recipe_path(target)) as script:
            script.write_line(f"cd {self.directory}")
            script.write_line(f"HIGGS_TARGET={target}")
            script.write_line(f"HIGGS_HEADER_DIR={header_dir}")
            script.write_line(f"HIGGS_LIBRARY_DIR={library_dir}")
            script.write_line(f"mkdir -p {header_dir}")
            script.write_line(f"mkdir -p {library_dir}")
            for step in steps:
                script.write_line(unescape_step(step))
        return True

    def compile(self, target: str, lib_paths: Sequence[str], header_dirs: Sequence[str]) -> bool:
        if not self.is_valid_target(target):
            return False

        success = self.run_recipe(target)
        if success:
            success = self.cache_artifacts(target, lib_paths, header_dirs)
        return success

    def run_recipe(self, target: str) -> bool:
        """Clear the target's output directories and run its recipe script."""
        self.session.run(f"rm -rf {self.library_dir(target)}")
        self.session.run(f"rm -rf {self.header_dir(target)}")
        return self.session.run_checked(
            f"Building {self.name} for Target {target}",
            f"bash {self.recipe_path(target)}",
        )

    def cache_artifacts(
        self,
        target: str,
        lib_paths: Sequence[str],
        header_dirs: Sequence[str],
        full_paths: bool = False,
    ) -> bool:
        """
        Copy build outputs into the target's library and header directories.

        Empty entries are skipped. Every copy runs even after a failure.

        Args:
            target: Target triple
            lib_paths: Library files to copy
            header_dirs: Header directories to merge
            full_paths: Paths are absolute rather than relative to the checkout

        Returns:
            True if every copy succeeded
        """
        prefix = "" if full_paths else f"{self.directory}/"
        library_dir = self.library_dir(target)
        header_dir = self.header_dir(target)

        success = True
        for lib in lib_paths:
            if not lib:
                continue
            success &= self.session.run_checked(
                f"Caching {self.name} Binary {lib} for Target {target}",
                f"mkdir -p {library_dir} && cp {prefix}{lib} {library_dir}",
            )
        for headers in header_dirs:
            if not headers:
                continue
            success &= self.session.run_checked(
                f"Caching {self.name} Headers {headers} for Target {target}",
                f"mkdir -p {header_dir} && rsync -av --exclude='*/higgs-boson_*' {prefix}{headers} {header_dir}",
            )
        return success


# Nested runs keep their cache inside the checkout, never the parent's
INTERNAL_BUILD_STEPS = (
    "HIGGS_BOSON_CACHE_DIR= higgs-boson internal download",
    "HIGGS_BOSON_CACHE_DIR= higgs-boson internal build-deps {target}",
    "HIGGS_BOSON_CACHE_DIR= higgs-boson internal build {target}",
)


class SubprojectDependency(Dependency):
    """
    Dependency that is itself a higgs-boson project.

    Its targets come from the nested manifest, which only exists once the
    dependency has been fetched, so they are re-read on every query.
    """

    def __init__(
        self,
        name: str,
        directory: Path,
        session: ExecutionSession,
        conf: str = MANIFEST_FILENAME,
    ):
        """
        Initialize sub-project dependency.

        Args:
            name: Unique dependency name
            directory: Dependency checkout directory
            session: Session recipe commands run in
            conf: Nested manifest filename inside the checkout
        """
        super().__init__(name, directory, session)
        self.manifest_path = self.directory / (conf or MANIFEST_FILENAME)
        self.project_output = self.directory / "output"
        self.headers_output = self.directory / ".higgs-boson" / "includes"

        targets = self.get_available_targets()
        self._recipe = ManualDependency(name, directory, session, targets)
        for target in targets:
            self._recipe.set_build_steps(
                target, [step.format(target=target) for step in INTERNAL_BUILD_STEPS]
            )

    @property
    def project_source(self) -> Path:
        return self.directory / read_project_source(self.manifest_path)

    def get_available_targets(self) -> List[str]:
        return read_declared_targets(self.manifest_path)

    def compile(self, target: str, lib_paths: Sequence[str], header_dirs: Sequence[str]) -> bool:
        """
        Build the nested project and cache what it produced.

        The declared libs/include of a sub-project are placeholders, so the
        libraries are taken from the nested output tree and the headers from
        the nested project's sources and merged dependency headers.
        """
        if not self.is_valid_target(target) or not self._recipe.is_valid_target(target):
            logging.debug(f"{self.name} has no recipe for target {target}")
            return False

        success = self._recipe.run_recipe(target)
        if success:
            libraries = list_files(self.project_output / target / "deps")
            libraries += list_files(self.project_output / target / "lib")
            headers = [f"{self.project_source}/", f"{self.headers_output / target}/"]
            success = self._recipe.cache_artifacts(target, libraries, headers, full_paths=True)
        return success
