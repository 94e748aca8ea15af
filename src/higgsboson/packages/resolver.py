"""
Dependency resolution.

Turns a project manifest into a ManifestSnapshot: the manifest itself, the
runtime Dependency objects (with their per-target recipes written) and the
ArtifactRegistry describing what each dependency produces per target.

A snapshot is a value. It is built from disk once per pipeline phase and
never updated in place, so a phase that runs after download sees the nested
manifests that download created.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..config.manifest import MANIFEST_FILENAME, DependencySpec, ProjectManifest
from ..config.registry import ArtifactRegistry, resolve_artifacts, resolve_build_steps
from ..config.targets import ANY_TARGET, DEFAULT_TARGET
from ..execution import ExecutionSession
from .cache import ProjectCache
from .dependency import Dependency, ManualDependency, SubprojectDependency


# Compilers used for the host ('default') target
DEFAULT_C_COMPILER = "/usr/bin/clang"
DEFAULT_CXX_COMPILER = "/usr/bin/clang++"


@dataclass(frozen=True)
class ManifestSnapshot:
    """Immutable view of a project's configuration at one point in time."""

    manifest: ProjectManifest
    dependencies: Tuple[Dependency, ...]
    registry: ArtifactRegistry
    cache: ProjectCache

    def get_dependency(self, name: str) -> Optional[Dependency]:
        for dependency in self.dependencies:
            if dependency.name == name:
                return dependency
        return None


SnapshotFactory = Callable[[], ManifestSnapshot]


class DependencyResolver:
    """
    Builds ManifestSnapshots for a project.

    Example usage:
        resolver = DependencyResolver(Path("."), session)
        snapshot = resolver.resolve()
        for dependency in snapshot.dependencies:
            print(dependency.name, dependency.get_available_targets())
    """

    def __init__(
        self,
        project_dir: Path,
        session: ExecutionSession,
        manifest_path: Optional[Path] = None,
        cache: Optional[ProjectCache] = None,
    ):
        """
        Initialize resolver.

        Args:
            project_dir: Project directory
            session: Session dependency recipes are written for
            manifest_path: Manifest file (defaults to <project_dir>/higgs-boson.yaml)
            cache: Cache layout (defaults to the project's cache)
        """
        self.project_dir = Path(project_dir).resolve()
        self.session = session
        self.manifest_path = Path(manifest_path) if manifest_path else self.project_dir / MANIFEST_FILENAME
        self.cache = cache or ProjectCache(self.project_dir)

    def resolve(self) -> ManifestSnapshot:
        """
        Read the manifest from disk and build a fresh snapshot.

        Raises:
            ManifestError: If the project manifest is missing or invalid
        """
        manifest = ProjectManifest.from_file(self.manifest_path)
        registry = ArtifactRegistry()
        dependencies: List[Dependency] = []

        for spec in manifest.dependencies:
            if spec.is_manual:
                dependency = self._resolve_manual(spec, manifest, registry)
            elif spec.is_subproject:
                dependency = self._resolve_subproject(spec, registry)
            else:
                logging.warning(
                    f"Ignoring dependency {spec.name}: unknown type '{spec.resolution}'"
                )
                continue
            dependencies.append(dependency)

        logging.debug(
            f"Resolved {len(dependencies)} dependencies for {manifest.name or self.project_dir}"
        )
        return ManifestSnapshot(
            manifest=manifest,
            dependencies=tuple(dependencies),
            registry=registry,
            cache=self.cache,
        )

    def build_steps_for(self, spec: DependencySpec, target: str) -> List[str]:
        """
        Full recipe steps for a manual dependency and target.

        The recipe always knows where sibling dependencies live, and the
        host target additionally pins the clang toolchain.
        """
        steps = [f"HIGGS_BOSON_DEPS_DIR={self.cache.raw_dir}"]
        if target == DEFAULT_TARGET:
            steps.append(f"CC={DEFAULT_C_COMPILER}")
            steps.append(f"CXX={DEFAULT_CXX_COMPILER}")
        steps.extend(resolve_build_steps(spec, target))
        return steps

    def _resolve_manual(
        self, spec: DependencySpec, manifest: ProjectManifest, registry: ArtifactRegistry
    ) -> ManualDependency:
        dependency = ManualDependency(
            spec.name,
            self.cache.get_dependency_dir(spec.name),
            self.session,
            manifest.targets,
        )
        for target in manifest.targets:
            if target == ANY_TARGET:
                continue
            dependency.set_build_steps(target, self.build_steps_for(spec, target))
            artifacts = resolve_artifacts(spec, target)
            registry.register(spec.name, target, artifacts.libs, artifacts.headers)
        return dependency

    def _resolve_subproject(
        self, spec: DependencySpec, registry: ArtifactRegistry
    ) -> SubprojectDependency:
        dependency = SubprojectDependency(
            spec.name,
            self.cache.get_dependency_dir(spec.name),
            self.session,
            spec.nested_manifest,
        )
        for target in dependency.get_available_targets():
            registry.register_placeholder(spec.name, target)
        return dependency
