"""
Artifact registry for dependency outputs.

Maps each (dependency, target) pair to the library files and header
directories a dependency build produces, relative to the dependency checkout.

Configuration lookup for a target follows a fixed fallback order:
    1. 'target <triple>' block
    2. 'target <os-family>' block
    3. 'target any' block
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .manifest import DependencySpec, TargetBlock
from .targets import ANY_TARGET, os_family, substitute_build_variables


# Stored for sub-project dependencies until their nested build lists real outputs
PLACEHOLDER_VALUE = "HIGGS_BOSON_PLACEHOLDER_VALUE"


@dataclass(frozen=True)
class ArtifactEntry:
    """Library files and header directories for one dependency/target pair."""

    libs: Tuple[str, ...] = ()
    headers: Tuple[str, ...] = ()


def select_target_block(spec: DependencySpec, target: str) -> TargetBlock:
    """
    Pick the configuration block for a target.

    Args:
        spec: Dependency declaration
        target: Target triple

    Returns:
        The target's own block if non-empty, else its OS family block (possibly empty)
    """
    block = spec.target_block(target)
    if block.is_empty():
        family = os_family(target)
        block = spec.target_block(family) if family else TargetBlock()
    return block


def resolve_build_steps(spec: DependencySpec, target: str) -> List[str]:
    """Resolve and substitute the build steps of a dependency for a target."""
    steps = select_target_block(spec, target).build
    if not steps:
        steps = spec.target_block(ANY_TARGET).build
    return [substitute_build_variables(target, step) for step in steps]


def resolve_artifacts(spec: DependencySpec, target: str) -> ArtifactEntry:
    """
    Resolve the libs/include declarations of a dependency for a target.

    Falls back to the 'target any' block only when the selected block yields
    neither libs nor include. A single empty header entry stands in for
    "no headers".
    """
    block = select_target_block(spec, target)
    libs, headers = block.libs, block.include
    if not libs and not headers:
        fallback = spec.target_block(ANY_TARGET)
        libs, headers = fallback.libs, fallback.include

    libs = tuple(substitute_build_variables(target, lib) for lib in libs)
    headers = tuple(substitute_build_variables(target, header) for header in headers)
    if not headers:
        headers = ("",)
    return ArtifactEntry(libs=libs, headers=headers)


class ArtifactRegistry:
    """Per (dependency, target) record of expected build outputs."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], ArtifactEntry] = {}

    def register(
        self, dependency: str, target: str, libs: Sequence[str], headers: Sequence[str]
    ) -> None:
        """
        Record the outputs of a dependency for a target.

        Args:
            dependency: Dependency name
            target: Target triple
            libs: Library paths relative to the dependency checkout
            headers: Header directories relative to the dependency checkout
        """
        self._entries[(dependency, target)] = ArtifactEntry(tuple(libs), tuple(headers))

    def register_placeholder(self, dependency: str, target: str) -> None:
        """Record a sub-project dependency whose outputs are only known after it builds."""
        self.register(dependency, target, [PLACEHOLDER_VALUE], [PLACEHOLDER_VALUE])

    def lookup(self, dependency: str, target: str) -> ArtifactEntry:
        return self._entries.get((dependency, target), ArtifactEntry())

    def libraries(self, dependency: str, target: str) -> List[str]:
        return list(self.lookup(dependency, target).libs)

    def headers(self, dependency: str, target: str) -> List[str]:
        return list(self.lookup(dependency, target).headers)

    def targets_for(self, dependency: str) -> List[str]:
        return [target for (name, target) in self._entries if name == dependency]

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
