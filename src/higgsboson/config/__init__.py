"""Configuration modules for higgs-boson."""

from .manifest import (
    MANIFEST_FILENAME,
    CommandSet,
    DependencySpec,
    ManifestError,
    ProjectManifest,
    TargetBlock,
)
from .registry import PLACEHOLDER_VALUE, ArtifactEntry, ArtifactRegistry
from .targets import (
    VALID_TARGETS,
    is_valid_target,
    library_extension,
    os_family,
    substitute_build_variables,
)

__all__ = [
    "MANIFEST_FILENAME",
    "CommandSet",
    "DependencySpec",
    "ManifestError",
    "ProjectManifest",
    "TargetBlock",
    "PLACEHOLDER_VALUE",
    "ArtifactEntry",
    "ArtifactRegistry",
    "VALID_TARGETS",
    "is_valid_target",
    "library_extension",
    "os_family",
    "substitute_build_variables",
]
