"""
higgs-boson.yaml manifest parser.

This module provides functionality to parse higgs-boson.yaml files into
immutable, typed views of the project, its dependencies and its build/test
hook commands.

Example higgs-boson.yaml:
    project:
      name: example
      type: exe
      version: 1.0.0
      source: src
      test: test
      main: src/main.cpp
      targets:
        - linux-x64
    dependencies:
      - name: restbed
        source: git
        url: https://github.com/bitboson-deps/restbed.git
        rev: 4.6
        type: manual
        target any:
          build:
            - make
          libs:
            - build/librestbed.${LIB_EXT}
          include:
            - source/

Missing or malformed fields never raise: scalars resolve to an empty string
and lists to an empty list. Only a missing or unparseable file is an error.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .targets import DEFAULT_TARGET


MANIFEST_FILENAME = "higgs-boson.yaml"
TARGET_BLOCK_PREFIX = "target "


class ManifestError(Exception):
    """Exception raised for higgs-boson.yaml loading errors."""

    pass


def load_manifest_document(manifest_path: Path) -> Dict[str, Any]:
    """
    Parse a manifest file into a plain document tree.

    Args:
        manifest_path: Path to the YAML file

    Returns:
        Top-level mapping of the document (empty for an empty file)

    Raises:
        ManifestError: If the file doesn't exist, cannot be parsed or is not a mapping
    """
    manifest_path = Path(manifest_path)
    if not manifest_path.is_file():
        raise ManifestError(f"Manifest file not found: {manifest_path}")

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            # BaseLoader keeps every scalar as written (no 1.10 -> 1.1)
            document = yaml.load(f, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        raise ManifestError(f"Failed to parse {manifest_path}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ManifestError(f"Manifest root must be a mapping: {manifest_path}")
    return document


def _node(parent: Any, key: str) -> Dict[str, Any]:
    value = parent.get(key) if isinstance(parent, dict) else None
    return value if isinstance(value, dict) else {}


def _scalar(parent: Any, key: str) -> str:
    value = parent.get(key) if isinstance(parent, dict) else None
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def _string_list(parent: Any, key: str) -> Tuple[str, ...]:
    value = parent.get(key) if isinstance(parent, dict) else None
    if not isinstance(value, list):
        return ()
    return tuple(
        str(item) for item in value if item not in (None, "") and not isinstance(item, (dict, list))
    )


def resolve_targets(declared: List[str]) -> Tuple[str, ...]:
    """
    Normalize a declared target list.

    Duplicates collapse onto their first occurrence and 'default' is
    appended when absent, so it always appears exactly once.

    Args:
        declared: Targets in manifest order

    Returns:
        Ordered, de-duplicated target tuple ending with 'default' if it was missing
    """
    targets: List[str] = []
    for target in declared:
        if target and target not in targets:
            targets.append(target)
    if DEFAULT_TARGET not in targets:
        targets.append(DEFAULT_TARGET)
    return tuple(targets)


@dataclass(frozen=True)
class TargetBlock:
    """Per-target recipe block of a dependency ('target <name>')."""

    build: Tuple[str, ...] = ()
    libs: Tuple[str, ...] = ()
    include: Tuple[str, ...] = ()

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "TargetBlock":
        return cls(
            build=_string_list(node, "build"),
            libs=_string_list(node, "libs"),
            include=_string_list(node, "include"),
        )

    def is_empty(self) -> bool:
        return not (self.build or self.libs or self.include)


@dataclass(frozen=True)
class DependencySpec:
    """A dependency declared in the manifest."""

    name: str
    source: str  # Fetch kind: 'git' or 'curl'
    resolution: str  # 'manual' or 'higgs-boson'
    url: str = ""
    rev: str = ""
    unpack: str = ""
    conf: str = ""
    target_blocks: Dict[str, TargetBlock] = field(default_factory=dict)

    @property
    def is_manual(self) -> bool:
        return self.resolution == "manual"

    @property
    def is_subproject(self) -> bool:
        return self.resolution == "higgs-boson"

    @property
    def nested_manifest(self) -> str:
        """Filename of the nested manifest for sub-project dependencies."""
        return self.conf or MANIFEST_FILENAME

    def target_block(self, name: str) -> TargetBlock:
        """Get the block for a target, family or 'any' (empty if absent)."""
        return self.target_blocks.get(name, TargetBlock())

    def fetch_properties(self) -> Dict[str, str]:
        """Properties forwarded verbatim to the fetcher for this source kind."""
        if self.source == "git":
            return {"url": self.url, "rev": self.rev}
        if self.source == "curl":
            return {"url": self.url, "unpack": self.unpack}
        return {"url": self.url}

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> Optional["DependencySpec"]:
        """
        Build a spec from one entry of the dependencies list.

        Returns:
            DependencySpec, or None if the entry lacks a name or source
        """
        name = _scalar(node, "name")
        source = _scalar(node, "source")
        if not name or not source:
            return None

        blocks = {
            key[len(TARGET_BLOCK_PREFIX):]: TargetBlock.from_node(value)
            for key, value in node.items()
            if isinstance(key, str)
            and key.startswith(TARGET_BLOCK_PREFIX)
            and isinstance(value, dict)
        }

        return cls(
            name=name,
            source=source,
            resolution=_scalar(node, "type"),
            url=_scalar(node, "url"),
            rev=_scalar(node, "rev"),
            unpack=_scalar(node, "unpack"),
            conf=_scalar(node, "conf"),
            target_blocks=blocks,
        )


@dataclass(frozen=True)
class CommandSet:
    """Shell commands run before and after a build or test."""

    pre: Tuple[str, ...] = ()
    post: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProjectManifest:
    """Typed view over a parsed higgs-boson.yaml document."""

    name: str
    kind: str
    version: str
    source: str
    test: str
    main: str
    targets: Tuple[str, ...]
    dependencies: Tuple[DependencySpec, ...] = ()
    build_commands: CommandSet = CommandSet()
    test_commands: CommandSet = CommandSet()

    @property
    def is_executable(self) -> bool:
        return self.kind == "exe"

    def has_target(self, target: str) -> bool:
        return target in self.targets

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ProjectManifest":
        project = _node(document, "project")
        commands = _node(document, "commands")
        build = _node(commands, "build")
        test = _node(commands, "test")

        dependencies: List[DependencySpec] = []
        seen = set()
        raw_dependencies = document.get("dependencies")
        if isinstance(raw_dependencies, list):
            for entry in raw_dependencies:
                if not isinstance(entry, dict):
                    continue
                spec = DependencySpec.from_node(entry)
                if spec is None or spec.name in seen:
                    continue
                seen.add(spec.name)
                dependencies.append(spec)

        return cls(
            name=_scalar(project, "name"),
            kind=_scalar(project, "type"),
            version=_scalar(project, "version"),
            source=_scalar(project, "source"),
            test=_scalar(project, "test"),
            main=_scalar(project, "main"),
            targets=resolve_targets(list(_string_list(project, "targets"))),
            dependencies=tuple(dependencies),
            build_commands=CommandSet(_string_list(build, "pre"), _string_list(build, "post")),
            test_commands=CommandSet(_string_list(test, "pre"), _string_list(test, "post")),
        )

    @classmethod
    def from_file(cls, manifest_path: Path) -> "ProjectManifest":
        """
        Load and interpret a manifest file.

        Raises:
            ManifestError: If the file is missing or cannot be parsed
        """
        return cls.from_document(load_manifest_document(manifest_path))


def read_declared_targets(manifest_path: Path) -> List[str]:
    """
    Read the targets a (possibly absent) manifest declares, as written.

    Used for nested sub-project manifests, which only exist after download.

    Returns:
        Declared targets, or an empty list if the file is missing or invalid
    """
    try:
        document = load_manifest_document(manifest_path)
    except ManifestError:
        return []
    return list(_string_list(_node(document, "project"), "targets"))


def read_project_source(manifest_path: Path) -> str:
    """Read project.source from a manifest, empty if unavailable."""
    try:
        document = load_manifest_document(manifest_path)
    except ManifestError:
        return ""
    return _scalar(_node(document, "project"), "source")
