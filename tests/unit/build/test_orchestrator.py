"""Unit tests for the build pipeline."""

import tarfile
from unittest.mock import Mock, patch

import pytest

from higgsboson.build.cmake_project import CMakeProject, TestType
from higgsboson.build.orchestrator import BuildPipeline, run_all
from higgsboson.config import ArtifactRegistry, ProjectManifest
from higgsboson.config.registry import PLACEHOLDER_VALUE
from higgsboson.execution import ExecutionSession
from higgsboson.packages import Dependency, DependencyFetcher, ProjectCache, SubprojectDependency
from higgsboson.packages.resolver import DependencyResolver, ManifestSnapshot


@pytest.fixture(autouse=True)
def no_cache_override(monkeypatch):
    monkeypatch.delenv("HIGGS_BOSON_CACHE_DIR", raising=False)


@pytest.fixture
def mock_session():
    session = Mock(spec=ExecutionSession)
    session.is_isolated = False
    session.run.return_value = ""
    return session


def make_manifest(kind="exe", targets=("linux-x64",), deps=()):
    return ProjectManifest.from_document({
        "project": {
            "name": "app",
            "type": kind,
            "version": "1.2.3",
            "source": "src",
            "targets": list(targets),
        },
        "dependencies": [
            {"name": name, "source": "git", "url": f"https://example.com/{name}.git"}
            for name in deps
        ],
    })


def make_dependency(tmp_path, name, target="linux-x64", compiles=True, with_library=True):
    """Mock dependency whose outputs exist on disk."""
    directory = tmp_path / "raw" / name
    header_dir = directory / f"higgs-boson_{target}_headers"
    library_dir = directory / f"higgs-boson_{target}_libraries"
    (header_dir / name).mkdir(parents=True)
    (header_dir / name / f"{name}.h").write_text("#pragma once\n")
    library_dir.mkdir(parents=True)
    libraries = []
    if with_library:
        library = library_dir / f"lib{name}.so"
        library.write_text("ELF")
        libraries.append(str(library))

    dependency = Mock(spec=Dependency)
    dependency.name = name
    dependency.compile.return_value = compiles
    dependency.list_libraries.return_value = libraries
    dependency.header_dir.return_value = header_dir
    return dependency


def make_snapshot(tmp_path, manifest, dependencies=()):
    return ManifestSnapshot(
        manifest=manifest,
        dependencies=tuple(dependencies),
        registry=ArtifactRegistry(),
        cache=ProjectCache(tmp_path / "project"),
    )


class TestRunAll:
    """Test the non-short-circuiting step combinator."""

    def test_all_steps_run_after_failure(self):
        calls = []

        def step(result):
            calls.append(result)
            return result

        assert run_all([lambda: step(True), lambda: step(False), lambda: step(True)]) is False
        assert calls == [True, False, True]

    def test_empty_is_success(self):
        assert run_all([]) is True


class TestDownload:
    """Test the download phase."""

    def test_sync_into_raw_dir(self, tmp_path, mock_session):
        manifest = make_manifest(deps=("zlib", "fmt"))
        snapshot = make_snapshot(tmp_path, manifest)
        fetcher = Mock(spec=DependencyFetcher)
        fetcher.sync.return_value = True

        pipeline = BuildPipeline(lambda: snapshot, mock_session, fetcher=fetcher)

        assert pipeline.download() is True
        fetcher.sync.assert_called_once_with(manifest.dependencies, snapshot.cache.raw_dir)


class TestBuildDependencies:
    """Test the build-deps phase."""

    def test_unconfigured_target(self, tmp_path, mock_session):
        """Test an unconfigured target fails without running anything."""
        dependency = make_dependency(tmp_path, "zlib")
        snapshot = make_snapshot(tmp_path, make_manifest(), [dependency])
        pipeline = BuildPipeline(lambda: snapshot, mock_session)

        assert pipeline.build_dependencies("web-wasm") is False
        mock_session.run.assert_not_called()
        dependency.compile.assert_not_called()

    def test_caches_libraries_and_headers(self, tmp_path, mock_session):
        zlib = make_dependency(tmp_path, "zlib")
        fmt = make_dependency(tmp_path, "fmt")
        snapshot = make_snapshot(tmp_path, make_manifest(), [zlib, fmt])
        snapshot.registry.register("zlib", "linux-x64", ["libz.so"], ["include/"])
        pipeline = BuildPipeline(lambda: snapshot, mock_session)

        assert pipeline.build_dependencies("linux-x64") is True

        zlib.compile.assert_called_once_with("linux-x64", ["libz.so"], ["include/"])
        fmt.compile.assert_called_once_with("linux-x64", [], [])
        output_dir = snapshot.cache.get_output_dir("linux-x64")
        includes_dir = snapshot.cache.get_includes_dir("linux-x64")
        assert (output_dir / "zlib" / "libzlib.so").read_text() == "ELF"
        assert (output_dir / "fmt" / "libfmt.so").exists()
        assert (includes_dir / "zlib" / "zlib.h").exists()
        assert (includes_dir / "fmt" / "fmt.h").exists()
        mock_session.run.assert_any_call(f"rm -rf {output_dir}")
        mock_session.run.assert_any_call(f"rm -rf {includes_dir}")

    def test_failure_does_not_stop_later_dependencies(self, tmp_path, mock_session):
        first = make_dependency(tmp_path, "first", compiles=False)
        second = make_dependency(tmp_path, "second")
        snapshot = make_snapshot(tmp_path, make_manifest(), [first, second])
        pipeline = BuildPipeline(lambda: snapshot, mock_session)

        assert pipeline.build_dependencies("linux-x64") is False
        second.compile.assert_called_once()
        assert (snapshot.cache.get_output_dir("linux-x64") / "second" / "libsecond.so").exists()

    def test_default_target_always_configured(self, tmp_path, mock_session):
        snapshot = make_snapshot(tmp_path, make_manifest())
        pipeline = BuildPipeline(lambda: snapshot, mock_session)
        assert pipeline.build_dependencies("default") is True
        assert snapshot.cache.get_includes_dir("default").is_dir()

    def test_snapshot_rebuilt_per_phase(self, tmp_path, mock_session):
        factory = Mock(return_value=make_snapshot(tmp_path, make_manifest()))
        pipeline = BuildPipeline(factory, mock_session)
        pipeline.build_dependencies("default")
        pipeline.build_dependencies("default")
        assert factory.call_count == 2


class TestSubprojectReconstruction:
    """Test a sub-project fetched by one phase is fully resolved by the next."""

    def test_nested_targets_visible_after_download(self, tmp_path, mock_session):
        project = tmp_path.resolve()
        (project / "higgs-boson.yaml").write_text(
            "project:\n"
            "  name: app\n"
            "dependencies:\n"
            "  - name: nested\n"
            "    source: git\n"
            "    url: https://example.com/nested.git\n"
            "    type: higgs-boson\n"
        )
        nested_dir = ProjectCache(project).get_dependency_dir("nested")

        def fetch(dependencies, raw_dir):
            nested_dir.mkdir(parents=True, exist_ok=True)
            (nested_dir / "higgs-boson.yaml").write_text("project:\n  targets:\n    - default\n")
            return True

        def nested_build(dependency, target, lib_paths, header_dirs):
            (dependency.header_dir(target) / "nested").mkdir(parents=True)
            (dependency.header_dir(target) / "nested" / "nested.h").write_text("")
            dependency.library_dir(target).mkdir(parents=True)
            (dependency.library_dir(target) / "libnested.so").write_text("ELF")
            return True

        fetcher = Mock(spec=DependencyFetcher)
        fetcher.sync.side_effect = fetch
        resolver = DependencyResolver(project, mock_session)
        pipeline = BuildPipeline(resolver.resolve, mock_session, fetcher=fetcher)

        assert pipeline.download() is True
        assert not (nested_dir / "higgs-build_default.sh").exists()

        with patch.object(
            SubprojectDependency, "compile", autospec=True, side_effect=nested_build
        ) as mock_compile:
            assert pipeline.build_dependencies("default") is True

        mock_compile.assert_called_once()
        _, target, lib_paths, header_dirs = mock_compile.call_args[0]
        assert target == "default"
        assert lib_paths == [PLACEHOLDER_VALUE]
        assert header_dirs == [PLACEHOLDER_VALUE]
        assert (nested_dir / "higgs-build_default.sh").exists()

        cache = ProjectCache(project)
        assert (cache.get_output_dir("default") / "nested" / "libnested.so").exists()
        assert (cache.get_includes_dir("default") / "nested" / "nested.h").exists()


class TestBuildProject:
    """Test the build phase."""

    def make_cmake(self, snapshot, target, artifact="bin", succeed=True):
        cmake = Mock(spec=CMakeProject)

        def build(build_target):
            compile_dir = snapshot.cache.get_compile_dir(build_target) / artifact
            compile_dir.mkdir(parents=True, exist_ok=True)
            (compile_dir / "app").write_text("binary")
            return succeed

        cmake.build.side_effect = build
        return cmake

    def cache_library(self, snapshot, target, name):
        cached = snapshot.cache.get_output_dir(target) / name
        cached.mkdir(parents=True)
        (cached / f"lib{name}.so").write_text("ELF")
        return str(cached / f"lib{name}.so")

    def test_unconfigured_target(self, tmp_path, mock_session):
        snapshot = make_snapshot(tmp_path, make_manifest())
        factory = Mock()
        pipeline = BuildPipeline(lambda: snapshot, mock_session, cmake_factory=factory)
        assert pipeline.build_project("android-arm") is False
        factory.assert_not_called()

    def test_assembles_output_tree(self, tmp_path, mock_session):
        """Test the executable, dependency libraries and package land in output/<target>."""
        zlib = make_dependency(tmp_path, "zlib")
        snapshot = make_snapshot(tmp_path, make_manifest(deps=("zlib",)), [zlib])
        library = self.cache_library(snapshot, "linux-x64", "zlib")
        cmake = self.make_cmake(snapshot, "linux-x64")
        pipeline = BuildPipeline(
            lambda: snapshot, mock_session, cmake_factory=lambda _: cmake
        )

        assert pipeline.build_project("linux-x64") is True

        cmake.add_library.assert_called_once_with(library)
        cmake.add_include_dir.assert_called_once_with(str(zlib.header_dir.return_value))
        output_dir = snapshot.cache.get_project_output_dir("linux-x64")
        assert (output_dir / "bin" / "app").read_text() == "binary"
        assert (output_dir / "deps" / "libzlib.so").exists()
        assert (output_dir / "lib").is_dir()

        package = output_dir / "pkg" / "app-1.2.3-linux-x64.hbsn"
        with tarfile.open(package) as tar:
            names = tar.getnames()
        assert "./bin/app" in names
        assert "./deps/libzlib.so" in names
        assert not any(name.endswith(".hbsn") for name in names)

    def test_library_project(self, tmp_path, mock_session):
        snapshot = make_snapshot(tmp_path, make_manifest(kind="lib"))
        cmake = self.make_cmake(snapshot, "linux-x64", artifact="lib")
        pipeline = BuildPipeline(lambda: snapshot, mock_session, cmake_factory=lambda _: cmake)

        assert pipeline.build_project("linux-x64") is True
        output_dir = snapshot.cache.get_project_output_dir("linux-x64")
        assert (output_dir / "lib" / "app").exists()
        assert list((output_dir / "bin").iterdir()) == []

    def test_build_failure(self, tmp_path, mock_session):
        snapshot = make_snapshot(tmp_path, make_manifest())
        cmake = self.make_cmake(snapshot, "linux-x64", succeed=False)
        pipeline = BuildPipeline(lambda: snapshot, mock_session, cmake_factory=lambda _: cmake)

        assert pipeline.build_project("linux-x64") is False
        assert not (snapshot.cache.get_project_output_dir("linux-x64") / "pkg").exists()

    def test_missing_artifacts_fail(self, tmp_path, mock_session):
        """Test a build producing nothing still assembles but reports failure."""
        snapshot = make_snapshot(tmp_path, make_manifest())
        cmake = Mock(spec=CMakeProject)
        cmake.build.return_value = True
        pipeline = BuildPipeline(lambda: snapshot, mock_session, cmake_factory=lambda _: cmake)

        assert pipeline.build_project("linux-x64") is False
        output_dir = snapshot.cache.get_project_output_dir("linux-x64")
        assert (output_dir / "pkg" / "app-1.2.3-linux-x64.hbsn").exists()


class TestRunTests:
    """Test the test phase."""

    def test_uses_host_dependencies(self, tmp_path, mock_session):
        zlib = make_dependency(tmp_path, "zlib", target="default")
        snapshot = make_snapshot(tmp_path, make_manifest(), [zlib])
        cached = snapshot.cache.get_output_dir("default") / "zlib"
        cached.mkdir(parents=True)
        (cached / "libzlib.so").write_text("ELF")

        cmake = Mock(spec=CMakeProject)
        cmake.test.return_value = True
        pipeline = BuildPipeline(lambda: snapshot, mock_session, cmake_factory=lambda _: cmake)

        assert pipeline.test(TestType.SANITIZE_ADDRESS, "[fast]") is True
        cmake.add_library.assert_called_once_with(str(cached / "libzlib.so"))
        zlib.header_dir.assert_called_with("default")
        cmake.test.assert_called_once_with(TestType.SANITIZE_ADDRESS, "[fast]")


class TestCreateCMakeProject:
    """Test native build collaborator construction."""

    def test_scans_project(self, tmp_path, mock_session):
        project = tmp_path / "project"
        (project / "src").mkdir(parents=True)
        (project / "src" / "main.cpp").write_text("int main() {}\n")
        (project / "src" / "lib.cpp").write_text("")
        (project / "src" / "lib.h").write_text("")
        manifest = ProjectManifest.from_document({
            "project": {"name": "app", "type": "exe", "source": "src", "main": "src/main.cpp"},
            "commands": {"build": {"pre": ["echo pre"]}},
        })
        snapshot = make_snapshot(tmp_path, manifest)

        cmake = BuildPipeline(lambda: snapshot, mock_session).create_cmake_project(snapshot)

        project_dir = project.resolve()
        assert cmake.name == "app"
        assert cmake.cache_dir == snapshot.cache.cache_root
        assert cmake.main_file == project_dir / "src" / "main.cpp"
        assert cmake.source_files == [str(project_dir / "src" / "lib.cpp")]
        assert cmake.header_files == [str(project_dir / "src" / "lib.h")]
        assert cmake.build_commands.pre == ("echo pre",)
