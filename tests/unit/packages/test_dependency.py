"""Unit tests for the runtime dependency model."""

import shutil
from unittest.mock import Mock

import pytest

from higgsboson.execution import ExecutionSession, LocalSession
from higgsboson.packages.dependency import (
    ManualDependency,
    SubprojectDependency,
    list_files,
    unescape_step,
)


requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")


@pytest.fixture
def mock_session():
    session = Mock(spec=ExecutionSession)
    session.is_isolated = False
    session.run.return_value = ""
    session.run_checked.return_value = True
    return session


class TestHelpers:
    """Test module helpers."""

    def test_unescape_step(self):
        assert unescape_step('echo __QUOTE__a__COLON__b__QUOTE__') == 'echo "a:b"'
        assert unescape_step("make") == "make"

    def test_list_files_missing_dir(self, tmp_path):
        assert list_files(tmp_path / "missing") == []

    def test_list_files_recursive_sorted(self, tmp_path):
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "z.so").write_text("")
        (tmp_path / "a.so").write_text("")
        assert list_files(tmp_path) == [str(tmp_path / "a.so"), str(tmp_path / "b" / "z.so")]


class TestManualDependency:
    """Test cases for ManualDependency class."""

    def test_any_is_not_a_target(self, tmp_path, mock_session):
        dep = ManualDependency("dep", tmp_path, mock_session, ["any", "default", "linux-x64"])
        assert dep.get_available_targets() == ["default", "linux-x64"]
        assert not dep.is_valid_target("any")

    def test_output_directories(self, tmp_path, mock_session):
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.library_dir("default") == tmp_path / "higgs-boson_default_libraries"
        assert dep.header_dir("default") == tmp_path / "higgs-boson_default_headers"

    def test_set_build_steps_invalid_target(self, tmp_path, mock_session):
        """Test unsupported targets get no recipe file."""
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.set_build_steps("linux-x64", ["make"]) is False
        assert not dep.recipe_path("linux-x64").exists()

    def test_set_build_steps_writes_preamble(self, tmp_path, mock_session):
        """Test the recipe script layout."""
        dep = ManualDependency("dep", tmp_path, mock_session, ["linux-x64"])
        assert dep.set_build_steps("linux-x64", ["make CFLAGS=__QUOTE__-O2__QUOTE__", "make install"])

        recipe = (tmp_path / "higgs-build_linux-x64.sh").read_text()
        headers = tmp_path / "higgs-boson_linux-x64_headers"
        libraries = tmp_path / "higgs-boson_linux-x64_libraries"
        assert recipe.splitlines() == [
            f"cd {tmp_path}",
            "HIGGS_TARGET=linux-x64",
            f"HIGGS_HEADER_DIR={headers}",
            f"HIGGS_LIBRARY_DIR={libraries}",
            f"mkdir -p {headers}",
            f"mkdir -p {libraries}",
            'make CFLAGS="-O2"',
            "make install",
        ]

    def test_compile_invalid_target(self, tmp_path, mock_session):
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.compile("web-wasm", [], []) is False
        mock_session.run_checked.assert_not_called()

    def test_compile_skips_caching_when_recipe_fails(self, tmp_path, mock_session):
        mock_session.run_checked.return_value = False
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.compile("default", ["lib.so"], ["include/"]) is False
        assert mock_session.run_checked.call_count == 1

    def test_compile_caches_every_entry(self, tmp_path, mock_session):
        """Test a failed copy does not stop the remaining copies."""
        mock_session.run_checked.side_effect = [True, False, True, True]
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.compile("default", ["a.so", "b.so"], ["include/"]) is False
        assert mock_session.run_checked.call_count == 4

        header_cmd = mock_session.run_checked.call_args_list[3][0][1]
        assert f"{tmp_path}/include/" in header_cmd
        assert "--exclude='*/higgs-boson_*'" in header_cmd

    def test_compile_skips_empty_entries(self, tmp_path, mock_session):
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        assert dep.compile("default", [], [""]) is True
        # Only the recipe itself runs
        assert mock_session.run_checked.call_count == 1
        mock_session.run.assert_any_call(f"rm -rf {dep.library_dir('default')}")
        mock_session.run.assert_any_call(f"rm -rf {dep.header_dir('default')}")

    def test_list_libraries_invalid_target(self, tmp_path, mock_session):
        dep = ManualDependency("dep", tmp_path, mock_session, ["default"])
        dep.library_dir("linux-x64").mkdir()
        (dep.library_dir("linux-x64") / "lib.so").write_text("")
        assert dep.list_libraries("linux-x64") == []

    @requires_bash
    def test_compile_with_local_session(self, tmp_path):
        """Test a real recipe run caches the declared library."""
        dep_dir = tmp_path / "dep"
        dep_dir.mkdir()
        dep = ManualDependency("dep", dep_dir, LocalSession(), ["default"])
        assert dep.set_build_steps("default", ["touch out.so"])

        assert dep.compile("default", ["out.so"], []) is True
        assert dep.list_libraries("default") == [
            f"{dep_dir}/higgs-boson_default_libraries/out.so"
        ]

    @requires_bash
    def test_recipe_exports_output_dirs(self, tmp_path):
        dep_dir = tmp_path / "dep"
        dep_dir.mkdir()
        dep = ManualDependency("dep", dep_dir, LocalSession(), ["linux-x64"])
        dep.set_build_steps("linux-x64", ["touch $HIGGS_LIBRARY_DIR/$HIGGS_TARGET.so"])

        assert dep.compile("linux-x64", [], []) is True
        assert dep.list_libraries("linux-x64") == [
            f"{dep_dir}/higgs-boson_linux-x64_libraries/linux-x64.so"
        ]


class TestSubprojectDependency:
    """Test cases for SubprojectDependency class."""

    def test_targets_follow_nested_manifest(self, tmp_path, mock_session):
        """Test targets are re-read from disk once the checkout appears."""
        dep = SubprojectDependency("nested", tmp_path, mock_session)
        assert dep.get_available_targets() == []
        assert dep.list_libraries("default") == []

        (tmp_path / "higgs-boson.yaml").write_text("project:\n  targets:\n    - default\n")
        assert dep.get_available_targets() == ["default"]

    def test_custom_conf(self, tmp_path, mock_session):
        (tmp_path / "custom.yaml").write_text("project:\n  targets:\n    - linux-x64\n")
        dep = SubprojectDependency("nested", tmp_path, mock_session, conf="custom.yaml")
        assert dep.get_available_targets() == ["linux-x64"]

    def test_recipe_invokes_internal_commands(self, tmp_path, mock_session):
        """Test nested runs clear the cache override so they use their own cache."""
        (tmp_path / "higgs-boson.yaml").write_text(
            "project:\n  targets:\n    - default\n    - linux-x64\n"
        )
        SubprojectDependency("nested", tmp_path, mock_session)

        recipe = (tmp_path / "higgs-build_linux-x64.sh").read_text().splitlines()
        assert recipe[-3:] == [
            "HIGGS_BOSON_CACHE_DIR= higgs-boson internal download",
            "HIGGS_BOSON_CACHE_DIR= higgs-boson internal build-deps linux-x64",
            "HIGGS_BOSON_CACHE_DIR= higgs-boson internal build linux-x64",
        ]
        assert (tmp_path / "higgs-build_default.sh").exists()

    def test_compile_without_recipe(self, tmp_path, mock_session):
        """Test a target that appeared after construction has no recipe."""
        dep = SubprojectDependency("nested", tmp_path, mock_session)
        (tmp_path / "higgs-boson.yaml").write_text("project:\n  targets:\n    - default\n")
        assert dep.compile("default", [], []) is False
        mock_session.run_checked.assert_not_called()

    def test_compile_caches_nested_outputs(self, tmp_path, mock_session):
        """Test libraries come from the nested output tree and headers from its sources."""
        (tmp_path / "higgs-boson.yaml").write_text(
            "project:\n  source: src\n  targets:\n    - default\n"
        )
        dep = SubprojectDependency("nested", tmp_path, mock_session)
        (tmp_path / "output" / "default" / "deps").mkdir(parents=True)
        (tmp_path / "output" / "default" / "deps" / "libdep.so").write_text("")
        (tmp_path / "output" / "default" / "lib").mkdir()
        (tmp_path / "output" / "default" / "lib" / "libnested.so").write_text("")

        assert dep.compile("default", ["HIGGS_BOSON_PLACEHOLDER_VALUE"], []) is True

        commands = [c[0][1] for c in mock_session.run_checked.call_args_list]
        assert commands[0] == f"bash {tmp_path}/higgs-build_default.sh"
        assert f"cp {tmp_path}/output/default/deps/libdep.so" in commands[1]
        assert f"cp {tmp_path}/output/default/lib/libnested.so" in commands[2]
        assert f"{tmp_path}/src/ " in commands[3]
        assert f"{tmp_path}/.higgs-boson/includes/default/ " in commands[4]
        assert len(commands) == 5
