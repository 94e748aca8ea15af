"""Unit tests for package archive creation."""

import tarfile

import pytest

from higgsboson.build.archive_creator import ArchiveCreator, ArchiveError


class TestArchiveCreator:
    """Test cases for ArchiveCreator class."""

    @pytest.fixture
    def output_tree(self, tmp_path):
        """Create an output tree like build_project assembles."""
        root = tmp_path / "output" / "linux-x64"
        for sub in ("bin", "lib", "deps", "pkg"):
            (root / sub).mkdir(parents=True)
        (root / "bin" / "app").write_text("binary")
        (root / "deps" / "libz.so").write_text("ELF")
        return root

    def test_members_relative_to_tree(self, output_tree):
        archive = output_tree / "pkg" / "app-1.0.0-linux-x64.hbsn"
        result = ArchiveCreator(show_progress=False).create_package(output_tree, archive)

        assert result == archive
        with tarfile.open(archive) as tar:
            names = set(tar.getnames())
        assert {"./bin", "./bin/app", "./deps/libz.so", "./lib", "./pkg"} <= names

    def test_archive_excludes_itself(self, output_tree):
        """Test rebuilding does not nest the previous package."""
        archive = output_tree / "pkg" / "app-1.0.0-linux-x64.hbsn"
        creator = ArchiveCreator(show_progress=False)
        creator.create_package(output_tree, archive)
        creator.create_package(output_tree, archive)

        with tarfile.open(archive) as tar:
            names = tar.getnames()
        assert not any("hbsn" in name for name in names)
        assert not (output_tree / "pkg" / "app-1.0.0-linux-x64.hbsn.tmp").exists()

    def test_missing_source(self, tmp_path):
        with pytest.raises(ArchiveError, match="not found"):
            ArchiveCreator(show_progress=False).create_package(tmp_path / "missing", tmp_path / "a.hbsn")

    def test_progress_output(self, output_tree, capsys):
        ArchiveCreator().create_package(output_tree, output_tree / "pkg" / "app.hbsn")
        out = capsys.readouterr().out
        assert "Creating package app.hbsn" in out
        assert "Created app.hbsn" in out
