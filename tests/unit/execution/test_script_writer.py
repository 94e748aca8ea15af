"""Unit tests for ScriptWriter."""

from unittest.mock import Mock

import pytest

from higgsboson.execution import ExecutionSession, ScriptWriter


@pytest.fixture
def local_session():
    session = Mock(spec=ExecutionSession)
    session.is_isolated = False
    return session


@pytest.fixture
def isolated_session():
    session = Mock(spec=ExecutionSession)
    session.is_isolated = True
    session.copy_in.return_value = True
    return session


class TestScriptWriter:
    """Test cases for ScriptWriter class."""

    def test_writes_lines(self, tmp_path, local_session):
        path = tmp_path / "nested" / "script.sh"
        with ScriptWriter(local_session, path) as script:
            script.write_line("cd /tmp")
            script.write_lines(["make", "make install"])
            script.write_line()

        assert path.read_text() == "cd /tmp\nmake\nmake install\n\n"

    def test_local_session_not_touched(self, tmp_path, local_session):
        with ScriptWriter(local_session, tmp_path / "script.sh") as script:
            script.write_line("true")
        local_session.run.assert_not_called()
        local_session.copy_in.assert_not_called()

    def test_isolated_session_refreshed(self, tmp_path, isolated_session):
        """Test stale copies are removed on open and the file is copied in on close."""
        path = tmp_path / "script.sh"
        with ScriptWriter(isolated_session, path) as script:
            isolated_session.run.assert_called_once_with(f"rm -rf {path}")
            isolated_session.copy_in.assert_not_called()
            script.write_line("true")
        isolated_session.copy_in.assert_called_once_with(path)

    def test_copy_in_failure_does_not_raise(self, tmp_path, isolated_session):
        isolated_session.copy_in.return_value = False
        with ScriptWriter(isolated_session, tmp_path / "script.sh") as script:
            script.write_line("true")

    def test_no_copy_in_after_exception(self, tmp_path, isolated_session):
        with pytest.raises(RuntimeError):
            with ScriptWriter(isolated_session, tmp_path / "script.sh"):
                raise RuntimeError("boom")
        isolated_session.copy_in.assert_not_called()

    def test_write_after_close_raises(self, tmp_path, local_session):
        writer = ScriptWriter(local_session, tmp_path / "script.sh")
        with writer:
            pass
        with pytest.raises(ValueError):
            writer.write_line("late")
