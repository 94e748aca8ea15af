"""Scoped writer for generated shell scripts."""

import logging
from pathlib import Path
from typing import IO, Optional

from .session import ExecutionSession


class ScriptWriter:
    """
    Writes a script on the host and publishes it to the session on close.

    For isolated sessions any stale copy inside the session is removed when
    the writer opens, and the finished file is copied in when it closes.

    Example usage:
        with ScriptWriter(session, Path("build.sh")) as script:
            script.write_line("make")
    """

    def __init__(self, session: ExecutionSession, path: Path):
        self.session = session
        self.path = Path(path)
        self._file: Optional[IO[str]] = None

    def __enter__(self) -> "ScriptWriter":
        if self.session.is_isolated:
            self.session.run(f"rm -rf {self.path}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "w", encoding="utf-8", newline="\n")
        return self

    def write_line(self, line: str = "") -> None:
        if self._file is None:
            raise ValueError(f"Script {self.path} is not open")
        self._file.write(line + "\n")

    def write_lines(self, lines) -> None:
        for line in lines:
            self.write_line(line)

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        if self._file is not None:
            self._file.close()
            self._file = None
        if self.session.is_isolated and exc_type is None:
            if not self.session.copy_in(self.path):
                logging.warning(f"Failed to copy {self.path} into the session")
        return False
