"""Serialized shell command dispatch.

Every command higgs-boson runs, locally or inside a container, goes through
dispatch() while holding a single process-wide reentrant lock. Command
output is never interleaved and a helper that dispatches while already
dispatching (e.g. a readiness probe during start-up) cannot deadlock.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import List


_dispatch_lock = threading.RLock()


class SessionError(Exception):
    """Raised when a command cannot be dispatched at all."""

    pass


@dataclass
class CommandResult:
    """Outcome of one dispatched command."""

    returncode: int
    output: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def dispatch(argv: List[str], live: bool = False) -> CommandResult:
    """Run a command while holding the dispatch lock.

    Args:
        argv: Command and arguments
        live: Stream output to the terminal instead of capturing it

    Returns:
        CommandResult with the exit code and combined stdout/stderr
        (empty when live)

    Raises:
        SessionError: If the executable cannot be started
    """
    with _dispatch_lock:
        logging.debug(f"Dispatching: {argv}")
        try:
            if live:
                proc = subprocess.run(argv)
                return CommandResult(proc.returncode, "")

            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise SessionError(f"Command not found: {argv[0]}") from e
        except OSError as e:
            raise SessionError(f"Failed to run {argv[0]}: {e}") from e

        logging.debug(f"Exit code {proc.returncode} for: {argv}")
        return CommandResult(proc.returncode, proc.stdout or "")
