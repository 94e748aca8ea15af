"""
Execution sessions for build commands.

A session is where recipe scripts, fetch commands and native builds run:
- LocalSession: the host shell
- ContainerSession: a long-lived cross-compilation container driven through
  the docker CLI (one container per project and target)

Sessions are constructed explicitly and passed to whatever needs to run
commands. All dispatch is serialized by the lock in the shell module.
"""

import hashlib
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

import psutil

from ..config.targets import DEFAULT_TARGET
from .shell import CommandResult, SessionError, dispatch


CONTAINER_PREFIX = "higgsboson-builder"
DEFAULT_IMAGE = "bitboson/higgs-builder"
CROSS_IMAGE_REPOSITORY = "dockcross"


class ExecutionSession(ABC):
    """Base class for places build commands can run."""

    # True when the session does not share the host filesystem view
    is_isolated = False

    def start(self) -> None:
        """Prepare the session for commands (no-op by default)."""

    def stop(self) -> None:
        """Tear the session down (no-op by default)."""

    @abstractmethod
    def command_argv(self, command: str) -> List[str]:
        """Build the argv that runs a shell command inside this session."""

    def execute(self, command: str, live: bool = False) -> CommandResult:
        return dispatch(self.command_argv(command), live=live)

    def run(self, command: str) -> str:
        """Run a shell command and return its combined output."""
        return self.execute(command).output

    def run_checked(self, label: str, command: str) -> bool:
        """
        Run a shell command, reporting '<label> ... OK|FAIL'.

        The full command output is printed only when the command fails.

        Args:
            label: Human-readable description of the step
            command: Shell command to run

        Returns:
            True if the command exited successfully
        """
        print(f"{label} ... ", end="", flush=True)
        result = self.execute(command)
        if result.success:
            print("OK")
        else:
            print("FAIL")
            print(result.output)
        return result.success

    def run_live(self, command: str) -> bool:
        """Run a shell command with output streamed to the terminal."""
        return self.execute(command, live=True).success

    def shell_argv(self) -> List[str]:
        """Build the argv of an interactive shell inside this session."""
        return ["bash"]

    def interactive_shell(self) -> int:
        """Attach the terminal to an interactive shell and return its exit code."""
        return dispatch(self.shell_argv(), live=True).returncode

    def copy_in(self, path: Path) -> bool:
        """Make a host file visible inside the session."""
        return True


class LocalSession(ExecutionSession):
    """Runs commands with the host's bash."""

    def command_argv(self, command: str) -> List[str]:
        return ["bash", "-c", command]

    def stop(self) -> None:
        """Terminate any child process tree left behind by an interrupted command."""
        try:
            children = psutil.Process(os.getpid()).children(recursive=True)
        except psutil.NoSuchProcess:
            return

        # Children first so parents cannot respawn them
        for proc in reversed(children):
            try:
                proc.terminate()
                logging.debug(f"Terminated process {proc.pid}")
            except psutil.NoSuchProcess:
                pass

        _, alive = psutil.wait_procs(children, timeout=3)
        for proc in alive:
            try:
                proc.kill()
                logging.debug(f"Killed process {proc.pid}")
            except psutil.NoSuchProcess:
                pass


class ContainerSession(ExecutionSession):
    """
    Runs commands inside a cross-compilation container.

    The project directory is mounted at the same path inside the container,
    so paths computed on the host are valid in both places.

    Example usage:
        session = ContainerSession(Path("."), "linux-x64")
        session.start()
        session.run_checked("Compiler version", "cc --version")
        session.stop()
    """

    is_isolated = True

    def __init__(
        self,
        project_dir: Path,
        target: str = DEFAULT_TARGET,
        image: str = "",
        readiness_retries: int = 10,
        readiness_backoff: float = 1.0,
        extra_mounts: Sequence[Path] = (),
    ):
        """
        Initialize container session.

        Args:
            project_dir: Project directory mounted into the container
            target: Target triple selecting the builder image
            image: Explicit image (overrides the per-target image)
            readiness_retries: Number of readiness probes before giving up
            readiness_backoff: Seconds to wait between readiness probes
            extra_mounts: Additional host directories mounted at the same path
        """
        self.project_dir = Path(project_dir).resolve()
        self.target = target
        self.image = image or os.environ.get("HIGGS_BOSON_IMAGE") or self.image_for_target(target)
        self.readiness_retries = readiness_retries
        self.readiness_backoff = readiness_backoff
        self.extra_mounts = [Path(path).resolve() for path in extra_mounts]
        self.name = self.container_name(self.project_dir, target)

    @staticmethod
    def image_for_target(target: str) -> str:
        """Get the builder image for a target."""
        if target == DEFAULT_TARGET:
            return DEFAULT_IMAGE
        return f"{CROSS_IMAGE_REPOSITORY}/{target}"

    @staticmethod
    def container_name(project_dir: Path, target: str) -> str:
        """
        Derive a stable container name for a project and target.

        Returns:
            '<prefix>-<first 16 chars of sha256(project_dir)>-<target>'
        """
        digest = hashlib.sha256(str(project_dir).encode("utf-8")).hexdigest()[:16]
        return f"{CONTAINER_PREFIX}-{digest}-{target}"

    def command_argv(self, command: str) -> List[str]:
        return [
            "docker", "exec",
            "-w", str(self.project_dir),
            self.name,
            "bash", "-c", command,
        ]

    def shell_argv(self) -> List[str]:
        return ["docker", "exec", "-it", "-w", str(self.project_dir), self.name, "bash"]

    def is_running(self) -> bool:
        result = dispatch(["docker", "ps", "-q", "-f", f"name=^{self.name}$"])
        return result.success and bool(result.output.strip())

    def start(self) -> None:
        """
        Start the container unless it is already running, then wait for it.

        Raises:
            SessionError: If docker is unavailable or the container fails to start
        """
        if self.is_running():
            logging.debug(f"Container {self.name} already running")
            return

        volumes: List[str] = []
        for path in [self.project_dir] + self.extra_mounts:
            volumes += ["-v", f"{path}:{path}"]

        result = dispatch([
            "docker", "run", "-d", "--rm",
            "--name", self.name,
            *volumes,
            "-w", str(self.project_dir),
            self.image,
            "sleep", "infinity",
        ])
        if not result.success:
            raise SessionError(f"Failed to start container {self.name}:\n{result.output}")

        logging.info(f"Started container {self.name} from {self.image}")
        self._wait_until_ready()

    def _wait_until_ready(self) -> bool:
        for attempt in range(1, self.readiness_retries + 1):
            if dispatch(["docker", "exec", self.name, "true"]).success:
                return True
            logging.debug(f"Container {self.name} not ready (attempt {attempt})")
            time.sleep(self.readiness_backoff)

        logging.warning(
            f"Container {self.name} not ready after {self.readiness_retries} attempts, continuing"
        )
        return False

    def copy_in(self, path: Path) -> bool:
        return dispatch(["docker", "cp", str(path), f"{self.name}:{path}"]).success

    def stop(self) -> None:
        if self.is_running():
            dispatch(["docker", "stop", self.name])
            logging.info(f"Stopped container {self.name}")
