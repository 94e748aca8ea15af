"""CLI utility functions for higgs-boson.

This module provides common utilities used across CLI commands including:
- Logging setup
- Execution session selection
- Error handling and formatting
- Path validation
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence

from higgsboson.config import ManifestError
from higgsboson.execution import ContainerSession, ExecutionSession, LocalSession, SessionError


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the root logger.

    Args:
        verbose: Log DEBUG to the console instead of WARNING
        log_file: Optional rotating log file receiving INFO and above
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)


class SessionSelector:
    """Chooses where build commands run."""

    @staticmethod
    def wants_local(local_flag: bool) -> bool:
        """Local when requested on the command line or via HIGGS_BOSON_LOCAL=1."""
        return local_flag or os.environ.get("HIGGS_BOSON_LOCAL", "") == "1"

    @staticmethod
    def create_session(
        project_dir: Path,
        target: str,
        local: bool = False,
        extra_mounts: Sequence[Path] = (),
    ) -> ExecutionSession:
        """Create the session for a project and target.

        Args:
            project_dir: Project directory
            target: Target triple selecting the builder image
            local: Run on the host instead of in a container
            extra_mounts: Directories outside the project the container needs

        Returns:
            An unstarted ExecutionSession
        """
        if SessionSelector.wants_local(local):
            return LocalSession()
        return ContainerSession(project_dir, target, extra_mounts=extra_mounts)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "File not found", "Build failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        if message:
            print()
            print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        ErrorFormatter.print_error("Error: File not found", str(error))
        sys.exit(1)

    @staticmethod
    def handle_manifest_error(error: ManifestError) -> None:
        """Handle a missing or invalid project manifest.

        Args:
            error: The ManifestError to handle
        """
        ErrorFormatter.print_error("Error: Invalid project", str(error))
        print("Make sure you're in a higgs-boson project directory with a higgs-boson.yaml file.")
        sys.exit(1)

    @staticmethod
    def handle_session_error(error: SessionError) -> None:
        ErrorFormatter.print_error("Error: Execution session failed", str(error))
        print("Use --local to build without a container.")
        sys.exit(1)

    @staticmethod
    def handle_permission_error(error: PermissionError) -> None:
        ErrorFormatter.print_error("Error: Permission denied", str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PathValidator:
    """Validates project paths and directories."""

    @staticmethod
    def validate_project_dir(project_dir: Path) -> None:
        """Validate that project directory exists and is a directory.

        Args:
            project_dir: Path to validate

        Raises:
            SystemExit: If path doesn't exist or isn't a directory
        """
        if not project_dir.exists():
            print(
                f"{ErrorFormatter.RED}✗ Error: Path does not exist: {project_dir}{ErrorFormatter.RESET}"
            )
            sys.exit(2)
        if not project_dir.is_dir():
            print(
                f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {project_dir}{ErrorFormatter.RESET}"
            )
            sys.exit(2)
