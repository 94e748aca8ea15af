"""
Command-line interface for higgs-boson.

This module provides the `higgs-boson` CLI tool for fetching, building and
testing cross-compiled C/C++ projects.
"""

import argparse
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from higgsboson import __version__
from higgsboson.build import BuildPipeline, TestType
from higgsboson.cli_utils import ErrorFormatter, PathValidator, SessionSelector, setup_logging
from higgsboson.config import MANIFEST_FILENAME, ManifestError, ProjectManifest, VALID_TARGETS
from higgsboson.config.targets import DEFAULT_TARGET
from higgsboson.execution import ExecutionSession, SessionError
from higgsboson.packages import DependencyResolver, ProjectCache


SANITIZERS = ("address", "behavior", "thread", "leak")
TEST_COMMANDS = {
    "test": TestType.TEST,
    "coverage": TestType.COVERAGE,
    "debug": TestType.DEBUG,
    "profile": TestType.PROFILE,
}


@dataclass
class PhaseArgs:
    """Arguments shared by every pipeline command."""

    project_dir: Path
    manifest: Optional[Path] = None
    target: str = DEFAULT_TARGET
    local: bool = False
    verbose: bool = False


@dataclass
class SuiteArgs(PhaseArgs):
    """Arguments for the test, coverage, debug, profile and sanitize commands."""

    test_type: TestType = TestType.TEST
    test_filter: str = ""


def run_phase(args: PhaseArgs, description: str, phase: Callable[[BuildPipeline], bool]) -> None:
    """Run one pipeline phase inside an execution session and exit with its result.

    Args:
        args: Parsed command arguments
        description: Human-readable phase name for status output
        phase: Invokes the phase on the pipeline and returns its success flag
    """
    project_dir = args.project_dir.resolve()
    cache = ProjectCache(project_dir)
    setup_logging(args.verbose, cache.cache_root / "higgs-boson.log")

    extra_mounts = [] if cache.cache_root.is_relative_to(project_dir) else [cache.cache_root]
    session: Optional[ExecutionSession] = None

    try:
        session = SessionSelector.create_session(
            project_dir, args.target, args.local, extra_mounts=extra_mounts
        )
        resolver = DependencyResolver(project_dir, session, args.manifest, cache)
        # Fail early on a missing or invalid manifest, before any recipe is written
        ProjectManifest.from_file(resolver.manifest_path)

        session.start()
        pipeline = BuildPipeline(resolver.resolve, session)

        print(f"{description}...")
        start_time = time.time()
        success = phase(pipeline)
        elapsed = time.time() - start_time

        if success:
            ErrorFormatter.print_success(f"{description} successful!")
            print(f"Time: {elapsed:.2f}s")
            sys.exit(0)
        else:
            ErrorFormatter.print_error(f"{description} failed!", "")
            sys.exit(1)

    except ManifestError as e:
        ErrorFormatter.handle_manifest_error(e)
    except SessionError as e:
        ErrorFormatter.handle_session_error(e)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        if session is not None:
            session.stop()
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def download_command(args: PhaseArgs) -> None:
    """Fetch every dependency.

    Examples:
        higgs-boson download               # Fetch inside the builder container
        higgs-boson download --local       # Fetch on the host
    """
    run_phase(args, "Download", lambda pipeline: pipeline.download())


def build_deps_command(args: PhaseArgs) -> None:
    """Build every dependency for a target.

    Examples:
        higgs-boson build-deps default
        higgs-boson build-deps linux-arm64
    """
    run_phase(
        args,
        f"Dependency build for {args.target}",
        lambda pipeline: pipeline.build_dependencies(args.target),
    )


def build_command(args: PhaseArgs) -> None:
    """Build the project for a target.

    Examples:
        higgs-boson build default
        higgs-boson build windows-static-x64
    """
    run_phase(
        args,
        f"Build for {args.target}",
        lambda pipeline: pipeline.build_project(args.target),
    )


def run_tests_command(args: SuiteArgs) -> None:
    """Build and run the project's tests.

    Examples:
        higgs-boson test                   # Run all tests
        higgs-boson test "[TestSect1]"     # Run a filtered set of tests
        higgs-boson coverage               # Run tests with coverage
        higgs-boson sanitize address       # Run tests under AddressSanitizer
    """
    run_phase(
        args,
        f"Test ({args.test_type.value})",
        lambda pipeline: pipeline.test(args.test_type, args.test_filter),
    )


def list_targets_command() -> None:
    """Print every supported target."""
    print("Supported targets:")
    for target in VALID_TARGETS:
        print(f"  {target}")
    sys.exit(0)


def shell_command(args: PhaseArgs) -> None:
    """Open an interactive shell in a target's build container.

    Examples:
        higgs-boson cli                    # Shell in the default builder
        higgs-boson cli linux-arm64        # Shell in the linux-arm64 cross builder
    """
    project_dir = args.project_dir.resolve()
    cache = ProjectCache(project_dir)
    setup_logging(args.verbose, cache.cache_root / "higgs-boson.log")

    extra_mounts = [] if cache.cache_root.is_relative_to(project_dir) else [cache.cache_root]
    try:
        session = SessionSelector.create_session(
            project_dir, args.target, args.local, extra_mounts=extra_mounts
        )
        session.start()
        sys.exit(session.interactive_shell())
    except SessionError as e:
        ErrorFormatter.handle_session_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the higgs-boson CLI."""
    parser = argparse.ArgumentParser(
        prog="higgs-boson",
        description="higgs-boson - Cross-compiling C/C++ build orchestrator",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"higgs-boson {__version__}",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-C",
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    common.add_argument(
        "-f",
        "--file",
        type=Path,
        default=None,
        help=f"Project manifest (default: <project-dir>/{MANIFEST_FILENAME})",
    )
    common.add_argument(
        "--local",
        action="store_true",
        help="Run on the host instead of inside the builder container",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("list-targets", help="List all supported targets")
    subparsers.add_parser("download", parents=[common], help="Fetch all dependencies")

    shell_parser = subparsers.add_parser(
        "cli", parents=[common], help="Run an interactive shell in a target's build container"
    )
    shell_parser.add_argument(
        "target", nargs="?", default=DEFAULT_TARGET, help="Target whose container to enter"
    )

    build_deps_parser = subparsers.add_parser(
        "build-deps", parents=[common], help="Build all dependencies for a target"
    )
    build_deps_parser.add_argument("target", help="Target to build dependencies for")

    build_cmd_parser = subparsers.add_parser(
        "build", parents=[common], help="Build the project for a target"
    )
    build_cmd_parser.add_argument("target", help="Target to build")

    for name, test_type in TEST_COMMANDS.items():
        test_parser = subparsers.add_parser(
            name, parents=[common], help=f"Run the project's tests ({test_type.value})"
        )
        test_parser.add_argument("filter", nargs="?", default="", help="Test filter")

    sanitize_parser = subparsers.add_parser(
        "sanitize", parents=[common], help="Run the project's tests under a sanitizer"
    )
    sanitize_parser.add_argument("sanitizer", choices=SANITIZERS, help="Sanitizer to use")
    sanitize_parser.add_argument("filter", nargs="?", default="", help="Test filter")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """higgs-boson - Cross-compiling C/C++ build orchestrator.

    A leading 'internal' argument runs the command on the host; recursive
    sub-project builds use it since they already run inside a session.
    """
    args_list = list(sys.argv[1:] if argv is None else argv)
    internal = bool(args_list) and args_list[0] == "internal"
    if internal:
        args_list = args_list[1:]

    parser = build_parser()
    parsed_args = parser.parse_args(args_list)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    if parsed_args.command == "list-targets":
        list_targets_command()
        return

    PathValidator.validate_project_dir(parsed_args.project_dir)

    phase_fields = dict(
        project_dir=parsed_args.project_dir,
        manifest=parsed_args.file,
        local=parsed_args.local or internal,
        verbose=parsed_args.verbose,
    )

    if parsed_args.command == "download":
        download_command(PhaseArgs(**phase_fields))
    elif parsed_args.command == "cli":
        shell_command(PhaseArgs(target=parsed_args.target, **phase_fields))
    elif parsed_args.command == "build-deps":
        build_deps_command(PhaseArgs(target=parsed_args.target, **phase_fields))
    elif parsed_args.command == "build":
        build_command(PhaseArgs(target=parsed_args.target, **phase_fields))
    elif parsed_args.command in TEST_COMMANDS:
        run_tests_command(
            SuiteArgs(
                test_type=TEST_COMMANDS[parsed_args.command],
                test_filter=parsed_args.filter,
                **phase_fields,
            )
        )
    elif parsed_args.command == "sanitize":
        run_tests_command(
            SuiteArgs(
                test_type=TestType.for_sanitizer(parsed_args.sanitizer),
                test_filter=parsed_args.filter,
                **phase_fields,
            )
        )


if __name__ == "__main__":
    main()
