"""
CMake native build driver.

This module generates the CMake project for a higgs-boson project and runs
the configure and make steps through the execution session.

Generated files (all inside the cache directory):
    CMakeLists.txt
    main.test.cpp                  # Catch2 runner including every test header
    sanitize-blacklist.txt
    builds/compile-<target>.sh     # Configure step for a build
    builds/compile-<target>.make.sh
    builds/<flavour>.sh            # Configure step for a test flavour
    builds/<flavour>.make.sh
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..config.manifest import CommandSet
from ..config.targets import DEFAULT_TARGET
from ..execution import ExecutionSession, ScriptWriter
from .source_scanner import SourceCollection


GENERATED_HEADER = (
    "# THIS IS AN AUTOGENERATED FILE USING HIGGS",
    "# DO NOT EDIT (UNLESS YOU KNOW WHAT'S UP)",
)

HOST_C_COMPILER = "/usr/bin/clang"
HOST_CXX_COMPILER = "/usr/bin/clang++"

CATCH2_INCLUDE = "external/raw/catch2higgsboson/single_include/catch2"


class TestType(Enum):
    """Test flavours supported by the native build."""

    __test__ = False

    TEST = "test"
    COVERAGE = "coverage"
    SANITIZE_ADDRESS = "address"
    SANITIZE_BEHAVIOR = "behavior"
    SANITIZE_THREAD = "thread"
    SANITIZE_LEAK = "leak"
    DEBUG = "debug"
    PROFILE = "profile"

    @property
    def flavour(self) -> str:
        """Build directory name; plain, debug and profile runs share one tree."""
        if self in (TestType.DEBUG, TestType.PROFILE):
            return TestType.TEST.value
        return self.value

    @property
    def cmake_define(self) -> str:
        return {
            TestType.COVERAGE: "-DCODE_COVERAGE=1",
            TestType.SANITIZE_ADDRESS: "-DSANITIZE_ADDRESS=1",
            TestType.SANITIZE_BEHAVIOR: "-DSANITIZE_BEHAVIOR=1",
            TestType.SANITIZE_THREAD: "-DSANITIZE_THREAD=1",
            TestType.SANITIZE_LEAK: "-DSANITIZE_LEAK=1",
        }.get(self, "")

    @classmethod
    def for_sanitizer(cls, name: str) -> Optional["TestType"]:
        """Get the sanitizer test type for 'address', 'behavior', 'thread' or 'leak'."""
        for test_type in (
            cls.SANITIZE_ADDRESS,
            cls.SANITIZE_BEHAVIOR,
            cls.SANITIZE_THREAD,
            cls.SANITIZE_LEAK,
        ):
            if test_type.value == name:
                return test_type
        return None


SANITIZER_FLAGS = {
    "SANITIZE_ADDRESS": "-g -fsanitize=address -fno-omit-frame-pointer -O1",
    "SANITIZE_LEAK": "-g -fsanitize=leak",
    "SANITIZE_THREAD": "-g -fsanitize=thread -O1",
    "SANITIZE_BEHAVIOR": "-g -fsanitize=undefined -fsanitize-minimal-runtime",
}


class CMakeProject:
    """
    Native build collaborator for a single higgs-boson project.

    Libraries are linked in reverse registration order, so dependencies
    registered first are resolved last by the linker.

    Example usage:
        cmake = CMakeProject("app", "1.0.0", Path("."), Path(".higgs-boson"), session)
        cmake.add_sources(scanner.scan("src", "test", "src/main.cpp"))
        cmake.set_main_file(Path("src/main.cpp"))
        if cmake.build("linux-x64"):
            print("built")
    """

    def __init__(
        self,
        name: str,
        version: str,
        project_dir: Path,
        cache_dir: Path,
        session: ExecutionSession,
        build_commands: CommandSet = CommandSet(),
        test_commands: CommandSet = CommandSet(),
    ):
        """
        Initialize CMake project.

        Args:
            name: Project name (also the CMake target name)
            version: Project version
            project_dir: Project root
            cache_dir: Cache directory receiving generated files and build trees
            session: Session the configure and make steps run in
            build_commands: Commands run before/after make for builds
            test_commands: Commands run before/after test runs
        """
        self.name = name
        self.version = version
        self.project_dir = Path(project_dir)
        self.cache_dir = Path(cache_dir)
        self.session = session
        self.build_commands = build_commands
        self.test_commands = test_commands

        self.main_file: Optional[Path] = None
        self.source_files: List[str] = []
        self.header_files: List[str] = []
        self.test_files: List[str] = []
        self.libraries: List[str] = []
        self.include_dirs: List[str] = []

    @property
    def builds_dir(self) -> Path:
        return self.cache_dir / "builds"

    @property
    def cmake_file(self) -> Path:
        return self.cache_dir / "CMakeLists.txt"

    def set_main_file(self, main_file: Optional[Path]) -> None:
        self.main_file = main_file

    def add_sources(self, collection: SourceCollection) -> None:
        """Register every file of a scanned source collection."""
        for path in collection.sources:
            self._add_unique(self.source_files, str(path))
        for path in collection.headers:
            self._add_unique(self.header_files, str(path))
        for path in collection.tests:
            self._add_unique(self.test_files, str(path))

    def add_library(self, library_path: str) -> None:
        self.libraries.append(library_path)

    def add_include_dir(self, include_dir: str) -> None:
        self.include_dirs.append(include_dir)

    @staticmethod
    def _add_unique(items: List[str], item: str) -> bool:
        if item in items:
            return False
        items.append(item)
        return True

    def build(self, target: str) -> bool:
        """
        Configure and compile the project for a target.

        Binaries land in builds/compile/<target>/bin, libraries in
        builds/compile/<target>/lib.

        Args:
            target: Target triple

        Returns:
            True if both the configure and make steps succeeded
        """
        self.write_cmake_file(testing=False)

        compile_dir = self.builds_dir / "compile" / target
        setup_script = self.builds_dir / f"compile-{target}.sh"
        make_script = self.builds_dir / f"compile-{target}.make.sh"

        compilers = ""
        if target == DEFAULT_TARGET:
            compilers = f" -DCMAKE_C_COMPILER={HOST_C_COMPILER} -DCMAKE_CXX_COMPILER={HOST_CXX_COMPILER}"

        with ScriptWriter(self.session, setup_script) as script:
            script.write_lines(GENERATED_HEADER)
            script.write_line("set -e")
            script.write_line()
            script.write_line(f"# Configure step for target {target}")
            script.write_line(f"mkdir -p {compile_dir}")
            script.write_line(f"cd {compile_dir}")
            script.write_line(f"cmake{compilers} -DCMAKE_BUILD_TYPE=Release {self.cache_dir}")

        with ScriptWriter(self.session, make_script) as script:
            script.write_lines(GENERATED_HEADER)
            script.write_line()
            script.write_line("# Pre-build commands")
            script.write_lines(self.build_commands.pre)
            script.write_line()
            script.write_line(f"cd {compile_dir} && make {self.name}")
            script.write_line()
            script.write_line("# Post-build commands")
            script.write_lines(self.build_commands.post)

        success = self.session.run_checked(
            f"Setting-Up Build for {self.name} Version {self.version}",
            f"bash {setup_script}",
        )
        if not success:
            return False

        print(f"Building {self.name} Version {self.version}")
        return self.session.run_live(f"bash {make_script}")

    def test(self, test_type: TestType = TestType.TEST, test_filter: str = "") -> bool:
        """
        Build and run the project's test executable.

        Args:
            test_type: Test flavour (plain, coverage, sanitizer, debug, profile)
            test_filter: Catch2 test filter passed to the test executable

        Returns:
            True if the configure, build and test run all succeeded
        """
        self.write_cmake_file(testing=True)

        flavour = test_type.flavour
        build_dir = self.builds_dir / flavour
        setup_script = self.builds_dir / f"{flavour}.sh"
        make_script = self.builds_dir / f"{flavour}.make.sh"
        ld_path = f'LD_LIBRARY_PATH="{self.project_dir}/output/{DEFAULT_TARGET}/deps"'
        test_binary = build_dir / "bin" / f"{self.name}_test"

        configure = (
            f"cmake -DCMAKE_C_COMPILER={HOST_C_COMPILER} -DCMAKE_CXX_COMPILER={HOST_CXX_COMPILER}"
        )
        if test_type == TestType.COVERAGE:
            configure += " -DCODE_COVERAGE=ON"
        configure += f" -DCMAKE_BUILD_TYPE=Debug {self.cache_dir} {test_type.cmake_define}".rstrip()

        with ScriptWriter(self.session, setup_script) as script:
            script.write_lines(GENERATED_HEADER)
            script.write_line("set -e")
            script.write_line()
            script.write_line(f"# Configure step for test flavour {flavour}")
            script.write_line(f"mkdir -p {build_dir}")
            script.write_line(f"cd {build_dir}")
            script.write_line(configure)

        make_target = f"{self.name}_test"
        if test_type == TestType.COVERAGE:
            make_target += "_coverage"

        with ScriptWriter(self.session, make_script) as script:
            script.write_lines(GENERATED_HEADER)
            script.write_line()
            script.write_line("# Pre-test commands")
            script.write_lines(self.test_commands.pre)
            script.write_line()
            script.write_line(f"cd {build_dir} && {ld_path} make {make_target}")
            if test_type == TestType.DEBUG:
                script.write_line(f"{ld_path} gdb {test_binary}")
            elif test_type != TestType.COVERAGE:
                script.write_line(f"{ld_path} {test_binary} {test_filter}".rstrip())
            script.write_line()
            script.write_line("# Post-test commands")
            script.write_lines(self.test_commands.post)

        success = self.session.run_checked(
            f"Setting-Up Test {flavour} for {self.name} Version {self.version}",
            f"bash {setup_script}",
        )
        if not success:
            return False

        print(f"Running {self.name} Version {self.version} for Test {flavour}")
        return self.session.run_live(f"bash {make_script}")

    def write_cmake_file(self, testing: bool) -> None:
        """Write CMakeLists.txt and its companion files into the cache directory."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        with ScriptWriter(self.session, self.cache_dir / "sanitize-blacklist.txt") as out:
            out.write_lines(GENERATED_HEADER)
            out.write_lines([
                "src:*/external/*",
                "src:*/lib/*",
                "src:*/lib64/*",
                "src:*/bin/*",
            ])

        with ScriptWriter(self.session, self.cache_dir / "main.test.cpp") as out:
            out.write_lines(line.replace("#", "//", 1) for line in GENERATED_HEADER)
            out.write_line("#define CATCH_CONFIG_MAIN")
            out.write_line("#include <catch.hpp>")
            out.write_lines(f'#include "{path}"' for path in self.test_files)

        with ScriptWriter(self.session, self.cmake_file) as out:
            out.write_lines(self.render_cmake(testing))

    def render_cmake(self, testing: bool) -> List[str]:
        """Render CMakeLists.txt; the main file is left out of test builds."""
        main_file = "" if testing or self.main_file is None else str(self.main_file)
        cache = "${HIGGS_PROJECT_CACHE}"

        lines = list(GENERATED_HEADER) + [
            "",
            "cmake_minimum_required(VERSION 3.0.0)",
            "set(CMAKE_CXX_STANDARD 17)",
            "",
            f'set(HIGGS_PROJECT_NAME "{self.name}")',
            f'set(HIGGS_PROJECT_SRC "{self.project_dir}")',
            f'set(HIGGS_PROJECT_CACHE "{self.cache_dir}")',
            f'set(HIGGS_PROJECT_VERSION "{self.version}")',
            "",
            'project("${HIGGS_PROJECT_NAME}" CXX)',
            'set(PROJECT_TARGET_MAIN "${HIGGS_PROJECT_NAME}")',
            'set(PROJECT_TARGET_TEST "${HIGGS_PROJECT_NAME}_test")',
            'set(VERSION "${HIGGS_PROJECT_VERSION}")',
            "",
            "set(CMAKE_ARCHIVE_OUTPUT_DIRECTORY ${CMAKE_BINARY_DIR}/lib)",
            "set(CMAKE_LIBRARY_OUTPUT_DIRECTORY ${CMAKE_BINARY_DIR}/lib)",
            "set(CMAKE_RUNTIME_OUTPUT_DIRECTORY ${CMAKE_BINARY_DIR}/bin)",
            "set(CMAKE_SOURCE_DIR ${HIGGS_PROJECT_SRC})",
            "set(CMAKE_CURRENT_SOURCE_DIR ${HIGGS_PROJECT_SRC})",
            "",
            "set(HIGGS_EXTERNAL_INCLUDES",
            f'    "{cache}/{CATCH2_INCLUDE}"',
        ]
        lines += [f'    "{include}"' for include in self.include_dirs]
        lines += [")", "", "set(HIGGS_EXTERNAL_LIBS"]
        lines += [f'    "{library}"' for library in reversed(self.libraries)]
        lines += [
            ")",
            "",
            "find_package(Threads)",
            'set(CMAKE_CXX_FLAGS "-pthread")',
            "",
            "if(CODE_COVERAGE)",
            '    set(CMAKE_C_FLAGS "${CMAKE_C_FLAGS} -fprofile-instr-generate -fcoverage-mapping")',
            '    set(CMAKE_CXX_FLAGS "${CMAKE_CXX_FLAGS} -fprofile-instr-generate -fcoverage-mapping")',
            "else()",
            '    set(CMAKE_C_FLAGS "${CMAKE_C_FLAGS} -Wall -Werror")',
            '    set(CMAKE_CXX_FLAGS "${CMAKE_CXX_FLAGS} -Wall -Werror")',
            "endif()",
        ]
        for option, flags in SANITIZER_FLAGS.items():
            flags = f"{flags} -fsanitize-blacklist={cache}/sanitize-blacklist.txt"
            lines += [
                "",
                f"if({option})",
                f'    set(CMAKE_C_FLAGS "${{CMAKE_C_FLAGS}} {flags}")',
                f'    set(CMAKE_CXX_FLAGS "${{CMAKE_CXX_FLAGS}} {flags}")',
                "endif()",
            ]

        lines += ["", "set(${PROJECT_TARGET_MAIN}_headers"]
        lines += [f'    "{header}"' for header in self.header_files]
        lines += [")", "set(${PROJECT_TARGET_MAIN}_sources"]
        lines += [f'    "{source}"' for source in self.source_files]
        lines += [")", ""]

        if main_file:
            lines.append(f"add_executable(${{PROJECT_TARGET_MAIN}} {main_file}")
        else:
            lines.append("add_library(${PROJECT_TARGET_MAIN} SHARED")
        lines += [
            "    ${${PROJECT_TARGET_MAIN}_sources} ${${PROJECT_TARGET_MAIN}_headers})",
            "target_link_libraries(${PROJECT_TARGET_MAIN} ${HIGGS_EXTERNAL_LIBS})",
            "target_include_directories(${PROJECT_TARGET_MAIN} PUBLIC"
            ' "${HIGGS_PROJECT_SRC}/src" ${HIGGS_EXTERNAL_INCLUDES})',
            "",
            "set(TEST_SOURCES",
        ]
        lines += [f'    "{test}"' for test in self.test_files]
        lines += [
            ")",
            "add_executable(${PROJECT_TARGET_TEST} ${HIGGS_PROJECT_CACHE}/main.test.cpp ${TEST_SOURCES}",
            "    ${${PROJECT_TARGET_MAIN}_sources} ${${PROJECT_TARGET_MAIN}_headers})",
            "target_include_directories(${PROJECT_TARGET_TEST} PUBLIC"
            ' "${HIGGS_PROJECT_SRC}/src" "${HIGGS_PROJECT_SRC}/test" ${HIGGS_EXTERNAL_INCLUDES})',
            "target_link_libraries(${PROJECT_TARGET_TEST} ${HIGGS_EXTERNAL_LIBS})",
            "target_compile_definitions(${PROJECT_TARGET_TEST} PRIVATE CATCH_TESTING=1)",
            "",
            "add_custom_target(${PROJECT_TARGET_TEST}_coverage",
            "    COMMAND LLVM_PROFILE_FILE=${PROJECT_TARGET_TEST}.profraw $<TARGET_FILE:${PROJECT_TARGET_TEST}>",
            "    COMMAND llvm-profdata merge -sparse ${PROJECT_TARGET_TEST}.profraw"
            " -o ${PROJECT_TARGET_TEST}.profdata",
            "    COMMAND llvm-cov report $<TARGET_FILE:${PROJECT_TARGET_TEST}>"
            " -instr-profile=${PROJECT_TARGET_TEST}.profdata ${HIGGS_PROJECT_SRC}/src",
            "    DEPENDS ${PROJECT_TARGET_TEST})",
        ]
        return lines
