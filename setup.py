"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/bitboson-software/higgs-boson"
KEYWORDS = "c++ cmake cross-compile docker dockcross build dependencies catch2"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "higgsboson", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="higgs-boson",
        version=read_version(),
        description="Cross-compiling C/C++ build orchestrator",
        maintainer="Bitboson Software",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "requests",
            "tqdm",
            "psutil",
            "PyYAML",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "higgs-boson=higgsboson.cli:main",
            ],
        },
        include_package_data=True)
