"""higgs-boson - Cross-compiling C/C++ build orchestrator."""

__version__ = "0.1.0"
