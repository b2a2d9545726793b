"""
Pytest configuration for the MIPS assembler test suite.

    python -m pytest                 # everything
    python -m pytest -m roundtrip    # decode → re-encode checks only

The test modules are plain unittest.TestCase classes; they also run
with `python -m unittest`.
"""

import os
import sys

# Flat layout: make the root modules importable without installing.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "roundtrip: decode → re-encode checks over the opcode table")
