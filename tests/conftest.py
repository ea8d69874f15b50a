"""Pytest configuration to make the project root importable.

This lets ``import vertex_rag`` work when the tests run from a checkout
without the package being installed.
"""

import os
import sys

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
