"""Pytest configuration for the budget engine tests.

Adds the src directory to sys.path so the package imports without installation.
"""

import sys
from pathlib import Path

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))
