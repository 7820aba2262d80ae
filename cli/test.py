"""CLI wrapper: Run the test suite in the test environment."""

from __future__ import annotations

import os
import sys

from cli._runner import run


def main() -> None:
    os.environ.setdefault("APP_ENV", "test")
    run([sys.executable, "-m", "pytest", "-q", *sys.argv[1:]])
