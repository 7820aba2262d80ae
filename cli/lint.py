"""CLI wrapper: Run linter."""

from __future__ import annotations

import sys

from cli._runner import SOURCE_DIRS, run


def main() -> None:
    run([sys.executable, "-m", "ruff", "check", *SOURCE_DIRS, *sys.argv[1:]])
