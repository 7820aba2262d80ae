"""
Shared CLI runner helper.

Every wrapper in this package runs one tool in a subprocess of the current
interpreter and exits with the tool's exit code.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

SOURCE_DIRS = ("segment_builder", "tests", "cli")


def run(cmd: Sequence[str]) -> None:
    """
    Run ``cmd`` and exit with its return code.

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"])
    """
    result = subprocess.run(list(cmd))
    raise SystemExit(result.returncode)
