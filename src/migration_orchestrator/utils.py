"""
Utility functions for the batch migration orchestrator.
"""

from __future__ import annotations

import logging
import re
import subprocess
from subprocess import CompletedProcess
from typing import Final

_PASS_PATH_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*")


class PassError(Exception):
    """Raised when a secret cannot be read from the pass utility."""


def setup_logging(*, verbose: bool = False, log_file: str | None = "orchestration.log") -> None:
    """Configure logging for the orchestration process."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path.

    Raises:
        ValueError: If the path is not a plain ``segment/segment`` path
        PassError: If pass fails or is not installed
    """
    if not _PASS_PATH_PATTERN.fullmatch(pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", "show", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The 'pass' utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    # pass stores the secret on the first line; further lines are metadata
    lines = result.stdout.splitlines()
    return lines[0].strip() if lines else ""
