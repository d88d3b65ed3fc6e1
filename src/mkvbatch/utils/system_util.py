"""
Utility functions for running system commands and verifying binary availability.

This module provides helper functions to execute external commands and check if
required binaries exist in the system's PATH. Both ffprobe and ffmpeg have to be
installed for a batch run.

Functions:
    - run_cmd: Executes a system command and returns its exit code along with its
      standard output and error streams. OSError from a process that cannot be
      started is left to the caller.
    - which_or_die: Checks for the presence of a specific binary on the system's
      PATH and terminates the process if it is unavailable.
"""
import shutil
import subprocess
import sys
from typing import Tuple, List

from mkvbatch.utils.logger import StructuredLogger, get_logger


def run_cmd(cmd: List[str]) -> Tuple[int, str, str]:
    """Run a command and return (code, stdout, stderr)."""
    p = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, errors="replace")
    return p.returncode, p.stdout, p.stderr


def which_or_die(binary: str, log: StructuredLogger | None = None):
    """Check if a binary exists on PATH, exit with status 2 if not found."""
    if shutil.which(binary) is None:
        (log or get_logger()).error("startup.missing_binary", binary=binary,
                                    msg="Not found on PATH. Install it first (e.g. apt install ffmpeg).")
        sys.exit(2)
