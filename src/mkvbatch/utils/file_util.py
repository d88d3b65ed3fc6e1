"""
File size helpers for savings reports.

Sizes are read from the filesystem and turned into the numbers reported after
each file and at the end of a run.
"""
from dataclasses import dataclass
from pathlib import Path

from mkvbatch.utils.constants import MIB


@dataclass(frozen=True)
class Savings:
    """Space saved by converting `original_bytes` into `converted_bytes`."""

    original_bytes: int
    converted_bytes: int

    @property
    def saved_bytes(self) -> int:
        return self.original_bytes - self.converted_bytes

    @property
    def percent_saved(self) -> float:
        """Percentage of the original size saved; 0.0 for an empty original."""
        if self.original_bytes == 0:
            return 0.0
        return self.saved_bytes / self.original_bytes * 100.0

    def as_log_fields(self) -> dict:
        return {
            "original_mb": to_mib(self.original_bytes),
            "converted_mb": to_mib(self.converted_bytes),
            "saved_mb": to_mib(self.saved_bytes),
            "saved_pct": round(self.percent_saved, 2),
        }


def to_mib(size: int) -> float:
    """Convert a byte count to MiB rounded to two decimals."""
    return round(size / MIB, 2)


def file_size(path: Path) -> int:
    """Return the size of `path` in bytes. Raises OSError if it cannot be read."""
    return path.stat().st_size
