"""
Discovery of the files to convert and of their output paths.

The source tree is walked depth-first, in name order, and every video file is
paired with its place in the mirrored output tree. Files whose output already
exists are left out, which is what makes an interrupted batch resumable: a
second run only sees what the first one did not finish.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from mkvbatch.utils.constants import OUTPUT_EXTENSION, SKIP_ALREADY_CONVERTED
from mkvbatch.utils.logger import StructuredLogger, get_logger
from .errors import DirectoryReadError, OutputDirectoryError, PathEncodingError


@dataclass(frozen=True)
class WalkEntry:
    source: Path
    target: Path


def output_path_for(src: Path, src_root: Path, out_root: Path) -> Path:
    """Mirror `src` under `out_root` with the output extension."""
    rel = src.relative_to(src_root)
    return (out_root / rel).with_suffix(f".{OUTPUT_EXTENSION}")


def _check_encodable(path: Path) -> None:
    try:
        str(path).encode("utf-8")
    except UnicodeEncodeError as e:
        raise PathEncodingError(f"Path cannot be represented as UTF-8: {path!r}", path) from e


def _walk(directory: Path) -> Iterator[Path]:
    """Yield every non-directory entry under `directory`, depth-first in name order."""
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise DirectoryReadError(f"Failed to list directory {directory}: {e}", directory) from e

    for entry in entries:
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk(entry)
        else:
            yield entry


class FileSetWalker:
    """Iterable over the (source, target) pairs still to be converted.

    Every call to ``iter()`` starts a fresh walk of the source tree.
    """

    def __init__(self, src_root: Path, out_root: Path, extensions: Iterable[str],
                 log: StructuredLogger | None = None):
        self.src_root = src_root
        self.out_root = out_root
        self.extensions = frozenset(extensions)
        self.log = log or get_logger()
        self.skipped_existing = 0

    def matches(self, path: Path) -> bool:
        return bool(path.suffix) and path.is_file() and path.suffix[1:] in self.extensions

    def __iter__(self) -> Iterator[WalkEntry]:
        for src in _walk(self.src_root):
            if not self.matches(src):
                continue

            _check_encodable(src)
            dst = output_path_for(src, self.src_root, self.out_root)

            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise OutputDirectoryError(f"Failed to create output directory {dst.parent}: {e}", dst.parent) from e

            if dst.is_dir():
                raise OutputDirectoryError(f"Output path {dst} is a directory", dst)

            if dst.exists():
                self.skipped_existing += 1
                self.log.warn("transcode.skip", file=str(src), reason=SKIP_ALREADY_CONVERTED, dst=str(dst))
                continue

            yield WalkEntry(src, dst)
