"""
This module drives a whole conversion run over a source tree.

`BatchController` takes every file the walker yields through probe, planner and
engine, and keeps the running size totals. Any `BatchError` stops the run; only
the expected skips (output already there, excluded codec, no video stream) let
it move on to the next file.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from tqdm import tqdm

from mkvbatch.utils import file_util
from mkvbatch.utils.constants import (
    SKIP_EXCLUDED_CODEC,
    SKIP_NO_VIDEO,
    SKIP_OUTPUT_CLAIMED,
    STATUS_DRY_RUN,
    STATUS_OK,
    STATUS_SKIP,
)
from mkvbatch.utils.logger import StructuredLogger, get_logger
from .engine import build_ffmpeg_cmd
from .errors import FileSizeError
from .planner import Policy, TranscodePlan, plan_transcode
from .probe import ProbeResult
from .walker import FileSetWalker, WalkEntry


class Probe(Protocol):
    def probe(self, path: Path) -> ProbeResult: ...


class Engine(Protocol):
    def transcode(self, plan: TranscodePlan, src: Path, dst: Path) -> int: ...


@dataclass(frozen=True)
class FileOutcome:
    """What happened to one walked file."""

    source: Path
    target: Path
    status: str
    reason: Optional[str] = None
    original_bytes: int = 0
    converted_bytes: int = 0


@dataclass
class BatchStats:
    original_total_bytes: int = 0
    converted_total_bytes: int = 0
    files_converted: int = 0
    files_skipped: int = 0

    def add(self, outcome: FileOutcome) -> None:
        if outcome.status == STATUS_OK:
            self.original_total_bytes += outcome.original_bytes
            self.converted_total_bytes += outcome.converted_bytes
            self.files_converted += 1
        elif outcome.status == STATUS_SKIP:
            self.files_skipped += 1

    @property
    def savings(self) -> file_util.Savings:
        return file_util.Savings(self.original_total_bytes, self.converted_total_bytes)


class BatchController:
    """Sequences walk, probe, plan and engine for every file of a run.

    With ``workers=1`` files are handled strictly one after the other. More
    workers convert several files at once; the walk itself and the stats
    stay on the calling thread.
    """

    def __init__(self, probe: Probe, engine: Engine, log: StructuredLogger | None = None,
                 workers: int = 1, dry_run: bool = False, show_progress: bool | None = None):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.probe = probe
        self.engine = engine
        self.log = log or get_logger()
        self.workers = workers
        self.dry_run = dry_run
        # None lets tqdm hide the bar when stdout is not a terminal
        self.show_progress = show_progress

    def run(self, src_root: Path, out_root: Path, policy: Policy) -> BatchStats:
        """
        Convert every pending video under `src_root` into `out_root`.

        Args:
            src_root: Root of the tree to convert
            out_root: Root of the mirrored output tree
            policy: Settings for the run

        Returns:
            The accumulated stats of the run

        Raises:
            BatchError: On the first probe, engine or filesystem failure. Files
                converted before the failure stay in place.
        """
        walker = FileSetWalker(src_root, out_root, policy.video_file_extensions, self.log)
        stats = BatchStats()

        self.log.info("batch.start",
                      source=str(src_root),
                      output=str(out_root),
                      workers=self.workers,
                      dry_run=self.dry_run)

        with tqdm(desc="Converting", unit="file", disable=self._progress_disabled()) as bar:
            if self.workers == 1:
                for entry in walker:
                    stats.add(self.process_one(entry, policy))
                    bar.update()
            else:
                self._run_parallel(walker, policy, stats, bar)

        stats.files_skipped += walker.skipped_existing

        self.log.info("batch.summary",
                      converted=stats.files_converted,
                      skipped=stats.files_skipped,
                      **stats.savings.as_log_fields())
        return stats

    def _progress_disabled(self) -> bool | None:
        if self.show_progress is None:
            return None
        return not self.show_progress

    def _run_parallel(self, walker: FileSetWalker, policy: Policy, stats: BatchStats, bar: tqdm) -> None:
        claimed: set[Path] = set()
        executor = ThreadPoolExecutor(max_workers=self.workers)
        try:
            futs = {}
            for entry in walker:
                # Two sources can map onto one output (a.avi and a.mp4 -> a.mkv)
                if entry.target in claimed:
                    self.log.warn("transcode.skip", file=str(entry.source), reason=SKIP_OUTPUT_CLAIMED,
                                  dst=str(entry.target))
                    stats.files_skipped += 1
                    continue
                claimed.add(entry.target)
                futs[executor.submit(self.process_one, entry, policy)] = entry

            for fut in as_completed(futs):
                stats.add(fut.result())
                bar.update()
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    def process_one(self, entry: WalkEntry, policy: Policy) -> FileOutcome:
        """Probe, plan and convert a single walked file."""
        src, dst = entry.source, entry.target

        streams = self.probe.probe(src)
        plan = plan_transcode(streams, policy)

        if plan is None:
            self.log.warn("transcode.skip", file=str(src), reason=SKIP_NO_VIDEO)
            return FileOutcome(src, dst, STATUS_SKIP, reason=SKIP_NO_VIDEO)

        if plan.skip:
            self.log.warn("transcode.skip", file=str(src), reason=SKIP_EXCLUDED_CODEC, codec=plan.video_codec)
            return FileOutcome(src, dst, STATUS_SKIP, reason=SKIP_EXCLUDED_CODEC)

        self.log.info("transcode.probed",
                      file=str(src),
                      codec=plan.video_codec or "unknown",
                      pix_fmt=plan.video.pixel_format,
                      field_order=plan.field_order,
                      deinterlace=plan.apply_deinterlace_filter,
                      tracks=len(plan.actions))

        if self.dry_run:
            self.log.info("transcode.dry_run", file=str(src), cmd=" ".join(build_ffmpeg_cmd(plan, src, dst)))
            return FileOutcome(src, dst, STATUS_DRY_RUN)

        try:
            original = file_util.file_size(src)
        except OSError as e:
            raise FileSizeError(f"Failed to read size of {src}: {e}", src) from e

        converted = self.engine.transcode(plan, src, dst)

        savings = file_util.Savings(original, converted)
        self.log.info("transcode.savings", file=str(src), **savings.as_log_fields())
        return FileOutcome(src, dst, STATUS_OK, original_bytes=original, converted_bytes=converted)
