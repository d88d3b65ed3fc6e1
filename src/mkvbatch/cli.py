#!/usr/bin/env python3
"""
mkvbatch: re-encode a video library into a mirrored tree of MKV files.

Walks the source folder, skips anything already converted or already in an
excluded codec, converts the rest with ffmpeg and reports the space saved.
Running it again over the same folders only converts what is still missing.
"""

import argparse
import atexit
import sys
import time
from datetime import datetime
from pathlib import Path

import mkvbatch as mkvbatch_module
from mkvbatch import transcode
from mkvbatch.utils import LogLevel, constants, logger, system_util


class _TeeStream:
    def __init__(self, *streams):
        self._streams = streams

    def write(self, data):
        for stream in self._streams:
            stream.write(data)
        return len(data)

    def flush(self):
        for stream in self._streams:
            stream.flush()

    def isatty(self):
        return any(getattr(stream, "isatty", lambda: False)() for stream in self._streams)


def _crf(value: str) -> int:
    crf = int(value)
    if not 0 <= crf <= 63:
        raise argparse.ArgumentTypeError("CRF must be between 0 and 63")
    return crf


def _positive(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mkvbatch",
        description="Re-encode every video under a source folder into a mirrored folder of MKV files. "
                    "Files already converted or already in an excluded codec are skipped.",
        epilog="Example: mkvbatch -s ~/Videos/raw -o ~/Videos/mkv --skip-video-codecs hevc",
    )
    parser.add_argument("-s", "--source", required=True, help="Source directory")
    parser.add_argument("-o", "--output", required=True, help="Output directory")
    parser.add_argument(
        "-i", "--interlace-overwrite", action="store_true",
        help="Treat all input as interlaced (use when auto-detection fails)",
    )
    parser.add_argument(
        "-v", "--video-file-types", nargs="+", default=constants.VIDEO_FILE_TYPES,
        help="Video file extensions considered for conversion (default: %(default)s)",
    )
    parser.add_argument("-e", "--encoder", default=constants.ENCODER,
                        help="FFmpeg video encoder (default: %(default)s)")
    parser.add_argument("-p", "--preset", default=constants.PRESET,
                        help="Preset for the encoder (default: %(default)s)")
    parser.add_argument("-c", "--crf", type=_crf, default=constants.CRF,
                        help="Constant rate factor for the encoder (default: %(default)s)")
    parser.add_argument(
        "-a", "--passthrough-audio-codecs", nargs="+", default=constants.PASSTHROUGH_AUDIO_CODECS,
        help="Audio codecs copied without re-encoding (default: %(default)s)",
    )
    parser.add_argument("-t", "--audio-codec", default=constants.AUDIO_CODEC,
                        help="Audio codec for tracks that are re-encoded (default: %(default)s)")
    parser.add_argument(
        "-k", "--skip-video-codecs", nargs="+", default=constants.SKIP_VIDEO_CODECS,
        help="Video codecs whose files are skipped entirely (default: %(default)s)",
    )
    parser.add_argument("-w", "--workers", type=_positive, default=constants.WORKERS,
                        help="Files converted at the same time (default: %(default)s)")
    parser.add_argument("--dry-run", action="store_true", help="Probe and plan, print ffmpeg commands, convert nothing")
    parser.add_argument("--log-dir", default=constants.LOG_DIR,
                        help="Directory for log files (default: ./logs or $MKVBATCH_LOG_DIR)")
    parser.add_argument("--log-file", default=constants.LOG_FILE,
                        help="Log file path; overrides --log-dir and $MKVBATCH_LOG_DIR")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {mkvbatch_module.__version__}")
    return parser


def _open_log_file(args) -> Path:
    """Tee stdout and stderr into the run's log file and return its path."""
    if args.log_file:
        log_path = Path(args.log_file).expanduser().resolve()
    else:
        log_dir = Path(args.log_dir).expanduser() if args.log_dir else Path("./logs")
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        log_path = (log_dir / f"mkvbatch-{timestamp}.log").resolve()

    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_file_handle = open(log_path, "a", encoding="utf-8", buffering=1)
    sys.stdout = _TeeStream(sys.stdout, log_file_handle)
    sys.stderr = _TeeStream(sys.stderr, log_file_handle)
    atexit.register(log_file_handle.close)
    return log_path


def policy_from_args(args) -> transcode.Policy:
    return transcode.Policy.create(
        video_file_extensions=args.video_file_types,
        audio_passthrough_codecs=args.passthrough_audio_codecs,
        skip_video_codecs=args.skip_video_codecs,
        target_audio_codec=args.audio_codec,
        encoder=args.encoder,
        preset=args.preset,
        quality=args.crf,
        force_interlace_filter=args.interlace_overwrite,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    log_path = _open_log_file(args)

    logger.set_log_level(LogLevel.DEBUG if args.debug else LogLevel.INFO)
    log = logger.get_logger()
    log.info("startup.logging", log_file=str(log_path))

    system_util.which_or_die("ffmpeg", log)
    system_util.which_or_die("ffprobe", log)

    src_root = Path(args.source).expanduser().resolve()
    out_root = Path(args.output).expanduser().resolve()

    if not src_root.is_dir():
        log.error("startup.error", msg="Source directory does not exist", source=str(src_root))
        return 2

    policy = policy_from_args(args)

    if policy.encoder not in transcode.available_encoders():
        log.warn("startup.encoder_missing", encoder=policy.encoder,
                 msg="ffmpeg does not list this encoder; conversions will likely fail")

    controller = transcode.BatchController(
        transcode.StreamProbe(),
        transcode.FFmpegEngine(log=log),
        log=log,
        workers=args.workers,
        dry_run=args.dry_run,
    )

    start_time = time.time()
    try:
        stats = controller.run(src_root, out_root, policy)
    except transcode.BatchError as e:
        log.error("batch.failed", error=e.message, file=str(e.path) if e.path else None)
        return 1
    except KeyboardInterrupt:
        log.warn("batch.interrupted", msg="Stopped by user; converted files are kept")
        return 130

    # Calculate runtime
    runtime_seconds = int(time.time() - start_time)
    runtime_hours = runtime_seconds // 3600
    runtime_mins = (runtime_seconds % 3600) // 60
    runtime_secs = runtime_seconds % 60
    runtime_str = f"{runtime_hours:02d}:{runtime_mins:02d}:{runtime_secs:02d}"

    log.info("batch.end", runtime=runtime_str, converted=stats.files_converted, skipped=stats.files_skipped)
    return 0


if __name__ == "__main__":
    sys.exit(main())
