"""
Batch re-encoding of a video library into a mirrored tree of MKV files.

The package walks a source tree, inspects each video with ffprobe, decides per
file and per track what needs re-encoding, and hands the resulting plan to
ffmpeg. Space savings are reported per file and for the whole run.

The package is organized into:
- transcode: probing, planning, the ffmpeg engine, tree walking and the batch
  controller.
- utils: constants, structured logging and small system/file helpers.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
