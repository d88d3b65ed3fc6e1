"""
Per-file transcode decisions.

Given the probed streams of one file and the run's `Policy`, `plan_transcode`
decides whether the file is converted at all, whether the video needs a
deinterlace filter, and what happens to every audio and subtitle track. The
result is a plain `TranscodePlan`; nothing here touches the filesystem or
starts a process.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from mkvbatch.utils import constants
from .probe import ProbeResult, StreamDescriptor, StreamKind, normalize_token


@dataclass(frozen=True)
class Policy:
    """Settings shared by every file of a run."""

    video_file_extensions: frozenset
    audio_passthrough_codecs: frozenset
    skip_video_codecs: frozenset
    target_audio_codec: str
    encoder: str
    preset: str
    quality: int
    force_interlace_filter: bool = False

    @classmethod
    def create(
            cls,
            video_file_extensions: Iterable[str] = constants.VIDEO_FILE_TYPES,
            audio_passthrough_codecs: Iterable[str] = constants.PASSTHROUGH_AUDIO_CODECS,
            skip_video_codecs: Iterable[str] = constants.SKIP_VIDEO_CODECS,
            target_audio_codec: str = constants.AUDIO_CODEC,
            encoder: str = constants.ENCODER,
            preset: str = constants.PRESET,
            quality: int = constants.CRF,
            force_interlace_filter: bool = False,
    ) -> "Policy":
        """Build a policy, normalizing codec names and stripping leading dots from extensions."""
        return cls(
            video_file_extensions=frozenset(ext.strip().lstrip(".") for ext in video_file_extensions),
            audio_passthrough_codecs=frozenset(normalize_token(c) for c in audio_passthrough_codecs),
            skip_video_codecs=frozenset(normalize_token(c) for c in skip_video_codecs),
            target_audio_codec=normalize_token(target_audio_codec),
            encoder=encoder,
            preset=preset,
            quality=quality,
            force_interlace_filter=force_interlace_filter,
        )


class TrackActionKind(Enum):
    COPY_VIDEO = "copy_video"
    COPY_AUDIO = "copy_audio"
    REENCODE_AUDIO = "reencode_audio"
    COPY_SUBTITLE = "copy_subtitle"


@dataclass(frozen=True)
class TrackAction:
    source_index: int
    kind: StreamKind
    action: TrackActionKind
    codec: Optional[str] = None
    bit_rate: Optional[str] = None
    channels: Optional[int] = None


@dataclass(frozen=True)
class VideoParams:
    encoder: str
    preset: str
    quality: int
    pixel_format: str


@dataclass(frozen=True)
class TranscodePlan:
    skip: bool
    video_codec: str = ""
    video_source_index: Optional[int] = None
    apply_deinterlace_filter: bool = False
    field_order: Optional[str] = None
    video: Optional[VideoParams] = None
    actions: Tuple[TrackAction, ...] = ()


def _first_video_stream(streams: ProbeResult) -> Optional[StreamDescriptor]:
    return next((s for s in streams if s.kind is StreamKind.VIDEO), None)


def _streams_of(streams: ProbeResult, kind: StreamKind) -> list[StreamDescriptor]:
    return sorted((s for s in streams if s.kind is kind), key=lambda s: s.index)


def _audio_action(stream: StreamDescriptor, policy: Policy) -> TrackAction:
    if stream.codec_name in policy.audio_passthrough_codecs:
        action, codec = TrackActionKind.COPY_AUDIO, None
    else:
        action, codec = TrackActionKind.REENCODE_AUDIO, policy.target_audio_codec
    # Bitrate and channel layout are kept even when the codec changes.
    return TrackAction(
        source_index=stream.index,
        kind=StreamKind.AUDIO,
        action=action,
        codec=codec,
        bit_rate=stream.bit_rate,
        channels=stream.channels,
    )


def _subtitle_action(stream: StreamDescriptor) -> TrackAction:
    return TrackAction(source_index=stream.index, kind=StreamKind.SUBTITLE, action=TrackActionKind.COPY_SUBTITLE)


def plan_transcode(streams: ProbeResult, policy: Policy) -> Optional[TranscodePlan]:
    """Decide how one file is converted.

    Args:
        streams: Descriptors returned by the probe for the file.
        policy: Settings of the current run.

    Returns:
        None when the file has no video stream, a plan with ``skip=True`` when
        the first video stream already uses an excluded codec, otherwise the
        full plan for the engine.
    """
    video = _first_video_stream(streams)
    if video is None:
        return None

    if video.codec_name in policy.skip_video_codecs:
        return TranscodePlan(skip=True, video_codec=video.codec_name, video_source_index=video.index)

    deinterlace = video.field_order != constants.DEFAULT_FIELD_ORDER or policy.force_interlace_filter

    actions = [_audio_action(s, policy) for s in _streams_of(streams, StreamKind.AUDIO)]
    actions += [_subtitle_action(s) for s in _streams_of(streams, StreamKind.SUBTITLE)]

    return TranscodePlan(
        skip=False,
        video_codec=video.codec_name,
        video_source_index=video.index,
        apply_deinterlace_filter=deinterlace,
        field_order=video.field_order,
        video=VideoParams(
            encoder=policy.encoder,
            preset=policy.preset,
            quality=policy.quality,
            pixel_format=video.pixel_format,
        ),
        actions=tuple(actions),
    )
