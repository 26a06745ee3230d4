"""
Encoder Module
==============

External encoder process management.

    - EncoderBridge: Owns the ffmpeg process, its stdin and its two
      tagged output channels
    - build_ffmpeg_command: ffmpeg argv for the push architecture
"""

from webcam_hls.encoder.bridge import (
    ChannelKind,
    EncoderBridge,
    EncoderBrokenError,
    EncoderError,
    EncoderStartError,
)
from webcam_hls.encoder.command import (
    PLAYLIST_NAME,
    SEGMENT_PATTERN,
    build_ffmpeg_command,
)


__all__ = [
    "ChannelKind",
    "EncoderBridge",
    "EncoderError",
    "EncoderStartError",
    "EncoderBrokenError",
    "build_ffmpeg_command",
    "PLAYLIST_NAME",
    "SEGMENT_PATTERN",
]
