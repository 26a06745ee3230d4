"""
Encoder Command
===============

Builds the ffmpeg invocation for the push architecture.

ffmpeg reads raw bgr24 frames on stdin, encodes H.264, and uploads every
segment and every playlist revision to this server with HTTP PUT. Progress
is written as key=value lines on stdout (`-progress pipe:1`); log output
goes to stderr. Each inbound pipe therefore carries a single kind of content.
"""

from typing import List

from webcam_hls.config import CaptureConfig, EncoderConfig


PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"


def build_ffmpeg_command(
    capture: CaptureConfig,
    encoder: EncoderConfig,
    base_url: str,
) -> List[str]:
    """
    Build the ffmpeg argument list.

    Args:
        capture: Negotiated frame geometry and rate
        encoder: Segmenting parameters
        base_url: Base URL of this server's ingest routes

    Returns:
        argv suitable for asyncio.create_subprocess_exec
    """
    if encoder.command:
        return list(encoder.command)

    base_url = base_url.rstrip("/")
    gop = encoder.keyframe_interval(capture.fps)

    return [
        encoder.ffmpeg_path,
        "-hide_banner",
        "-loglevel", "info",
        "-nostats",
        "-progress", "pipe:1",
        # Input: raw frames from stdin
        "-f", "rawvideo",
        "-pix_fmt", "bgr24",
        "-s", f"{capture.width}x{capture.height}",
        "-r", str(capture.fps),
        "-i", "-",
        # Video encoding, keyframes aligned with segment boundaries
        "-an",
        "-c:v", "libx264",
        "-preset", encoder.preset,
        "-pix_fmt", "yuv420p",
        "-g", str(gop),
        "-keyint_min", str(gop),
        "-sc_threshold", "0",
        # HLS output, pushed back to this server
        "-f", "hls",
        "-hls_time", str(encoder.segment_duration),
        "-hls_list_size", str(encoder.playlist_size),
        "-hls_flags", "delete_segments",
        "-method", "PUT",
        "-hls_segment_filename", f"{base_url}/{SEGMENT_PATTERN}",
        f"{base_url}/{PLAYLIST_NAME}",
    ]
