"""
Capture Module
==============

Frame source adapters for the relay pipeline.

This module provides the ingestion layer:
    - Frame: Raw BGR frame at the negotiated geometry
    - FrameSource: Protocol implemented by all backends
    - CameraFrameSource: OpenCV capture device
    - SyntheticFrameSource: Deterministic test pattern

Example:
    from webcam_hls.capture import CameraFrameSource

    source = CameraFrameSource(device_index=0, width=640, height=480, fps=30)
    source.open()
    frame = source.read_frame()
    source.close()
"""

from webcam_hls.capture.frame import Frame
from webcam_hls.capture.source import (
    CameraFrameSource,
    FrameSource,
    FrameSourceError,
    FrameSourceExhausted,
    SyntheticFrameSource,
    normalize_geometry,
)


__all__ = [
    "Frame",
    "FrameSource",
    "FrameSourceError",
    "FrameSourceExhausted",
    "CameraFrameSource",
    "SyntheticFrameSource",
    "normalize_geometry",
]
