"""
Frame Data Model
=================

Internal frame representation for the capture pipeline.

Design Rules:
    - This is the ONLY frame format handed to the encoder bridge
    - Pixel data is raw BGR24 at the negotiated geometry
    - Frames live for a single loop iteration and are never persisted
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Raw frame captured from a frame source.

    Attributes:
        frame_id: Monotonically increasing counter assigned by the source
        timestamp: UNIX timestamp when the frame was read
        image: BGR pixel array, shape (height, width, 3), dtype uint8
    """

    frame_id: int
    timestamp: float
    image: np.ndarray

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    def to_bytes(self) -> bytes:
        """Raw bytes in row-major bgr24 layout, as expected by ffmpeg rawvideo."""
        return np.ascontiguousarray(self.image).tobytes()

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height})"
        )
