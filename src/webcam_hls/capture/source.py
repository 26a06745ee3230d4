"""
Frame Sources
=============

Frame source adapters for the relay pipeline.

This module provides the FrameSource protocol and two implementations:
    - CameraFrameSource: OpenCV capture device (production)
    - SyntheticFrameSource: Deterministic test pattern (development, tests)

Design Rules:
    - open() fails fast if the device cannot be opened or configured
    - read_frame() returns None on a transient failure; never raises for it
    - Frames are always delivered at the negotiated geometry (resized if needed)
    - All methods are blocking; callers run them in a worker thread
"""

import logging
import time
from typing import Optional, Protocol

import cv2
import numpy as np

from webcam_hls.capture.frame import Frame


logger = logging.getLogger(__name__)


class FrameSourceError(Exception):
    """Raised when a frame source cannot be opened or configured."""
    pass


class FrameSourceExhausted(Exception):
    """Raised by finite sources once every frame has been delivered."""
    pass


class FrameSource(Protocol):
    """
    Protocol for frame source backends.

    Geometry attributes hold the negotiated values after open().
    """

    width: int
    height: int
    fps: int

    def open(self) -> None:
        ...

    def read_frame(self) -> Optional[Frame]:
        ...

    def close(self) -> None:
        ...


def normalize_geometry(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Resize an image to the negotiated geometry if it differs.

    Args:
        image: BGR image, shape (H, W, 3)
        width: Target width
        height: Target height

    Returns:
        Image with shape (height, width, 3)
    """
    if image.shape[1] == width and image.shape[0] == height:
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


class CameraFrameSource:
    """
    OpenCV-backed capture device.

    Attributes:
        device_index: Index passed to cv2.VideoCapture
        width: Negotiated frame width
        height: Negotiated frame height
        fps: Target frame rate
    """

    def __init__(
        self,
        device_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
    ) -> None:
        self.device_index = device_index
        self.width = width
        self.height = height
        self.fps = fps

        self._capture: Optional[cv2.VideoCapture] = None
        self._frame_counter: int = 0
        self._resized_count: int = 0

    @property
    def resized_count(self) -> int:
        """Number of frames resized to the negotiated geometry."""
        return self._resized_count

    def open(self) -> None:
        """
        Open and configure the capture device.

        Raises:
            FrameSourceError: If the device cannot be opened
        """
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise FrameSourceError(
                f"Cannot open video capture device {self.device_index}"
            )

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, float(self.width))
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, float(self.height))
        capture.set(cv2.CAP_PROP_FPS, float(self.fps))

        actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if (actual_w, actual_h) != (self.width, self.height):
            logger.warning(
                f"Device {self.device_index} negotiated {actual_w}x{actual_h}, "
                f"frames will be resized to {self.width}x{self.height}"
            )

        self._capture = capture
        logger.info(
            f"Opened capture device {self.device_index} "
            f"({self.width}x{self.height} @ {self.fps} fps)"
        )

    def read_frame(self) -> Optional[Frame]:
        """Read one frame, or None if the device returned nothing."""
        if self._capture is None:
            raise FrameSourceError("Capture device is not open")

        ok, image = self._capture.read()
        if not ok or image is None or image.size == 0:
            return None

        if image.shape[1] != self.width or image.shape[0] != self.height:
            self._resized_count += 1
            image = normalize_geometry(image, self.width, self.height)

        frame = Frame(
            frame_id=self._frame_counter,
            timestamp=time.time(),
            image=image,
        )
        self._frame_counter += 1
        return frame

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Closed capture device {self.device_index}")


class SyntheticFrameSource:
    """
    Deterministic test-pattern source.

    Draws a horizontal gradient with a bar sweeping across the frame and
    the frame number printed in the corner. Frames are paced at the
    configured rate unless `realtime` is False.

    Attributes:
        width: Frame width
        height: Frame height
        fps: Frame rate
        total_frames: Frames to produce before exhaustion (0 = endless)
    """

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        total_frames: int = 0,
        realtime: bool = True,
    ) -> None:
        self.width = width
        self.height = height
        self.fps = fps
        self.total_frames = total_frames
        self.realtime = realtime

        self._frame_counter: int = 0
        self._next_deadline: float = 0.0
        self._background: Optional[np.ndarray] = None

    def open(self) -> None:
        gradient = np.linspace(0, 255, self.width, dtype=np.uint8)
        self._background = np.repeat(
            np.tile(gradient, (self.height, 1))[:, :, np.newaxis], 3, axis=2
        )
        self._next_deadline = time.monotonic()
        logger.info(
            f"SyntheticFrameSource opened: {self.width}x{self.height} @ {self.fps} fps, "
            f"frames={self.total_frames or 'endless'}"
        )

    def read_frame(self) -> Optional[Frame]:
        if self._background is None:
            raise FrameSourceError("Synthetic source is not open")
        if self.total_frames and self._frame_counter >= self.total_frames:
            raise FrameSourceExhausted(
                f"Synthetic source finished after {self._frame_counter} frames"
            )

        if self.realtime:
            self._next_deadline += 1.0 / self.fps
            delay = self._next_deadline - time.monotonic()
            if delay > 0:
                time.sleep(delay)

        image = self._background.copy()
        bar_width = max(1, self.width // 16)
        x = (self._frame_counter * 4) % self.width
        image[:, x:x + bar_width] = (0, 0, 255)
        cv2.putText(
            image,
            str(self._frame_counter),
            (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.0,
            (255, 255, 255),
            2,
        )

        frame = Frame(
            frame_id=self._frame_counter,
            timestamp=time.time(),
            image=image,
        )
        self._frame_counter += 1
        return frame

    def close(self) -> None:
        self._background = None
