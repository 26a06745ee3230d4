"""
Test Configuration
==================

Pytest fixtures and test doubles for the relay.
"""

import socket
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from webcam_hls.capture import Frame, FrameSourceExhausted
from webcam_hls.config import Settings
from webcam_hls.encoder import EncoderBrokenError
from webcam_hls.store import LiveSegmentStore


STUB_ENCODER = Path(__file__).parent / "stub_encoder.py"


SAMPLE_PLAYLIST = (
    b"#EXTM3U\n"
    b"#EXT-X-VERSION:3\n"
    b"#EXT-X-TARGETDURATION:2\n"
    b"#EXT-X-MEDIA-SEQUENCE:4\n"
    b"#EXTINF:2.000000,\n"
    b"segment_004.ts\n"
    b"#EXTINF:2.000000,\n"
    b"segment_005.ts\n"
    b"#EXTINF:2.000000,\n"
    b"segment_006.ts\n"
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedFrameSource:
    """
    Frame source replaying a script of frames (ndarray) and failures (None).

    Raises FrameSourceExhausted after the script ends unless `endless_failures`
    is set, in which case it keeps returning None.
    """

    def __init__(
        self,
        script: List[Optional[np.ndarray]],
        width: int = 8,
        height: int = 6,
        fps: int = 30,
        endless_failures: bool = False,
    ) -> None:
        self.script = list(script)
        self.width = width
        self.height = height
        self.fps = fps
        self.endless_failures = endless_failures
        self.calls: List[str] = []
        self._index = 0

    def open(self) -> None:
        self.calls.append("open")

    def read_frame(self) -> Optional[Frame]:
        if self._index >= len(self.script):
            if self.endless_failures:
                return None
            raise FrameSourceExhausted("script finished")
        image = self.script[self._index]
        self._index += 1
        if image is None:
            return None
        return Frame(frame_id=self._index - 1, timestamp=0.0, image=image)

    def close(self) -> None:
        self.calls.append("close")


class RecordingBridge:
    """Encoder bridge double that records lifecycle calls."""

    def __init__(self, break_after: Optional[int] = None) -> None:
        self.break_after = break_after
        self.calls: List[str] = []
        self.frames: List[bytes] = []

    @property
    def recent_diagnostics(self) -> List[str]:
        return ["last diagnostic line"]

    async def start(self) -> None:
        self.calls.append("start")

    async def write_frame(self, data: bytes) -> None:
        if self.break_after is not None and len(self.frames) >= self.break_after:
            raise EncoderBrokenError("pipe closed")
        self.frames.append(data)

    async def signal_end_of_input(self) -> None:
        self.calls.append("end_of_input")

    async def await_exit(self, timeout: Optional[float] = None) -> int:
        self.calls.append("await_exit")
        return 0

    def metrics(self) -> dict:
        return {"frames_written": len(self.frames)}


def python_command(code: str) -> List[str]:
    """argv running a Python snippet with the current interpreter."""
    return [sys.executable, "-c", code]


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def settings() -> Settings:
    """Default settings with a small synthetic source."""
    return Settings.model_validate({
        "capture": {"backend": "synthetic", "width": 64, "height": 48, "fps": 30},
        "store": {"grace_period_seconds": 0},
    })


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(fake_clock) -> LiveSegmentStore:
    return LiveSegmentStore(grace_period=5.0, clock=fake_clock)


@pytest.fixture
def sample_playlist() -> bytes:
    return SAMPLE_PLAYLIST


@pytest.fixture
def blank_image() -> np.ndarray:
    return np.zeros((6, 8, 3), dtype=np.uint8)
