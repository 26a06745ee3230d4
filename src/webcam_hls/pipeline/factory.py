"""
Pipeline Factory
================

Builds frame sources and orchestrators from Settings.

Fails fast if an unknown capture backend is configured.
"""

import logging
from typing import Optional, Union

from webcam_hls.capture import CameraFrameSource, SyntheticFrameSource
from webcam_hls.config import CaptureConfig, Settings
from webcam_hls.encoder import EncoderBridge, build_ffmpeg_command
from webcam_hls.pipeline.orchestrator import FatalHandler, Orchestrator
from webcam_hls.store import LiveSegmentStore


logger = logging.getLogger(__name__)


def create_frame_source(
    capture: CaptureConfig,
) -> Union[CameraFrameSource, SyntheticFrameSource]:
    """Create the frame source selected by capture.backend."""
    backend = capture.backend

    if backend == "camera":
        logger.info(f"Using CameraFrameSource (device {capture.device_index})")
        return CameraFrameSource(
            device_index=capture.device_index,
            width=capture.width,
            height=capture.height,
            fps=capture.fps,
        )

    elif backend == "synthetic":
        logger.info("Using SyntheticFrameSource")
        return SyntheticFrameSource(
            width=capture.width,
            height=capture.height,
            fps=capture.fps,
            total_frames=capture.synthetic_frames,
        )

    else:
        raise ValueError(f"Unknown capture backend: {backend}")


def build_orchestrator(
    settings: Settings,
    store: Optional[LiveSegmentStore] = None,
    on_fatal: Optional[FatalHandler] = None,
) -> Orchestrator:
    """
    Assemble source, encoder bridge and store into an Orchestrator.

    Args:
        settings: Loaded configuration
        store: Store to serve from (a new one is created if None)
        on_fatal: Called with a reason string on fatal pipeline errors

    Returns:
        Orchestrator ready to start
    """
    if store is None:
        store = LiveSegmentStore(grace_period=settings.store.grace_period_seconds)

    command = build_ffmpeg_command(
        settings.capture,
        settings.encoder,
        settings.server.ingest_base_url(),
    )
    bridge = EncoderBridge(
        command,
        exit_timeout=settings.encoder.exit_timeout_seconds,
    )

    return Orchestrator(
        source=create_frame_source(settings.capture),
        bridge=bridge,
        store=store,
        max_consecutive_failures=settings.capture.max_consecutive_failures,
        on_fatal=on_fatal,
    )
