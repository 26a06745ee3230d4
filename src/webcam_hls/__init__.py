"""
Webcam HLS Relay
================

Relays a live camera through ffmpeg into HLS and serves the playlist and
segments over HTTP.

Components:
    - capture: Frame source adapters (OpenCV camera, synthetic pattern)
    - encoder: ffmpeg process bridge with tagged output channels
    - store: In-memory playlist and segment store under a RW lock
    - pipeline: Orchestrator owning startup/shutdown ordering
    - main: FastAPI application and command-line entry point

Example:
    from webcam_hls.main import create_app

    app = create_app()
    # or run the `webcam-hls` command
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
