"""
Pipeline Module
===============

Assembly and lifecycle of the relay pipeline.

    - Orchestrator: Start/stop ordering and fatal-error handling
    - build_orchestrator: Construct a pipeline from Settings
"""

from webcam_hls.pipeline.orchestrator import (
    Orchestrator,
    PipelineError,
    PipelineState,
)
from webcam_hls.pipeline.factory import build_orchestrator, create_frame_source


__all__ = [
    "Orchestrator",
    "PipelineError",
    "PipelineState",
    "build_orchestrator",
    "create_frame_source",
]
