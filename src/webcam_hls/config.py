"""
Webcam HLS Relay Configuration
==============================

This module handles configuration loading for the relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    HLS_CAPTURE_BACKEND    -> capture.backend
    HLS_CAMERA_INDEX       -> capture.device_index
    HLS_FRAME_WIDTH        -> capture.width
    HLS_FRAME_HEIGHT       -> capture.height
    HLS_FPS                -> capture.fps
    FFMPEG_PATH            -> encoder.ffmpeg_path
    HLS_SEGMENT_DURATION   -> encoder.segment_duration
    HLS_PLAYLIST_SIZE      -> encoder.playlist_size
    HLS_PUBLIC_URL         -> server.public_url
    HLS_PORT               -> server.port
    HLS_LOG_LEVEL          -> logging.level
    PORT                   -> server.port (container platforms)

Example:
    from webcam_hls.config import load_config

    settings = load_config()
    print(settings.capture.width, settings.capture.height)
    print(settings.encoder.keyframe_interval(settings.capture.fps))
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class CaptureConfig(BaseModel):
    """Frame source configuration."""

    backend: str = Field(
        default="camera",
        description="Frame source backend: 'camera' or 'synthetic'",
    )
    device_index: int = Field(default=0, ge=0, description="Capture device index")
    width: int = Field(default=640, ge=16, le=7680, description="Frame width in pixels")
    height: int = Field(default=480, ge=16, le=4320, description="Frame height in pixels")
    fps: int = Field(default=30, ge=1, le=120, description="Target frame rate")
    max_consecutive_failures: int = Field(
        default=300,
        ge=0,
        description="Consecutive failed reads before giving up (0 = unlimited)",
    )
    synthetic_frames: int = Field(
        default=0,
        ge=0,
        description="Frames produced by the synthetic backend (0 = endless)",
    )


class EncoderConfig(BaseModel):
    """External encoder (ffmpeg) configuration."""

    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")
    preset: str = Field(default="veryfast", description="libx264 preset")
    segment_duration: int = Field(
        default=2,
        ge=1,
        le=30,
        description="Target segment length in seconds",
    )
    playlist_size: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Number of segments referenced by the playlist",
    )
    exit_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Time allowed for the encoder to exit after end of input",
    )
    command: Optional[List[str]] = Field(
        default=None,
        description="Full command override; replaces the generated ffmpeg command",
    )

    def keyframe_interval(self, fps: int) -> int:
        """Frames between keyframes, aligned to segment boundaries."""
        return fps * self.segment_duration


class StoreConfig(BaseModel):
    """Live segment store configuration."""

    grace_period_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Age before an unreferenced segment is evicted",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")
    public_url: Optional[str] = Field(
        default=None,
        description="Base URL the encoder uploads to (default: http://127.0.0.1:<port>)",
    )

    def ingest_base_url(self) -> str:
        """Base URL used by the encoder for PUT uploads."""
        if self.public_url:
            return self.public_url.rstrip("/")
        return f"http://127.0.0.1:{self.port}"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the relay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_backend := os.environ.get("HLS_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_backend
    if env_index := os.environ.get("HLS_CAMERA_INDEX"):
        config_data.setdefault("capture", {})["device_index"] = int(env_index)
    if env_width := os.environ.get("HLS_FRAME_WIDTH"):
        config_data.setdefault("capture", {})["width"] = int(env_width)
    if env_height := os.environ.get("HLS_FRAME_HEIGHT"):
        config_data.setdefault("capture", {})["height"] = int(env_height)
    if env_fps := os.environ.get("HLS_FPS"):
        config_data.setdefault("capture", {})["fps"] = int(env_fps)

    # Encoder settings
    if env_ffmpeg := os.environ.get("FFMPEG_PATH"):
        config_data.setdefault("encoder", {})["ffmpeg_path"] = env_ffmpeg
    if env_seg := os.environ.get("HLS_SEGMENT_DURATION"):
        config_data.setdefault("encoder", {})["segment_duration"] = int(env_seg)
    if env_list := os.environ.get("HLS_PLAYLIST_SIZE"):
        config_data.setdefault("encoder", {})["playlist_size"] = int(env_list)

    # Server settings (PORT wins for container platforms)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("HLS_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    if env_url := os.environ.get("HLS_PUBLIC_URL"):
        config_data.setdefault("server", {})["public_url"] = env_url

    # Logging settings
    if env_log := os.environ.get("HLS_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
