"""
Webcam HLS Relay Main Application
=================================

FastAPI entry point for the live HLS relay.

The encoder uploads segments and playlist revisions to this server with
HTTP PUT (push architecture); viewers fetch them with GET.

Endpoints:
    GET  /                - Landing page with the video player
    GET  /index.m3u8      - Current playlist (503 until the first one arrives)
    PUT  /index.m3u8      - Playlist ingest from the encoder
    PUT  /segment_<id>    - Segment ingest from the encoder
    GET  /segment_<id>    - Segment bytes (404 if unknown or evicted)
    GET  /health          - Liveness probe
    GET  /metrics         - Pipeline and store counters

Any other method on these paths is answered with 405.
"""

import argparse
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

from webcam_hls import __version__
from webcam_hls.config import Settings, load_config, setup_logging
from webcam_hls.pipeline import Orchestrator, build_orchestrator
from webcam_hls.store import (
    MANIFEST_CONTENT_TYPE,
    SEGMENT_CONTENT_TYPE,
    LiveSegmentStore,
)


logger = logging.getLogger(__name__)


LANDING_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>Webcam Live Stream (HLS)</title>
    <script src="https://cdn.jsdelivr.net/npm/hls.js@1"></script>
  </head>
  <body>
    <h1>Webcam Live Stream (HLS)</h1>
    <video id="video" width="{width}" height="{height}" controls autoplay muted>
      <source src="/index.m3u8" type="application/x-mpegURL">
    </video>
    <script>
      var video = document.getElementById("video");
      if (!video.canPlayType("application/vnd.apple.mpegurl") && window.Hls && Hls.isSupported()) {{
        var hls = new Hls();
        hls.loadSource("/index.m3u8");
        hls.attachMedia(video);
      }}
    </script>
  </body>
</html>
"""


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[Orchestrator] = None,
    store: Optional[LiveSegmentStore] = None,
    start_pipeline: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Loaded configuration (defaults + environment if None)
        orchestrator: Pipeline to run (built from settings if None)
        store: Store to serve (the orchestrator's store if None)
        start_pipeline: Run the pipeline in the app lifespan

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = load_config()
    if store is None:
        store = orchestrator.store if orchestrator is not None else LiveSegmentStore(
            grace_period=settings.store.grace_period_seconds,
        )
    if orchestrator is None and start_pipeline:
        orchestrator = build_orchestrator(settings, store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.startup_time = time.time()
        logger.info(f"Starting webcam-hls {__version__}")

        # Pipeline first; uvicorn accepts requests only after this yields
        if start_pipeline and orchestrator is not None:
            await orchestrator.start()

        yield

        logger.info("Shutting down gracefully...")
        if start_pipeline and orchestrator is not None:
            await orchestrator.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Webcam HLS Relay",
        description="Live camera relay through ffmpeg to HLS",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.startup_time = time.time()

    _register_routes(app)
    return app


# =============================================================================
# HTTP Endpoints
# =============================================================================

def _register_routes(app: FastAPI) -> None:

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        """Landing page with a player for /index.m3u8."""
        capture = request.app.state.settings.capture
        return HTMLResponse(
            LANDING_PAGE.format(width=capture.width, height=capture.height)
        )

    @app.get("/index.m3u8")
    async def get_playlist(request: Request) -> Response:
        """Current playlist, or 503 before the encoder has produced one."""
        manifest = await request.app.state.store.get_manifest()
        if manifest is None:
            return PlainTextResponse("Playlist not yet available", status_code=503)
        return Response(
            content=manifest,
            media_type=MANIFEST_CONTENT_TYPE,
            headers={"Cache-Control": "no-cache"},
        )

    @app.put("/index.m3u8")
    async def put_playlist(request: Request) -> PlainTextResponse:
        """Replace the playlist and evict segments it no longer lists."""
        try:
            body = await request.body()
        except Exception as e:
            logger.error(f"Error reading playlist data: {e}")
            return PlainTextResponse("Error reading playlist data", status_code=500)

        version = await request.app.state.store.ingest_manifest(body)
        logger.debug(f"Playlist v{version} ingested ({len(body)} bytes)")
        return PlainTextResponse("OK", status_code=201)

    @app.put("/segment_{segment_id}")
    async def put_segment(segment_id: str, request: Request) -> PlainTextResponse:
        """Store one segment uploaded by the encoder."""
        name = f"segment_{segment_id}"
        try:
            body = await request.body()
        except Exception as e:
            logger.error(f"Error reading segment data for {name}: {e}")
            return PlainTextResponse("Error reading segment data", status_code=500)

        await request.app.state.store.put_segment(name, body)
        return PlainTextResponse("OK", status_code=201)

    @app.get("/segment_{segment_id}")
    async def get_segment(segment_id: str, request: Request) -> Response:
        """Segment bytes, or 404."""
        data = await request.app.state.store.get_segment(f"segment_{segment_id}")
        if data is None:
            return PlainTextResponse("Segment not found", status_code=404)
        return Response(content=data, media_type=SEGMENT_CONTENT_TYPE)

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 while the server runs, even if the pipeline failed,
        so already-buffered media stays reachable.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
        })

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        orchestrator = request.app.state.orchestrator
        pipeline_metrics = orchestrator.metrics() if orchestrator is not None else {}
        store_metrics = await request.app.state.store.stats()

        return JSONResponse({
            "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
            **pipeline_metrics,
            **store_metrics,
        })


# =============================================================================
# Main Entry Point
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Relay a camera through ffmpeg as a live HLS stream"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--camera", type=int, default=None, help="Capture device index")
    parser.add_argument("--width", type=int, default=None, help="Frame width")
    parser.add_argument("--height", type=int, default=None, help="Frame height")
    parser.add_argument("--fps", type=int, default=None, help="Frame rate")
    parser.add_argument("--port", type=int, default=None, help="HTTP port")
    parser.add_argument(
        "--synthetic",
        action="store_true",
        help="Use a generated test pattern instead of a camera",
    )
    return parser.parse_args(argv)


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command-line values applied on top."""
    capture = settings.capture.model_copy(update={
        key: value
        for key, value in (
            ("device_index", args.camera),
            ("width", args.width),
            ("height", args.height),
            ("fps", args.fps),
        )
        if value is not None
    })
    if args.synthetic:
        capture = capture.model_copy(update={"backend": "synthetic"})

    server = settings.server
    if args.port is not None:
        server = server.model_copy(update={"port": args.port})

    return Settings.model_validate({
        **settings.model_dump(),
        "capture": capture.model_dump(),
        "server": server.model_dump(),
    })


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = apply_cli_overrides(load_config(args.config), args)
    setup_logging(settings)

    exit_code = 0
    server: Optional[uvicorn.Server] = None

    def request_exit(reason: str) -> None:
        nonlocal exit_code
        exit_code = 1
        logger.critical(f"Exiting: {reason}")
        if server is not None:
            server.should_exit = True

    store = LiveSegmentStore(grace_period=settings.store.grace_period_seconds)
    orchestrator = build_orchestrator(settings, store=store, on_fatal=request_exit)
    app = create_app(settings, orchestrator=orchestrator, store=store)

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    ))
    logger.info(
        f"HLS live stream server running at "
        f"http://{settings.server.host}:{settings.server.port}"
    )
    server.run()

    if not server.started:
        # Startup failed: pipeline error or listener bind failure
        exit_code = exit_code or 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
