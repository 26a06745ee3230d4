"""
Pipeline Orchestrator
=====================

Wires the frame source, encoder bridge and segment store into a running
pipeline.

Startup order:
    1. Frame source opened
    2. Encoder spawned
    3. Frame-copy loop started
    (the HTTP server starts accepting only after this returns)

Shutdown order (fatal error, end of input, or server shutdown):
    1. Frame loop stopped
    2. Encoder input closed
    3. Bounded wait for encoder exit (terminate/kill on timeout)
    4. Frame source closed

Design Rules:
    - The frame loop is the ONLY task that blocks on the source or on the
      encoder's input
    - A transient read failure is logged and skipped; a run of them longer
      than max_consecutive_failures (when non-zero) is fatal
    - A broken encoder pipe is fatal and never retried
    - Fatal conditions are reported through on_fatal; the HTTP layer keeps
      serving whatever is already buffered until the process exits
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from webcam_hls.capture import FrameSource, FrameSourceError, FrameSourceExhausted
from webcam_hls.encoder import EncoderBridge, EncoderError
from webcam_hls.store import LiveSegmentStore


logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Lifecycle states of the relay pipeline."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    STOPPED = "stopped"
    FAILED = "failed"


class PipelineError(Exception):
    """Raised when the pipeline cannot be started."""
    pass


FatalHandler = Callable[[str], None]


class Orchestrator:
    """
    Owns the lifecycle of one relay pipeline.

    Attributes:
        source: Frame source adapter
        bridge: Encoder bridge
        store: Live segment store served by the HTTP layer
        state: Current PipelineState
        fatal_reason: Description of the fatal condition, if any

    Example:
        orchestrator = Orchestrator(source, bridge, store, on_fatal=request_exit)
        await orchestrator.start()
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        source: FrameSource,
        bridge: EncoderBridge,
        store: LiveSegmentStore,
        max_consecutive_failures: int = 0,
        on_fatal: Optional[FatalHandler] = None,
    ) -> None:
        self.source = source
        self.bridge = bridge
        self.store = store
        self.max_consecutive_failures = max_consecutive_failures
        self.on_fatal = on_fatal

        self.state: PipelineState = PipelineState.IDLE
        self.fatal_reason: Optional[str] = None

        self._stop_event: asyncio.Event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._source_open: bool = False
        self._teardown_lock: asyncio.Lock = asyncio.Lock()
        self._torn_down: bool = False

        # Metrics
        self.frames_read: int = 0
        self.read_failures: int = 0
        self.consecutive_failures: int = 0
        self.started_at: float = 0.0

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED

    @property
    def loop_task(self) -> Optional[asyncio.Task]:
        return self._loop_task

    async def start(self) -> None:
        """
        Open the source, spawn the encoder, and start the frame loop.

        Raises:
            PipelineError: If the source or the encoder cannot be started
        """
        if self.state is not PipelineState.IDLE:
            raise PipelineError(f"Pipeline already {self.state.value}")

        self.started_at = time.time()

        try:
            await asyncio.to_thread(self.source.open)
            self._source_open = True
        except FrameSourceError as e:
            await self._fail(f"Frame source unavailable: {e}")
            raise PipelineError(self.fatal_reason) from e

        try:
            await self.bridge.start()
        except EncoderError as e:
            await self._fail(f"Encoder could not be started: {e}")
            raise PipelineError(self.fatal_reason) from e

        self.state = PipelineState.RUNNING
        self._loop_task = asyncio.create_task(self._frame_loop(), name="frame_loop")
        logger.info("Pipeline started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the frame loop and shut the encoder down. Idempotent."""
        self._stop_event.set()

        task = self._loop_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                if self._teardown_lock.locked():
                    # Encoder shutdown already under way; bounded by await_exit
                    logger.info("Waiting for encoder shutdown to complete")
                    await asyncio.shield(task)
                else:
                    logger.warning("Frame loop did not stop in time, cancelling")
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

        await self._teardown()
        if self.state is PipelineState.RUNNING:
            self.state = PipelineState.STOPPED
        logger.info(f"Pipeline {self.state.value}")

    async def wait(self) -> None:
        """Wait until the frame loop has ended."""
        if self._loop_task is not None:
            await asyncio.shield(self._loop_task)

    async def _frame_loop(self) -> None:
        """Copy frames from the source into the encoder until told to stop."""
        logger.info("Frame loop started")

        while not self._stop_event.is_set():
            try:
                frame = await asyncio.to_thread(self.source.read_frame)
            except FrameSourceExhausted as e:
                logger.info(f"End of input: {e}")
                await self._teardown()
                self.state = PipelineState.FINISHED
                return
            except FrameSourceError as e:
                await self._fail(f"Frame source failed: {e}")
                return

            if frame is None:
                self.read_failures += 1
                self.consecutive_failures += 1
                if self.consecutive_failures == 1 or self.consecutive_failures % 100 == 0:
                    logger.warning(
                        f"Cannot read frame from source "
                        f"({self.consecutive_failures} consecutive failures)"
                    )
                if (
                    self.max_consecutive_failures > 0
                    and self.consecutive_failures >= self.max_consecutive_failures
                ):
                    await self._fail(
                        f"{self.consecutive_failures} consecutive frame read failures"
                    )
                    return
                await asyncio.sleep(0)
                continue

            self.consecutive_failures = 0
            self.frames_read += 1

            try:
                await self.bridge.write_frame(frame.to_bytes())
            except EncoderError as e:
                await self._fail(f"Cannot write frame {frame.frame_id} to encoder: {e}")
                return

        logger.info("Frame loop stopped")

    async def _fail(self, reason: str) -> None:
        """Record a fatal condition, tear the pipeline down, and report it."""
        self.state = PipelineState.FAILED
        self.fatal_reason = reason
        logger.error(f"Fatal pipeline error: {reason}")

        await self._teardown()

        diagnostics = self.bridge.recent_diagnostics
        if diagnostics:
            logger.error("Last encoder output:\n" + "\n".join(diagnostics[-10:]))

        if self.on_fatal is not None:
            self.on_fatal(reason)

    async def _teardown(self) -> None:
        async with self._teardown_lock:
            if self._torn_down:
                return

            await self.bridge.signal_end_of_input()
            await self.bridge.await_exit()

            if self._source_open:
                await asyncio.to_thread(self.source.close)
                self._source_open = False

            # Only after the encoder has been reaped; an interrupted
            # teardown is repeated by the next caller
            self._torn_down = True

    def metrics(self) -> dict:
        """
        Get pipeline metrics for observability.

        Returns:
            Dict with state, frame counters and encoder metrics
        """
        return {
            "pipeline_state": self.state.value,
            "fatal_reason": self.fatal_reason,
            "frames_read": self.frames_read,
            "read_failures": self.read_failures,
            "consecutive_failures": self.consecutive_failures,
            **self.bridge.metrics(),
        }
