"""
Encoder Bridge
==============

Owns the external encoder process and its three byte streams.

Channels:
    stdin  (outbound): raw frame bytes, written only by the frame loop
    stdout (inbound):  CONTROL channel, ffmpeg progress key=value lines
    stderr (inbound):  DIAGNOSTIC channel, ffmpeg log text

Design Rules:
    - Both inbound channels are drained by their own tasks, independently
      of the writer, so the process never blocks on a full pipe buffer
    - Lines are classified by the channel they arrive on, never by content
    - A failed write is fatal and never retried
    - Shutdown is close stdin -> bounded wait -> terminate -> kill
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional


logger = logging.getLogger(__name__)


class ChannelKind(str, Enum):
    """Content kind carried by an inbound channel."""

    CONTROL = "control"
    DIAGNOSTIC = "diagnostic"


class EncoderError(Exception):
    """Base class for encoder bridge failures."""
    pass


class EncoderStartError(EncoderError):
    """Raised when the encoder process cannot be spawned."""
    pass


class EncoderBrokenError(EncoderError):
    """Raised when the encoder's input channel is closed or the process died."""
    pass


LineHandler = Callable[[ChannelKind, str], None]


class EncoderBridge:
    """
    Async wrapper around the encoder subprocess.

    Attributes:
        command: argv of the encoder process
        exit_timeout: Default seconds to wait for exit after end of input
        progress: Last complete progress snapshot from the control channel
        frames_written: Frames successfully handed to the encoder

    Example:
        bridge = EncoderBridge(build_ffmpeg_command(...))
        await bridge.start()

        await bridge.write_frame(frame.to_bytes())

        await bridge.signal_end_of_input()
        code = await bridge.await_exit()
    """

    def __init__(
        self,
        command: List[str],
        exit_timeout: float = 10.0,
        kill_timeout: float = 2.0,
        diagnostic_history: int = 50,
        on_line: Optional[LineHandler] = None,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")

        self.command = list(command)
        self.exit_timeout = exit_timeout
        self.kill_timeout = kill_timeout
        self.on_line = on_line

        self._process: Optional[asyncio.subprocess.Process] = None
        self._drain_tasks: List[asyncio.Task] = []
        self._input_closed: bool = False

        self._pending_progress: Dict[str, str] = {}
        self.progress: Dict[str, str] = {}
        self._diagnostics: Deque[str] = deque(maxlen=diagnostic_history)

        self.frames_written: int = 0
        self.bytes_written: int = 0
        self.control_lines: int = 0
        self.diagnostic_lines: int = 0

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def running(self) -> bool:
        """Whether the process has been started and not yet exited."""
        return self._process is not None and self._process.returncode is None

    @property
    def recent_diagnostics(self) -> List[str]:
        """Most recent diagnostic lines, oldest first."""
        return list(self._diagnostics)

    async def start(self) -> None:
        """
        Spawn the encoder and start draining its output channels.

        Raises:
            EncoderStartError: If the process cannot be spawned
        """
        if self._process is not None:
            raise EncoderStartError("Encoder already started")

        logger.info(f"Starting encoder: {' '.join(self.command)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise EncoderStartError(f"Cannot execute {self.command[0]!r}: {e}") from e
        except OSError as e:
            raise EncoderStartError(f"Failed to spawn encoder: {e}") from e

        self._drain_tasks = [
            asyncio.create_task(
                self._drain(self._process.stdout, ChannelKind.CONTROL),
                name="encoder_control_drain",
            ),
            asyncio.create_task(
                self._drain(self._process.stderr, ChannelKind.DIAGNOSTIC),
                name="encoder_diagnostic_drain",
            ),
        ]
        logger.info(f"Encoder started (pid={self._process.pid})")

    async def write_frame(self, data: bytes) -> None:
        """
        Write one frame's bytes to the encoder.

        Raises:
            EncoderBrokenError: If the input channel is closed or the process exited
        """
        process = self._process
        if process is None or process.stdin is None:
            raise EncoderBrokenError("Encoder not started")
        if self._input_closed or process.stdin.is_closing():
            raise EncoderBrokenError("Encoder input already closed")
        if process.returncode is not None:
            raise EncoderBrokenError(
                f"Encoder exited with code {process.returncode}"
            )

        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EncoderBrokenError(f"Encoder input pipe broken: {e}") from e

        self.frames_written += 1
        self.bytes_written += len(data)

    async def signal_end_of_input(self) -> None:
        """Close the encoder's stdin. Safe to call more than once."""
        if self._process is None or self._input_closed:
            return
        self._input_closed = True

        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            return

        logger.info("Closing encoder input")
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # Process already gone; await_exit reports the exit code.
            pass

    async def await_exit(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Wait for the encoder to exit, escalating to terminate/kill on timeout.

        Args:
            timeout: Seconds to wait before escalating (default: exit_timeout)

        Returns:
            Process exit code, or None if never started
        """
        process = self._process
        if process is None:
            return None

        timeout = self.exit_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Encoder did not exit within {timeout:.1f}s, terminating"
            )
            self._send_signal("terminate")
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                logger.error("Encoder ignored terminate, killing")
                self._send_signal("kill")
                await process.wait()

        await self._finish_drains()

        code = process.returncode
        if code == 0:
            logger.info("Encoder exited cleanly")
        else:
            logger.warning(f"Encoder exited with code {code}")
        return code

    def _send_signal(self, method: str) -> None:
        try:
            getattr(self._process, method)()
        except ProcessLookupError:
            pass

    async def _finish_drains(self) -> None:
        if not self._drain_tasks:
            return
        done, pending = await asyncio.wait(self._drain_tasks, timeout=self.kill_timeout)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    f"Encoder drain task {task.get_name()} failed",
                    exc_info=task.exception(),
                )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._drain_tasks = []

    async def _drain(self, stream: Optional[asyncio.StreamReader], kind: ChannelKind) -> None:
        """Read lines from one inbound channel until EOF."""
        if stream is None:
            return

        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than the stream limit; the reader drops it.
                logger.warning(f"Oversized line skipped on {kind.value} channel")
                continue
            except OSError as e:
                if self.running:
                    logger.warning(f"Read error on {kind.value} channel: {e}")
                break

            if not raw:
                break

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                continue

            if kind is ChannelKind.CONTROL:
                self._handle_control(line)
            else:
                self._handle_diagnostic(line)

            if self.on_line is not None:
                try:
                    self.on_line(kind, line)
                except Exception:
                    logger.exception(f"Line handler failed on {kind.value} channel")

        logger.debug(f"Encoder {kind.value} channel closed")

    def _handle_control(self, line: str) -> None:
        self.control_lines += 1
        key, sep, value = line.partition("=")
        if not sep:
            logger.debug(f"Unrecognized control line: {line}")
            return

        key = key.strip()
        self._pending_progress[key] = value.strip()
        if key == "progress":
            self.progress = dict(self._pending_progress)
            self._pending_progress.clear()

    def _handle_diagnostic(self, line: str) -> None:
        self.diagnostic_lines += 1
        self._diagnostics.append(line)
        logger.debug(f"ffmpeg: {line}")

    def metrics(self) -> dict:
        """
        Get encoder metrics for observability.

        Returns:
            Dict with running state, counters and last progress fields
        """
        return {
            "encoder_running": self.running,
            "encoder_pid": self.pid,
            "encoder_returncode": self.returncode,
            "frames_written": self.frames_written,
            "bytes_written": self.bytes_written,
            "control_lines": self.control_lines,
            "diagnostic_lines": self.diagnostic_lines,
            "encoder_progress": dict(self.progress),
        }
