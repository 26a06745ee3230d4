"""
Orchestrator Tests
==================

Startup/shutdown ordering and fatal-error handling with test doubles.
"""

import asyncio
import sys

import pytest

from conftest import RecordingBridge, ScriptedFrameSource, python_command
from webcam_hls.capture import FrameSourceError
from webcam_hls.encoder import EncoderBridge, EncoderStartError
from webcam_hls.pipeline import Orchestrator, PipelineError, PipelineState
from webcam_hls.store import LiveSegmentStore


def _orchestrator(source, bridge, **kwargs):
    return Orchestrator(source, bridge, LiveSegmentStore(), **kwargs)


class TestFrameLoop:

    def test_frames_copied_until_end_of_input(self, blank_image):
        source = ScriptedFrameSource([blank_image] * 5)
        bridge = RecordingBridge()
        orchestrator = _orchestrator(source, bridge)

        async def scenario():
            await orchestrator.start()
            await asyncio.wait_for(orchestrator.wait(), timeout=5)

        asyncio.run(scenario())
        assert len(bridge.frames) == 5
        assert bridge.frames[0] == blank_image.tobytes()
        assert orchestrator.state is PipelineState.FINISHED
        assert bridge.calls == ["start", "end_of_input", "await_exit"]
        assert source.calls == ["open", "close"]

    def test_transient_failures_are_skipped(self, blank_image):
        source = ScriptedFrameSource([blank_image, None, None, blank_image])
        bridge = RecordingBridge()
        fatal = []
        orchestrator = _orchestrator(
            source, bridge, max_consecutive_failures=3, on_fatal=fatal.append,
        )

        async def scenario():
            await orchestrator.start()
            await asyncio.wait_for(orchestrator.wait(), timeout=5)

        asyncio.run(scenario())
        assert len(bridge.frames) == 2
        assert orchestrator.read_failures == 2
        assert orchestrator.consecutive_failures == 0
        assert fatal == []

    def test_consecutive_failure_threshold_is_fatal(self, blank_image):
        source = ScriptedFrameSource([blank_image], endless_failures=True)
        bridge = RecordingBridge()
        fatal = []
        orchestrator = _orchestrator(
            source, bridge, max_consecutive_failures=10, on_fatal=fatal.append,
        )

        async def scenario():
            await orchestrator.start()
            await asyncio.wait_for(orchestrator.wait(), timeout=5)

        asyncio.run(scenario())
        assert orchestrator.failed
        assert orchestrator.read_failures == 10
        assert len(fatal) == 1
        assert "consecutive" in fatal[0]
        assert bridge.calls == ["start", "end_of_input", "await_exit"]
        assert source.calls == ["open", "close"]

    def test_broken_encoder_is_fatal_and_not_retried(self, blank_image):
        source = ScriptedFrameSource([blank_image] * 10)
        bridge = RecordingBridge(break_after=3)
        fatal = []
        orchestrator = _orchestrator(source, bridge, on_fatal=fatal.append)

        async def scenario():
            await orchestrator.start()
            await asyncio.wait_for(orchestrator.wait(), timeout=5)

        asyncio.run(scenario())
        assert orchestrator.failed
        assert len(bridge.frames) == 3
        assert orchestrator.frames_read == 4
        assert "Cannot write frame 3" in orchestrator.fatal_reason
        assert fatal == [orchestrator.fatal_reason]
        assert bridge.calls == ["start", "end_of_input", "await_exit"]

    def test_source_error_mid_stream_is_fatal(self, blank_image):
        class FailingSource(ScriptedFrameSource):
            def read_frame(self):
                raise FrameSourceError("device unplugged")

        source = FailingSource([])
        bridge = RecordingBridge()
        orchestrator = _orchestrator(source, bridge)

        async def scenario():
            await orchestrator.start()
            await asyncio.wait_for(orchestrator.wait(), timeout=5)

        asyncio.run(scenario())
        assert orchestrator.failed
        assert "device unplugged" in orchestrator.fatal_reason


class TestStartup:

    def test_source_open_failure(self):
        class ClosedSource(ScriptedFrameSource):
            def open(self):
                raise FrameSourceError("no camera")

        bridge = RecordingBridge()
        fatal = []
        orchestrator = _orchestrator(ClosedSource([]), bridge, on_fatal=fatal.append)

        with pytest.raises(PipelineError):
            asyncio.run(orchestrator.start())
        assert orchestrator.failed
        assert "start" not in bridge.calls
        assert len(fatal) == 1

    def test_encoder_start_failure_closes_source(self):
        class NoEncoder(RecordingBridge):
            async def start(self):
                raise EncoderStartError("ffmpeg not found")

        source = ScriptedFrameSource([])
        orchestrator = _orchestrator(source, NoEncoder())

        with pytest.raises(PipelineError, match="ffmpeg not found"):
            asyncio.run(orchestrator.start())
        assert source.calls == ["open", "close"]

    def test_start_twice_rejected(self, blank_image):
        orchestrator = _orchestrator(
            ScriptedFrameSource([blank_image], endless_failures=True), RecordingBridge(),
        )

        async def scenario():
            await orchestrator.start()
            try:
                with pytest.raises(PipelineError):
                    await orchestrator.start()
            finally:
                await orchestrator.stop()

        asyncio.run(scenario())


class TestShutdown:

    def test_stop_running_pipeline(self, blank_image):
        source = ScriptedFrameSource([blank_image], endless_failures=True)
        bridge = RecordingBridge()
        orchestrator = _orchestrator(source, bridge)

        async def scenario():
            await orchestrator.start()
            await asyncio.sleep(0.05)
            await orchestrator.stop()

        asyncio.run(scenario())
        assert orchestrator.state is PipelineState.STOPPED
        assert bridge.calls == ["start", "end_of_input", "await_exit"]
        assert source.calls == ["open", "close"]

    def test_stop_is_idempotent(self, blank_image):
        bridge = RecordingBridge()
        orchestrator = _orchestrator(ScriptedFrameSource([blank_image]), bridge)

        async def scenario():
            await orchestrator.start()
            await orchestrator.wait()
            await orchestrator.stop()
            await orchestrator.stop()

        asyncio.run(scenario())
        assert bridge.calls.count("await_exit") == 1
        assert orchestrator.state is PipelineState.FINISHED

    def test_metrics(self, blank_image):
        orchestrator = _orchestrator(ScriptedFrameSource([blank_image] * 2), RecordingBridge())

        async def scenario():
            await orchestrator.start()
            await orchestrator.wait()

        asyncio.run(scenario())
        metrics = orchestrator.metrics()
        assert metrics["pipeline_state"] == "finished"
        assert metrics["frames_read"] == 2
        assert metrics["frames_written"] == 2


# Child that never reads stdin and never exits on its own
STUBBORN_ENCODER = "import time; time.sleep(30)"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestShutdownHandshake:
    """stop() always leaves the encoder reaped, even mid-teardown."""

    def test_stop_waits_for_teardown_in_progress(self):
        source = ScriptedFrameSource([])
        bridge = EncoderBridge(python_command(STUBBORN_ENCODER), exit_timeout=1.0)
        orchestrator = _orchestrator(source, bridge)

        async def scenario():
            await orchestrator.start()
            # Source is exhausted at once; the loop is now awaiting encoder exit
            await asyncio.sleep(0.2)
            await orchestrator.stop(timeout=0.1)

        asyncio.run(scenario())
        assert bridge.running is False
        assert bridge.returncode == -15
        assert orchestrator.state is PipelineState.FINISHED
        assert source.calls == ["open", "close"]

    def test_interrupted_teardown_is_repeated_by_stop(self):
        source = ScriptedFrameSource([])
        bridge = EncoderBridge(python_command(STUBBORN_ENCODER), exit_timeout=1.0)
        orchestrator = _orchestrator(source, bridge)

        async def scenario():
            await orchestrator.start()
            await asyncio.sleep(0.2)
            orchestrator.loop_task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await orchestrator.loop_task
            assert bridge.running
            await orchestrator.stop()

        asyncio.run(scenario())
        assert bridge.running is False
        assert bridge.returncode == -15
        assert source.calls == ["open", "close"]
