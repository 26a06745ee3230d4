"""
Encoder Command Tests
=====================
"""

from webcam_hls.config import CaptureConfig, EncoderConfig
from webcam_hls.encoder import build_ffmpeg_command


def _option(command, flag):
    return command[command.index(flag) + 1]


class TestBuildFfmpegCommand:

    def test_input_matches_negotiated_geometry(self):
        command = build_ffmpeg_command(
            CaptureConfig(width=1280, height=720, fps=25),
            EncoderConfig(),
            "http://localhost:8080",
        )
        assert command[0] == "ffmpeg"
        assert _option(command, "-f") == "rawvideo"
        assert _option(command, "-pix_fmt") == "bgr24"
        assert _option(command, "-s") == "1280x720"
        assert _option(command, "-r") == "25"
        assert _option(command, "-i") == "-"

    def test_segmenting_parameters(self):
        command = build_ffmpeg_command(
            CaptureConfig(fps=30),
            EncoderConfig(segment_duration=2, playlist_size=3),
            "http://localhost:8080",
        )
        assert _option(command, "-g") == "60"
        assert _option(command, "-sc_threshold") == "0"
        assert _option(command, "-hls_time") == "2"
        assert _option(command, "-hls_list_size") == "3"
        assert _option(command, "-hls_flags") == "delete_segments"

    def test_push_targets(self):
        command = build_ffmpeg_command(
            CaptureConfig(),
            EncoderConfig(),
            "http://relay.local:9000/",
        )
        assert _option(command, "-method") == "PUT"
        assert _option(command, "-hls_segment_filename") == "http://relay.local:9000/segment_%03d.ts"
        assert command[-1] == "http://relay.local:9000/index.m3u8"

    def test_progress_on_stdout(self):
        command = build_ffmpeg_command(CaptureConfig(), EncoderConfig(), "http://x")
        assert _option(command, "-progress") == "pipe:1"

    def test_custom_executable_and_preset(self):
        command = build_ffmpeg_command(
            CaptureConfig(),
            EncoderConfig(ffmpeg_path="/usr/local/bin/ffmpeg", preset="ultrafast"),
            "http://x",
        )
        assert command[0] == "/usr/local/bin/ffmpeg"
        assert _option(command, "-preset") == "ultrafast"

    def test_command_override(self):
        command = build_ffmpeg_command(
            CaptureConfig(),
            EncoderConfig(command=["my-encoder", "--flag"]),
            "http://x",
        )
        assert command == ["my-encoder", "--flag"]
