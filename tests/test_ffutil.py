"""Unit tests for ffutil — rate parsing, line streaming and subprocess wrappers."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from framemend.ffutil import (
    FFmpegNotFoundError,
    check_ffmpeg,
    iter_lines,
    open_line_stream,
    parse_fps,
    probe,
)


# ---------------------------------------------------------------------------
# parse_fps (pure parsing)
# ---------------------------------------------------------------------------

class TestParseFps:
    def test_ntsc_fraction(self):
        assert parse_fps("30000/1001") == pytest.approx(29.97002997)

    def test_integer(self):
        assert parse_fps("25") == 25.0

    def test_decimal_with_whitespace(self):
        assert parse_fps("  29.97 ") == pytest.approx(29.97)

    def test_zero_numerator_is_returned(self):
        # non-positive rates are passed through; callers reject them
        assert parse_fps("0/5") == 0.0

    def test_zero_denominator(self):
        assert parse_fps("30/0") is None

    def test_empty_and_none(self):
        assert parse_fps("") is None
        assert parse_fps(None) is None

    def test_garbage(self):
        assert parse_fps("abc") is None
        assert parse_fps("abc/1001") is None

    def test_numeric_prefix(self):
        assert parse_fps("24fps") == 24.0

    def test_negative_fraction_keeps_sign(self):
        assert parse_fps("-30/1") == -30.0

    def test_overflow_is_not_finite(self):
        assert parse_fps("1e999") is None

    def test_more_than_one_slash(self):
        assert parse_fps("30/1/2") == 30.0


# ---------------------------------------------------------------------------
# iter_lines (pure buffering)
# ---------------------------------------------------------------------------

class TestIterLines:
    def test_lines_split_across_chunks(self):
        chunks = [b"fre", b"eze_start: 1.5\nfreeze_", b"end: 2.0\r\n"]
        assert list(iter_lines(chunks)) == ["freeze_start: 1.5", "freeze_end: 2.0"]

    def test_partial_tail_is_not_emitted(self):
        assert list(iter_lines([b"one\ntw", b"o"])) == ["one"]

    def test_empty_lines_preserved(self):
        assert list(iter_lines([b"a\n\nb\n"])) == ["a", "", "b"]

    def test_invalid_utf8_is_replaced(self):
        assert list(iter_lines([b"\xff\n"])) == ["�"]

    def test_no_chunks(self):
        assert list(iter_lines([])) == []


# ---------------------------------------------------------------------------
# open_line_stream (mocked Popen)
# ---------------------------------------------------------------------------

class TestOpenLineStream:
    @patch("framemend.ffutil.subprocess.Popen")
    def test_streams_stderr_lines_to_observer(self, mock_popen, make_proc):
        proc = make_proc(stderr=b"line one\nline two\n", returncode=0)
        mock_popen.return_value = proc
        seen: list[str] = []

        with open_line_stream(["ffmpeg"], source="stderr", on_line=seen.append) as stream:
            lines = list(stream)
            code = stream.wait()

        assert lines == ["line one", "line two"]
        assert seen == lines
        assert code == 0

    @patch("framemend.ffutil.subprocess.Popen")
    def test_streams_stdout(self, mock_popen, make_proc):
        mock_popen.return_value = make_proc(stdout=b"#format: frame checksums\n0,0,0,1,10,abc\n")

        with open_line_stream(["ffmpeg"], source="stdout") as stream:
            lines = list(stream)

        assert lines == ["#format: frame checksums", "0,0,0,1,10,abc"]

    @patch("framemend.ffutil.subprocess.Popen", side_effect=FileNotFoundError("nope"))
    def test_launch_failure(self, mock_popen):
        with pytest.raises(FFmpegNotFoundError, match="could not start"):
            with open_line_stream(["/missing/ffmpeg"]):
                pass

    @patch("framemend.ffutil.subprocess.Popen")
    def test_kills_running_process_on_error(self, mock_popen, make_proc):
        proc = make_proc(stderr=b"x\n")
        proc.poll.return_value = None
        mock_popen.return_value = proc

        with pytest.raises(RuntimeError, match="boom"):
            with open_line_stream(["ffmpeg"]):
                raise RuntimeError("boom")

        proc.kill.assert_called_once()
        proc.wait.assert_called()
        assert proc.stderr.closed

    @patch("framemend.ffutil.subprocess.Popen")
    def test_finished_process_is_not_killed(self, mock_popen, make_proc):
        proc = make_proc(stderr=b"")
        mock_popen.return_value = proc

        with open_line_stream(["ffmpeg"]) as stream:
            list(stream)

        proc.kill.assert_not_called()

    def test_bad_source(self):
        with pytest.raises(ValueError, match="source"):
            with open_line_stream(["ffmpeg"], source="stdin"):
                pass


# ---------------------------------------------------------------------------
# check_ffmpeg
# ---------------------------------------------------------------------------

class TestCheckFfmpeg:
    @patch("framemend.ffutil.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_found(self, mock_which):
        check_ffmpeg()

    @patch("framemend.ffutil.shutil.which", return_value=None)
    def test_missing(self, mock_which):
        with pytest.raises(FFmpegNotFoundError, match="not found"):
            check_ffmpeg("/opt/ffmpeg/bin/ffmpeg")


# ---------------------------------------------------------------------------
# ffprobe metadata (mocked subprocess)
# ---------------------------------------------------------------------------

PROBE_JSON = {
    "format": {"duration": "60.0"},
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30000/1001",
            "avg_frame_rate": "30000/1001",
            "nb_frames": "1798",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "44100",
        },
    ],
}


class TestFfprobeMetadata:
    @patch("framemend.ffutil.subprocess.run")
    def test_basic(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(PROBE_JSON))
        result = probe(Path("video.mp4"))
        assert result.duration == 60.0
        assert result.width == 1920
        assert result.fps == pytest.approx(29.97002997)
        assert result.frame_rate == "30000/1001"
        assert result.frame_count == 1798

    @patch("framemend.ffutil.subprocess.run")
    def test_falls_back_to_avg_frame_rate(self, mock_run):
        data = {
            "format": {"duration": "10.0"},
            "streams": [
                {
                    "codec_type": "video",
                    "codec_name": "vp9",
                    "width": 640,
                    "height": 360,
                    "r_frame_rate": "0/0",
                    "avg_frame_rate": "25/1",
                },
            ],
        }
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        result = probe(Path("video.webm"))
        assert result.fps == 25.0
        assert result.frame_count is None

    @patch("framemend.ffutil.subprocess.run")
    def test_no_video_stream(self, mock_run):
        data = {
            "format": {"duration": "60.0"},
            "streams": [
                {
                    "codec_type": "audio",
                    "codec_name": "aac",
                    "sample_rate": "44100",
                },
            ],
        }
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        with pytest.raises(ValueError, match="No video stream"):
            probe(Path("audio.m4a"))
