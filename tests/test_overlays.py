"""
Tests for the overlay timeline and drawtext filter graph.

Run with: pytest tests/test_overlays.py -v
"""

import subprocess
from unittest.mock import patch

import pytest

from errors import OverlayError
from models import EpisodeMetadata
from overlays import (
    OverlayCompositor,
    build_filter,
    build_timeline,
    drawtext_filter,
    escape_drawtext,
    thumbnail_time,
)


def _kinds(elements):
    return [e.kind for e in elements]


class TestBuildTimeline:
    """Which overlays appear, and when."""

    def test_thirty_seconds(self):
        elements = build_timeline(30.0, EpisodeMetadata(title="Episode 12"), brand="Acme")
        assert _kinds(elements) == ["intro", "title-card", "end-screen"]

        intro, title, end = elements
        assert (intro.start, intro.end, intro.text) == (0.0, 5.0, "Acme")
        assert (title.start, title.end, title.text) == (5.0, 10.0, "Episode 12")
        assert (end.start, end.end) == (20.0, 30.0)
        assert end.text == "Thanks for listening!"

    def test_one_hour_lower_thirds(self):
        meta = EpisodeMetadata(title="Ep", guest="Dr. Jane Doe", sponsor="Acme Corp")
        elements = build_timeline(3600.0, meta)
        lower = [e for e in elements if e.kind == "lower-third"]
        assert [e.start for e in lower] == [15.0, 615.0, 1215.0, 1815.0, 2415.0, 3015.0]
        assert all(e.duration == 8.0 and e.text == "Dr. Jane Doe" for e in lower)
        assert elements[-1].text == "Thanks for listening!\nSponsored by Acme Corp"

    def test_lower_third_falls_back_to_title(self):
        elements = build_timeline(100.0, EpisodeMetadata(title="Solo Show"))
        lower = [e for e in elements if e.kind == "lower-third"]
        assert len(lower) == 1
        assert lower[0].text == "Solo Show"

    def test_lower_third_must_finish_before_end_screen(self):
        # end screen at 23s; 15 + 8 fits exactly
        assert "lower-third" in _kinds(build_timeline(33.0, EpisodeMetadata()))
        assert "lower-third" not in _kinds(build_timeline(32.9, EpisodeMetadata()))

    def test_short_audio_clamps_end_screen(self):
        elements = build_timeline(4.0, EpisodeMetadata())
        end = elements[-1]
        assert end.kind == "end-screen"
        assert end.start == 0.0

    def test_all_windows_non_negative(self):
        for duration in (1.0, 10.0, 45.0, 1234.5):
            for e in build_timeline(duration, EpisodeMetadata()):
                assert e.start >= 0
                assert e.duration > 0


class TestDrawtext:
    """Escaping and filter text."""

    def test_plain_text(self):
        assert escape_drawtext("Hello") == "'Hello'"

    def test_special_characters(self):
        assert escape_drawtext("a:b") == "'a\\:b'"
        assert escape_drawtext("a\\b") == "'a\\\\b'"
        # option-level \' then quoted for the graph parser
        assert escape_drawtext("It's") == "'It\\'\\''s'"

    def test_graph_characters_stay_quoted(self):
        escaped = escape_drawtext("One, two; [three]")
        assert escaped == "'One, two; [three]'"

    def test_enable_window(self):
        element = build_timeline(30.0, EpisodeMetadata(title="T"))[1]
        f = drawtext_filter(element)
        assert f.startswith("drawtext=text='T'")
        assert "enable='gte(t,5)*lt(t,10)'" in f
        assert "expansion=none" in f
        assert "boxcolor=#6366f1@0.8" in f
        assert "x='960-text_w/2'" in f

    def test_top_left_anchor(self):
        lower = [e for e in build_timeline(100.0, EpisodeMetadata()) if e.kind == "lower-third"][0]
        f = drawtext_filter(lower)
        assert "x='90'" in f
        assert "y='890'" in f

    def test_font_file(self):
        element = build_timeline(30.0, EpisodeMetadata())[0]
        assert "fontfile='/fonts/a.ttf'" in drawtext_filter(element, "/fonts/a.ttf")
        assert "fontfile" not in drawtext_filter(element)

    def test_build_filter_chains(self):
        elements = build_timeline(30.0, EpisodeMetadata(title="A, B"))
        vf = build_filter(elements)
        assert vf.count("drawtext=") == 3


class TestOverlayCompositor:
    """ffmpeg invocation for the overlay pass and thumbnail."""

    def test_composite_command(self, tmp_path):
        compositor = OverlayCompositor(ffmpeg_bin="ffmpeg", font_file="")
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        with patch("overlays.subprocess.run", return_value=done) as run:
            compositor.composite("in.mp4", build_timeline(30.0, EpisodeMetadata()), "out.mp4")
        cmd = run.call_args[0][0]
        assert cmd[cmd.index("-i") + 1] == "in.mp4"
        assert cmd[cmd.index("-c:a") + 1] == "copy"
        assert cmd[cmd.index("-vf") + 1].startswith("drawtext=")
        assert cmd[-1] == "out.mp4"

    def test_composite_failure(self):
        failed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="No such filter")
        with patch("overlays.subprocess.run", return_value=failed):
            with pytest.raises(OverlayError) as exc_info:
                OverlayCompositor(font_file="").composite("in.mp4", [], "out.mp4")
        assert exc_info.value.returncode == 1
        assert "No such filter" in exc_info.value.stderr

    def test_thumbnail_requires_output(self, tmp_path):
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        with patch("overlays.subprocess.run", return_value=done) as run:
            with pytest.raises(OverlayError):
                OverlayCompositor(font_file="").extract_thumbnail("in.mp4", 2.5, str(tmp_path / "t.jpg"))
        cmd = run.call_args[0][0]
        assert cmd[cmd.index("-ss") + 1] == "2.5"

    def test_thumbnail_default_path(self, tmp_path):
        video = tmp_path / "job.mp4"
        (tmp_path / "job.jpg").write_bytes(b"\xff\xd8")
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        with patch("overlays.subprocess.run", return_value=done) as run:
            path = OverlayCompositor(font_file="").extract_thumbnail(str(video))
        assert path == str(tmp_path / "job.jpg")
        cmd = run.call_args[0][0]
        assert cmd[cmd.index("-ss") + 1] == "5"
        assert cmd[-1] == path

    def test_thumbnail_time(self):
        assert thumbnail_time(1800.0) == 5.0
        assert thumbnail_time(4.0) == 2.0
        assert thumbnail_time(5.0) == 2.5
