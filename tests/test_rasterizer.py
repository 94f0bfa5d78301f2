"""
Tests for SVG frame drawing and PNG rasterization.

Run with: pytest tests/test_rasterizer.py -v
"""

import io
import logging
import sys
import types

import pytest
from PIL import Image

import rasterizer
from audio import SimulatedFeatureExtractor
from models import AudioAnalysis
from rasterizer import build_svg, fallback_png, hsl_hex, rasterize, write_frame
from synthesizer import synthesize


def _flat(duration, rms):
    n = int(duration * 44100 / 1024)
    return AudioAnalysis(duration=duration, rms=[rms] * n, frequencies=[200.0] * n, vocal_energy=[0.5] * n, silence=[False] * n)


def _size(png: bytes):
    with Image.open(io.BytesIO(png)) as img:
        return img.size


class TestHslHex:
    def test_primaries(self):
        assert hsl_hex(0, 100, 50) == "#ff0000"
        assert hsl_hex(120, 100, 50) == "#00ff00"
        assert hsl_hex(240, 100, 50) == "#0000ff"

    def test_greys(self):
        assert hsl_hex(0, 0, 0) == "#000000"
        assert hsl_hex(0, 0, 100) == "#ffffff"
        # lightness above 100 is clamped
        assert hsl_hex(200, 0, 140) == "#ffffff"

    def test_hue_wraps(self):
        assert hsl_hex(360, 100, 50) == hsl_hex(0, 100, 50)


class TestBuildSvg:
    """Frame description to SVG text."""

    @pytest.mark.parametrize("style_name", ["monochrome", "synthwave", "painterly"])
    def test_deterministic(self, styles, style_name):
        analysis = SimulatedFeatureExtractor(seed=9).simulate(5.0)
        d = synthesize(2.0, analysis, styles.get(style_name), 77)
        assert build_svg(d, 320, 180) == build_svg(d, 320, 180)

    def test_declares_dimensions(self, styles):
        d = synthesize(0.0, _flat(1.0, 0.1), styles.get("synthwave"), 1)
        svg = build_svg(d, 640, 360)
        assert svg.startswith('<svg width="640" height="360"')

    def test_pulse_always_present(self, styles):
        silent = synthesize(0.0, _flat(1.0, 0.0), styles.get("monochrome"), 1)
        svg = build_svg(silent, 320, 180)
        assert 'cx="160.00" cy="90.00"' in svg

    def test_monochrome_jump_cut_flash(self, styles):
        loud = synthesize(0.5, _flat(1.0, 0.3), styles.get("monochrome"), 1)
        quiet = synthesize(0.5, _flat(1.0, 0.1), styles.get("monochrome"), 1)
        flash = 'fill="#ffffff" opacity="0.1"'
        assert flash in build_svg(loud, 320, 180)
        assert flash not in build_svg(quiet, 320, 180)

    def test_film_grain_only_when_audible(self, styles):
        grainy = synthesize(0.5, _flat(1.0, 0.2), styles.get("monochrome"), 1)
        assert "filmGrain" in build_svg(grainy, 320, 180)
        clean = synthesize(0.5, _flat(1.0, 0.2), styles.get("synthwave"), 1)
        assert "filmGrain" not in build_svg(clean, 320, 180)

    def test_painterly_uses_palette(self, styles):
        d = synthesize(3.0, _flat(5.0, 0.2), styles.get("painterly"), 5)
        svg = build_svg(d, 320, 180)
        assert "<ellipse" in svg
        assert "#8B4513" in svg


class TestRasterize:
    """PNG output, with and without a working SVG renderer."""

    def test_exact_dimensions(self, styles):
        d = synthesize(1.0, _flat(2.0, 0.2), styles.get("synthwave"), 3)
        assert _size(rasterize(d, 160, 90)) == (160, 90)

    def test_fallback_when_renderer_fails(self, styles, monkeypatch):
        broken = types.ModuleType("cairosvg")

        def svg2png(**kwargs):
            raise RuntimeError("renderer exploded")

        broken.svg2png = svg2png
        monkeypatch.setitem(sys.modules, "cairosvg", broken)

        d = synthesize(1.0, _flat(2.0, 0.2), styles.get("painterly"), 3)
        png = rasterize(d, 200, 120)
        assert png == fallback_png(200, 120)
        assert _size(png) == (200, 120)

    def test_fallback_png_gradient(self):
        with Image.open(io.BytesIO(fallback_png(300, 200))) as img:
            rgb = img.convert("RGB")
            assert rgb.size == (300, 200)
            # corners carry the two gradient endpoints
            assert rgb.getpixel((0, 0)) == (0x63, 0x66, 0xF1)
            r, g, b = rgb.getpixel((299, 199))
            assert abs(r - 0x8B) <= 2 and abs(g - 0x5C) <= 2 and abs(b - 0xF6) <= 2

    def test_write_frame(self, styles, tmp_path):
        d = synthesize(0.0, _flat(1.0, 0.1), styles.get("monochrome"), 3)
        path = tmp_path / "frame_000000.png"
        write_frame(d, str(path), 64, 36)
        assert _size(path.read_bytes()) == (64, 36)

    def test_missing_renderer_warns_once(self, styles, tmp_path, monkeypatch, caplog):
        monkeypatch.setitem(sys.modules, "cairosvg", None)
        monkeypatch.setattr(rasterizer, "_renderer_unavailable_logged", False)
        analysis = _flat(1.0, 0.2)
        style = styles.get("synthwave")

        with caplog.at_level(logging.WARNING, logger="rasterizer"):
            for i in range(5):
                d = synthesize(i / 30, analysis, style, 3)
                assert write_frame(d, str(tmp_path / f"frame_{i:06d}.png"), 64, 36) is True

        warnings = [r for r in caplog.records if r.name == "rasterizer" and r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "cairosvg unavailable" in warnings[0].getMessage()
        assert (tmp_path / "frame_000004.png").read_bytes() == fallback_png(64, 36)
