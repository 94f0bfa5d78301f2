"""Turn frame descriptors into PNG frames.

Frames are drawn as SVG and rasterized with cairosvg. A rasterization failure
never stops a render: the frame is replaced by a generated placeholder.
"""

import colorsys
import functools
import io
import logging
import math
import random

import numpy as np
from models import FrameDescriptor
from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "Video Wallpaper Generator"
FALLBACK_COLORS = ("#6366f1", "#8b5cf6")

GEOMETRY_RMS_THRESHOLD = 0.12

_renderer_unavailable_logged = False


def hsl_hex(hue: float, saturation: float, lightness: float) -> str:
    lightness = max(0.0, min(100.0, lightness))
    r, g, b = colorsys.hls_to_rgb((hue % 360) / 360.0, lightness / 100.0, saturation / 100.0)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def _f(value: float) -> str:
    return f"{value:.2f}"


def _default_shapes(d: FrameDescriptor, width: int, height: int, rng: random.Random) -> list[str]:
    p = d.params
    shapes = []

    for i in range(4 + rng.randint(0, 3)):
        x = width * 0.2 + i * width * 0.15 + rng.uniform(-0.05, 0.05) * width
        y = height * 0.5 + math.sin(d.time + i) * 50 * p.vocal_multiplier
        radius = 20 + p.energy_multiplier * 30
        opacity = min(1.0, 0.3 + p.energy_multiplier * 0.2)
        fill = hsl_hex(p.hue + i * 30, p.saturation, p.brightness)
        shapes.append(f'<circle cx="{_f(x)}" cy="{_f(y)}" r="{_f(radius)}" fill="{fill}" opacity="{_f(opacity)}"/>')

    for i in range(3):
        y1 = height * 0.3 + i * height * 0.2
        y2 = y1 + math.sin(d.time + i) * 100
        stroke = hsl_hex(p.hue + i * 60, p.saturation, p.brightness)
        shapes.append(
            f'<line x1="0" y1="{_f(y1)}" x2="{width}" y2="{_f(y2)}" stroke="{stroke}" '
            f'stroke-width="{_f(2 + p.motion_intensity * 3)}" opacity="0.7"/>'
        )
    return shapes


def _jump_cut_shapes(d: FrameDescriptor, width: int, height: int, rng: random.Random) -> list[str]:
    rms = d.audio.rms
    cut = d.params.jump_cut_intensity
    t = d.time
    shapes = []

    for i in range(math.floor(3 + rms * 8)):
        # without a cut, elements flicker in and out
        if cut <= 0 and rng.random() <= 0.3:
            continue
        x = width * 0.1 + i * width * 0.2 + rms * 100 * math.sin(t + i)
        y = height * 0.3 + i * height * 0.15 + rms * 50 * math.cos(t + i * 2)
        radius = 15 + rms * 40 + cut * 20
        opacity = min(1.0, 0.2 + rms * 0.6 + cut * 0.3)
        fill = "#ffffff" if rms > 0.2 else "#000000"
        stroke = "#000000" if rms > 0.15 else "#ffffff"
        shapes.append(
            f'<circle cx="{_f(x)}" cy="{_f(y)}" r="{_f(radius)}" fill="{fill}" opacity="{_f(opacity)}" '
            f'stroke="{stroke}" stroke-width="{_f(1 + rms * 3)}"/>'
        )

    for i in range(math.floor(2 + rms * 6)):
        if cut <= 0 and rng.random() <= 0.4:
            continue
        y1 = height * 0.2 + i * height * 0.25
        y2 = y1 + math.sin(t + i) * (50 + rms * 150)
        opacity = min(1.0, 0.3 + rms * 0.5 + cut * 0.4)
        stroke = "#ffffff" if rms > 0.18 else "#000000"
        shapes.append(
            f'<line x1="0" y1="{_f(y1)}" x2="{width}" y2="{_f(y2)}" stroke="{stroke}" '
            f'stroke-width="{_f(1 + rms * 5 + cut * 3)}" opacity="{_f(opacity)}"/>'
        )

    if rms > GEOMETRY_RMS_THRESHOLD:
        size = 20 + rms * 60
        opacity = min(1.0, 0.4 + rms * 0.4)
        light, dark = ("#ffffff", "#000000") if rms > 0.2 else ("#000000", "#ffffff")
        for i in range(math.floor(2 + rms * 4)):
            x = width * 0.2 + i * width * 0.3
            y = height * 0.4 + i * height * 0.2
            if i % 2 == 0:
                points = f"{_f(x - size)},{_f(y + size)} {_f(x + size)},{_f(y + size)} {_f(x)},{_f(y - size)}"
                shapes.append(
                    f'<polygon points="{points}" fill="{light}" opacity="{_f(opacity)}" '
                    f'stroke="{dark}" stroke-width="{_f(1 + rms * 2)}"/>'
                )
            else:
                shapes.append(
                    f'<rect x="{_f(x - size)}" y="{_f(y - size)}" width="{_f(size * 2)}" height="{_f(size * 2)}" '
                    f'fill="{dark}" opacity="{_f(opacity)}" stroke="{light}" stroke-width="{_f(1 + rms * 2)}"/>'
                )

    if cut > 0:
        shapes.append(f'<rect x="0" y="0" width="{width}" height="{height}" fill="#ffffff" opacity="0.1"/>')
    return shapes


def _neon_grid(d: FrameDescriptor, width: int, height: int, rng: random.Random) -> list[str]:
    p = d.params
    horizon = height * 0.6
    color = hsl_hex(p.hue + 180, p.saturation, min(100.0, p.brightness + 10))
    shapes = []
    scroll = (d.time * 40 * p.energy_multiplier) % 40
    for i in range(8):
        y = horizon + (i * 40 + scroll) ** 1.15
        if y > height:
            break
        shapes.append(
            f'<line x1="0" y1="{_f(y)}" x2="{width}" y2="{_f(y)}" stroke="{color}" stroke-width="2" opacity="0.5"/>'
        )
    for i in range(-6, 7):
        x = width / 2 + i * width * 0.08
        shapes.append(
            f'<line x1="{_f(width / 2)}" y1="{_f(horizon)}" x2="{_f(x + i * width * 0.2)}" y2="{height}" '
            f'stroke="{color}" stroke-width="1.5" opacity="0.4"/>'
        )
    return shapes + _default_shapes(d, width, height, rng)


def _painterly_washes(d: FrameDescriptor, width: int, height: int, rng: random.Random) -> list[str]:
    shapes = []
    for i in range(3 + rng.randint(0, 2)):
        color = d.style.palette[i % len(d.style.palette)]
        cx = width * rng.uniform(0.1, 0.9) + math.sin(d.time * 0.2 + i) * 40
        cy = height * rng.uniform(0.2, 0.8)
        rx = width * rng.uniform(0.15, 0.35) * d.params.vocal_multiplier
        ry = height * rng.uniform(0.1, 0.25)
        shapes.append(
            f'<ellipse cx="{_f(cx)}" cy="{_f(cy)}" rx="{_f(rx)}" ry="{_f(ry)}" fill="{color}" opacity="0.25"/>'
        )
    return shapes + _default_shapes(d, width, height, rng)


def _shapes_for(d: FrameDescriptor):
    if d.style.motion == "jumpy":
        return _jump_cut_shapes
    if d.style.motion == "drift":
        return _neon_grid
    if d.style.texture == "painterly":
        return _painterly_washes
    return _default_shapes


def build_svg(d: FrameDescriptor, width: int, height: int) -> str:
    p = d.params
    rng = random.Random(d.seed)

    bg = hsl_hex(p.hue, p.saturation, p.brightness)
    accent = hsl_hex(p.hue + 180, p.saturation, p.brightness + 20)
    shapes = _shapes_for(d)(d, width, height, rng)

    grain = ""
    grain_attr = ""
    if p.film_grain_intensity > 0:
        grain = (
            '<filter id="filmGrain">'
            '<feTurbulence type="fractalNoise" baseFrequency="0.8" numOctaves="4" result="noise"/>'
            f'<feColorMatrix type="matrix" values="1 0 0 0 0 0 1 0 0 0 0 0 1 0 0 0 0 0 {_f(p.film_grain_intensity)} 0"/>'
            "</filter>"
        )
        grain_attr = ' filter="url(#filmGrain)"'

    pulse = (
        f'<circle cx="{_f(width / 2)}" cy="{_f(height / 2)}" r="{_f(50 * p.energy_multiplier)}" '
        f'fill="none" stroke="{accent}" stroke-width="{_f(2 * p.motion_intensity)}" opacity="0.6"/>'
    )

    return (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">'
        "<defs>"
        '<radialGradient id="bgGradient">'
        f'<stop offset="0%" stop-color="{bg}" stop-opacity="1"/>'
        f'<stop offset="100%" stop-color="{accent}" stop-opacity="0.3"/>'
        "</radialGradient>"
        f"{grain}"
        "</defs>"
        f'<rect width="{width}" height="{height}" fill="#000000"/>'
        f'<rect width="{width}" height="{height}" fill="url(#bgGradient)"{grain_attr}/>'
        f"{''.join(shapes)}"
        f"{pulse}"
        "</svg>"
    )


def _font(size: int):
    for path in (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ):
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    return ImageFont.load_default()


@functools.lru_cache(maxsize=8)
def fallback_png(width: int, height: int, text: str = FALLBACK_TEXT) -> bytes:
    """Diagonal gradient with a centred caption."""
    start = Image.new("RGB", (width, height), FALLBACK_COLORS[0])
    end = Image.new("RGB", (width, height), FALLBACK_COLORS[1])
    # 0 at the top-left corner, 255 at the bottom-right
    ramp = np.add.outer(np.linspace(0, 127.5, height), np.linspace(0, 127.5, width))
    mask = Image.fromarray(ramp.astype(np.uint8))
    img = Image.composite(end, start, mask)

    draw = ImageDraw.Draw(img)
    font = _font(max(12, height // 22))
    bbox = draw.textbbox((0, 0), text, font=font)
    x = (width - (bbox[2] - bbox[0])) // 2
    y = (height - (bbox[3] - bbox[1])) // 2
    draw.text((x, y), text, font=font, fill="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _render(d: FrameDescriptor, width: int, height: int) -> tuple[bytes, bool]:
    """PNG bytes plus whether the placeholder stood in for the real frame."""
    global _renderer_unavailable_logged
    try:
        # cairosvg loads libcairo on import, which can itself fail
        import cairosvg
    except (ImportError, OSError) as e:
        if not _renderer_unavailable_logged:
            logger.warning(f"cairosvg unavailable, frames will use the placeholder: {e}")
            _renderer_unavailable_logged = True
        return fallback_png(width, height), True

    try:
        png = cairosvg.svg2png(
            bytestring=build_svg(d, width, height).encode("utf-8"),
            output_width=width,
            output_height=height,
        )
    except Exception as e:
        logger.debug(f"Frame {d.frame_index} failed to rasterize, using placeholder: {e}")
        return fallback_png(width, height), True
    return png, False


def rasterize(d: FrameDescriptor, width: int, height: int) -> bytes:
    return _render(d, width, height)[0]


def write_frame(d: FrameDescriptor, path: str, width: int, height: int) -> bool:
    """Write one frame PNG. Returns True if the placeholder was written."""
    png, placeholder = _render(d, width, height)
    with open(path, "wb") as f:
        f.write(png)
    return placeholder
