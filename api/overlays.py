"""Branded overlay timeline, drawtext filter building and the overlay pass."""

import logging
import os
import subprocess

from encoder import ENCODE_TIMEOUT_S, FFMPEG_BIN, VIDEO_CODEC
from errors import OverlayError
from models import EpisodeMetadata, OverlayElement, Position, TextStyle

logger = logging.getLogger(__name__)

BRAND_NAME = os.environ.get("BRAND_NAME", "Video Wallpaper")

INTRO_DURATION_S = 5.0
TITLE_DURATION_S = 5.0
LOWER_THIRD_START_S = 15.0
LOWER_THIRD_INTERVAL_S = 600.0
LOWER_THIRD_DURATION_S = 8.0
END_SCREEN_DURATION_S = 10.0
SAFE_MARGIN = 90
DEFAULT_THUMBNAIL_AT_S = 5.0

_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
)


def default_font_file() -> str | None:
    configured = os.environ.get("OVERLAY_FONT_FILE")
    if configured:
        return configured
    for path in _FONT_CANDIDATES:
        if os.path.exists(path):
            return path
    return None


def build_timeline(
    duration: float,
    metadata: EpisodeMetadata,
    width: int = 1920,
    height: int = 1080,
    brand: str = BRAND_NAME,
) -> list[OverlayElement]:
    center = Position(x=width / 2, y=height / 2)
    elements = [
        OverlayElement(
            kind="intro",
            start=0.0,
            duration=INTRO_DURATION_S,
            text=brand,
            position=center,
            style=TextStyle(font_size=72, color="#ffffff", background="#000000", opacity=0.9),
        ),
        OverlayElement(
            kind="title-card",
            start=INTRO_DURATION_S,
            duration=TITLE_DURATION_S,
            text=metadata.title,
            position=center,
            style=TextStyle(font_size=48, color="#ffffff", background="#6366f1", opacity=0.8),
        ),
    ]

    end_start = max(0.0, duration - END_SCREEN_DURATION_S)

    # a lower-third must finish before the end screen begins
    start = LOWER_THIRD_START_S
    while start + LOWER_THIRD_DURATION_S <= end_start:
        elements.append(
            OverlayElement(
                kind="lower-third",
                start=start,
                duration=LOWER_THIRD_DURATION_S,
                text=metadata.guest or metadata.title,
                position=Position(x=SAFE_MARGIN, y=height - SAFE_MARGIN - 100, anchor="top-left"),
                style=TextStyle(font_size=32, color="#ffffff", background="#000000", opacity=0.7),
            )
        )
        start += LOWER_THIRD_INTERVAL_S

    end_text = "Thanks for listening!"
    if metadata.sponsor:
        end_text += f"\nSponsored by {metadata.sponsor}"
    elements.append(
        OverlayElement(
            kind="end-screen",
            start=end_start,
            duration=END_SCREEN_DURATION_S,
            text=end_text,
            position=center,
            style=TextStyle(font_size=36, color="#ffffff", background="#000000", opacity=0.9),
        )
    )
    return elements


def escape_drawtext(text: str) -> str:
    """Escape text for a drawtext option inside a -vf filter graph.

    The option parser needs backslash, quote and colon escaped; the graph
    parser then sees the result single-quoted so commas, semicolons and
    brackets pass through.
    """
    value = text.replace("\\", "\\\\").replace("'", "\\'").replace(":", "\\:")
    return "'" + value.replace("'", "'\\''") + "'"


def _fmt(value: float) -> str:
    return f"{value:g}"


def _position_exprs(position: Position) -> tuple[str, str]:
    if position.anchor == "center":
        return f"{_fmt(position.x)}-text_w/2", f"{_fmt(position.y)}-text_h/2"
    return _fmt(position.x), _fmt(position.y)


def drawtext_filter(element: OverlayElement, font_file: str | None = None) -> str:
    x, y = _position_exprs(element.position)
    style = element.style
    opts = [
        f"text={escape_drawtext(element.text)}",
        "expansion=none",
        f"fontsize={style.font_size}",
        f"fontcolor={style.color}",
        f"x='{x}'",
        f"y='{y}'",
        f"enable='gte(t,{_fmt(element.start)})*lt(t,{_fmt(element.end)})'",
        "box=1",
        f"boxcolor={style.background}@{_fmt(style.opacity)}",
        "boxborderw=5",
    ]
    if font_file:
        opts.append(f"fontfile={escape_drawtext(font_file)}")
    return "drawtext=" + ":".join(opts)


def build_filter(elements: list[OverlayElement], font_file: str | None = None) -> str:
    return ",".join(drawtext_filter(e, font_file) for e in elements)


class OverlayCompositor:
    def __init__(
        self,
        ffmpeg_bin: str = FFMPEG_BIN,
        video_codec: str = VIDEO_CODEC,
        font_file: str | None = None,
        timeout: float = ENCODE_TIMEOUT_S,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.video_codec = video_codec
        self.font_file = font_file if font_file is not None else default_font_file()
        self.timeout = timeout

    def _run(self, cmd: list[str], what: str) -> None:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise OverlayError(f"ffmpeg binary not found: {self.ffmpeg_bin}") from e
        except subprocess.TimeoutExpired as e:
            raise OverlayError(f"ffmpeg {what} timed out after {self.timeout:.0f}s") from e
        if result.returncode != 0:
            raise OverlayError(
                f"ffmpeg {what} failed with exit code {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr[-2000:],
            )

    def composite(self, video_path: str, elements: list[OverlayElement], output_path: str) -> str:
        vf = build_filter(elements, self.font_file)
        cmd = [
            self.ffmpeg_bin,
            "-i", video_path,
            "-vf", vf,
            "-c:v", self.video_codec,
            "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            "-y",
            output_path,
        ]
        logger.info(f"Compositing {len(elements)} overlay elements onto {video_path}")
        self._run(cmd, "overlay")
        return output_path

    def extract_thumbnail(
        self,
        video_path: str,
        at_time: float = DEFAULT_THUMBNAIL_AT_S,
        output_path: str | None = None,
    ) -> str:
        """Grab one JPEG frame; written next to the video unless output_path is given."""
        if output_path is None:
            output_path = os.path.splitext(video_path)[0] + ".jpg"
        cmd = [
            self.ffmpeg_bin,
            "-ss", _fmt(max(0.0, at_time)),
            "-i", video_path,
            "-frames:v", "1",
            "-q:v", "2",
            "-y",
            output_path,
        ]
        logger.info(f"Extracting thumbnail at {at_time:.2f}s from {video_path}")
        self._run(cmd, "thumbnail")
        if not os.path.exists(output_path):
            raise OverlayError(f"ffmpeg produced no thumbnail at {at_time:.2f}s")
        return output_path


def thumbnail_time(duration: float, preferred: float = DEFAULT_THUMBNAIL_AT_S) -> float:
    """Preferred timestamp, pulled inside videos shorter than it."""
    if duration <= preferred:
        return duration / 2
    return preferred
