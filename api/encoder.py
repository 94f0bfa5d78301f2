import logging
import os
import subprocess

from errors import EncodeError

logger = logging.getLogger(__name__)

FFMPEG_BIN = os.environ.get("FFMPEG_BIN", "ffmpeg")
VIDEO_CODEC = os.environ.get("VIDEO_CODEC", "libx264")
AUDIO_CODEC = os.environ.get("AUDIO_CODEC", "aac")
ENCODE_TIMEOUT_S = float(os.environ.get("ENCODE_TIMEOUT_S", "3600"))

PIXEL_FORMAT = "yuv420p"
FRAME_PATTERN = "frame_%06d.png"

EBML_MAGIC = b"\x1a\x45\xdf\xa3"


def frame_filename(index: int) -> str:
    return FRAME_PATTERN % index


def has_container_signature(path: str) -> bool:
    """True if the file starts like an MP4/MOV (ftyp box) or Matroska/WebM file."""
    try:
        with open(path, "rb") as f:
            head = f.read(12)
    except OSError:
        return False
    if len(head) >= 8 and head[4:8] == b"ftyp":
        return True
    return head.startswith(EBML_MAGIC)


class VideoEncoder:
    """Mux numbered PNG frames with the source audio in one ffmpeg pass."""

    def __init__(
        self,
        ffmpeg_bin: str = FFMPEG_BIN,
        video_codec: str = VIDEO_CODEC,
        audio_codec: str = AUDIO_CODEC,
        timeout: float = ENCODE_TIMEOUT_S,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.timeout = timeout

    def build_command(self, frames_dir: str, audio_path: str, fps: int, output_path: str) -> list[str]:
        return [
            self.ffmpeg_bin,
            "-framerate", str(fps),
            "-i", os.path.join(frames_dir, FRAME_PATTERN),
            "-i", audio_path,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", self.video_codec,
            "-c:a", self.audio_codec,
            "-pix_fmt", PIXEL_FORMAT,
            "-r", str(fps),
            "-shortest",
            "-y",
            output_path,
        ]

    def encode(self, frames_dir: str, audio_path: str, fps: int, output_path: str) -> str:
        cmd = self.build_command(frames_dir, audio_path, fps, output_path)
        logger.info(f"Encoding {frames_dir} + {audio_path} -> {output_path} at {fps}fps")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise EncodeError(f"Encoder binary not found: {self.ffmpeg_bin}") from e
        except subprocess.TimeoutExpired as e:
            raise EncodeError(f"Encoding timed out after {self.timeout:.0f}s") from e

        if result.returncode != 0:
            raise EncodeError(
                f"ffmpeg encode failed with exit code {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr[-2000:],
            )

        if not has_container_signature(output_path):
            raise EncodeError(f"Encoder output is not a recognisable video container: {output_path}")

        return output_path
