"""
Pytest fixtures for the render pipeline tests.

Most tests run without ffmpeg: the encoder and compositor are replaced by
fakes that write files with a real container signature. Tests that shell out
to ffmpeg/ffprobe are marked with @pytest.mark.requires_ffmpeg and skipped
when the binaries are not on PATH.
"""

import math
import os
import shutil
import struct
import wave

import pytest

from audio import SimulatedFeatureExtractor
from errors import EncodeError, OverlayError
from jobs import JobRegistry
from models import AudioAnalysis
from orchestrator import RenderOrchestrator
from progress import ProgressTracker
from results import ResultStore
from styles import StyleRegistry

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not available",
)

TEST_WIDTH = 64
TEST_HEIGHT = 36

MP4_HEADER = b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00isomiso2"


def write_wav(path, duration: float, freq: float = 220.0, sample_rate: int = 44100, amplitude: float = 0.5) -> str:
    """16-bit mono sine wave."""
    n = int(duration * sample_rate)
    frames = b"".join(
        struct.pack("<h", int(amplitude * 32767 * math.sin(2 * math.pi * freq * i / sample_rate)))
        for i in range(n)
    )
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(frames)
    return str(path)


class FakeExtractor:
    """Returns simulated features for a fixed duration without touching the file."""

    def __init__(self, duration: float, seed: int = 7):
        self.duration = duration
        self.seed = seed
        self.calls = []

    def analyze(self, audio_path: str) -> AudioAnalysis:
        self.calls.append(audio_path)
        return SimulatedFeatureExtractor(seed=self.seed).simulate(self.duration)


class FakeEncoder:
    def __init__(self, fail: bool = False, write_partial: bool = True):
        self.fail = fail
        self.write_partial = write_partial
        self.calls = []

    def encode(self, frames_dir, audio_path, fps, output_path):
        self.calls.append((frames_dir, audio_path, fps, output_path))
        if self.fail:
            if self.write_partial:
                with open(output_path, "wb") as f:
                    f.write(b"partial")
            raise EncodeError("ffmpeg encode failed with exit code 1", returncode=1, stderr="boom")
        with open(output_path, "wb") as f:
            f.write(MP4_HEADER)
        return output_path


class FakeCompositor:
    def __init__(self, fail_overlay: bool = False, fail_thumbnail: bool = False):
        self.fail_overlay = fail_overlay
        self.fail_thumbnail = fail_thumbnail
        self.elements = None
        self.thumbnail_at = None

    def composite(self, video_path, elements, output_path):
        self.elements = elements
        with open(output_path, "wb") as f:
            f.write(MP4_HEADER)
        if self.fail_overlay:
            raise OverlayError("ffmpeg overlay failed with exit code 1", returncode=1, stderr="bad filter")
        return output_path

    def extract_thumbnail(self, video_path, at_time=5.0, output_path=None):
        self.thumbnail_at = at_time
        if self.fail_thumbnail:
            raise OverlayError("ffmpeg thumbnail failed with exit code 1", returncode=1)
        with open(output_path, "wb") as f:
            f.write(b"\xff\xd8\xff\xe0")
        return output_path


@pytest.fixture
def media_dir(tmp_path):
    path = tmp_path / "media"
    path.mkdir()
    return str(path)


@pytest.fixture
def audio_file(media_dir):
    """Placeholder audio; the fake extractor never decodes it."""
    path = os.path.join(media_dir, "episode.wav")
    with open(path, "wb") as f:
        f.write(b"RIFF")
    return path


@pytest.fixture
def styles():
    return StyleRegistry()


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def tracker(tmp_path):
    return ProgressTracker(str(tmp_path / "progress"))


@pytest.fixture
def results(tmp_path):
    return ResultStore(str(tmp_path / "results"))


@pytest.fixture
def make_orchestrator(registry, styles, tracker, results, media_dir):
    """Factory for an orchestrator wired to fakes at a small frame size."""

    def _make(duration=30.0, encoder=None, compositor=None, keep_frames=False, fps=30):
        return RenderOrchestrator(
            registry=registry,
            styles=styles,
            extractor=FakeExtractor(duration),
            encoder=encoder or FakeEncoder(),
            compositor=compositor or FakeCompositor(),
            tracker=tracker,
            results=results,
            media_dir=media_dir,
            width=TEST_WIDTH,
            height=TEST_HEIGHT,
            fps=fps,
            keep_frames=keep_frames,
            brand="Test Brand",
        )

    return _make
