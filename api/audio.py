import json
import logging
import math
import os
import subprocess
from typing import Protocol

import librosa  # ty: ignore[unresolved-import]
import numpy as np
from errors import AnalysisError
from models import FRAME_SIZE, SAMPLE_RATE, AudioAnalysis, AudioSegment

logger = logging.getLogger(__name__)

FFPROBE_BIN = os.environ.get("FFPROBE_BIN", "ffprobe")

SILENCE_RMS_THRESHOLD = 0.05
VOCAL_BAND_HZ = (85.0, 3400.0)
VOCAL_RANGE_HZ = (85.0, 255.0)


class FeatureExtractor(Protocol):
    def analyze(self, audio_path: str) -> AudioAnalysis: ...


def expected_frame_count(duration: float, sample_rate: int = SAMPLE_RATE, frame_size: int = FRAME_SIZE) -> int:
    return math.floor(duration * sample_rate / frame_size)


def probe_duration(audio_path: str) -> float:
    """Read the container duration in seconds with ffprobe."""
    try:
        result = subprocess.run(
            [
                FFPROBE_BIN,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                audio_path,
            ],
            capture_output=True,
            text=True,
            timeout=60,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise AnalysisError(f"Could not run ffprobe on {audio_path}", detail=str(e)) from e

    if result.returncode != 0:
        raise AnalysisError(
            f"ffprobe exited with code {result.returncode} for {audio_path}",
            detail=result.stderr[-500:] or None,
        )

    try:
        info = json.loads(result.stdout)
    except ValueError as e:
        raise AnalysisError(f"ffprobe returned unreadable metadata for {audio_path}") from e

    duration = None
    raw = info.get("format", {}).get("duration")
    if raw is None:
        for stream in info.get("streams", []):
            if stream.get("codec_type") == "audio" and stream.get("duration"):
                raw = stream["duration"]
                break
    try:
        duration = float(raw) if raw is not None else None
    except (TypeError, ValueError):
        duration = None

    if duration is None or not math.isfinite(duration) or duration <= 0:
        raise AnalysisError(f"Could not determine audio duration for {audio_path}")
    return duration


def _fit(values: np.ndarray, length: int, pad: float) -> np.ndarray:
    """Truncate or pad so decoded frames line up with the container duration."""
    if len(values) >= length:
        return values[:length]
    fill = values[-1] if len(values) else pad
    return np.concatenate([values, np.full(length - len(values), fill, dtype=float)])


def detect_silence(rms, threshold: float = SILENCE_RMS_THRESHOLD) -> list[bool]:
    return [bool(v < threshold) for v in rms]


def vocal_score(frequency: float) -> float:
    """Score a dominant frequency by how close it sits to the speaking range."""
    lo, hi = VOCAL_RANGE_HZ
    if lo <= frequency <= hi:
        return 1.0
    if lo * 0.5 <= frequency <= hi * 2:
        return 0.5
    return 0.1


class LibrosaFeatureExtractor:
    """Per-frame RMS, spectral centroid and vocal-band energy using librosa."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, frame_size: int = FRAME_SIZE):
        self.sample_rate = sample_rate
        self.frame_size = frame_size

    def analyze(self, audio_path: str) -> AudioAnalysis:
        logger.info(f"Extracting features from {audio_path}")
        duration = probe_duration(audio_path)
        n = expected_frame_count(duration, self.sample_rate, self.frame_size)

        try:
            y, sr = librosa.load(audio_path, sr=self.sample_rate, mono=True)
        except Exception as e:
            raise AnalysisError(f"Failed to decode audio file {audio_path}", detail=str(e)) from e

        if n == 0 or len(y) < self.frame_size:
            logger.warning(f"Audio shorter than one analysis frame: {audio_path}")
            return AudioAnalysis(
                duration=duration,
                rms=[0.0] * n,
                frequencies=[0.0] * n,
                vocal_energy=[0.0] * n,
                silence=[True] * n,
                sample_rate=self.sample_rate,
                frame_size=self.frame_size,
            )

        hop = self.frame_size
        S = np.abs(librosa.stft(y, n_fft=self.frame_size, hop_length=hop, center=False))

        rms = librosa.feature.rms(y=y, frame_length=self.frame_size, hop_length=hop, center=False)[0]
        centroid = librosa.feature.spectral_centroid(S=S, sr=sr)[0]

        power = S**2
        freqs = librosa.fft_frequencies(sr=sr, n_fft=self.frame_size)
        band = (freqs >= VOCAL_BAND_HZ[0]) & (freqs <= VOCAL_BAND_HZ[1])
        total = power.sum(axis=0)
        vocal = np.divide(power[band].sum(axis=0), total, out=np.zeros_like(total), where=total > 0)

        rms = _fit(rms, n, 0.0)
        centroid = _fit(np.nan_to_num(centroid), n, 0.0)
        vocal = np.clip(_fit(vocal, n, 0.0), 0.0, 1.0)

        logger.info(
            f"Features: duration={duration:.2f}s frames={n} "
            f"rms_mean={float(rms.mean()):.4f} centroid_mean={float(centroid.mean()):.1f}"
        )

        return AudioAnalysis(
            duration=duration,
            rms=[float(v) for v in rms],
            frequencies=[float(v) for v in centroid],
            vocal_energy=[float(v) for v in vocal],
            silence=detect_silence(rms),
            sample_rate=self.sample_rate,
            frame_size=self.frame_size,
        )


class SimulatedFeatureExtractor:
    """Stand-in features shaped like speech, seeded so runs repeat.

    Only the duration comes from the file; everything else is generated.
    """

    def __init__(self, seed: int = 0, sample_rate: int = SAMPLE_RATE, frame_size: int = FRAME_SIZE):
        self.seed = seed
        self.sample_rate = sample_rate
        self.frame_size = frame_size

    def analyze(self, audio_path: str) -> AudioAnalysis:
        duration = probe_duration(audio_path)
        return self.simulate(duration)

    def simulate(self, duration: float) -> AudioAnalysis:
        n = expected_frame_count(duration, self.sample_rate, self.frame_size)
        rng = np.random.default_rng(self.seed)

        i = np.arange(n)
        rms = np.maximum(0.0, 0.1 + rng.random(n) * 0.2 + np.sin(i * 0.1) * 0.05)
        frequencies = 150 + rng.random(n) * 100

        return AudioAnalysis(
            duration=duration,
            rms=[float(v) for v in rms],
            frequencies=[float(v) for v in frequencies],
            vocal_energy=[vocal_score(f) for f in frequencies],
            silence=detect_silence(rms),
            sample_rate=self.sample_rate,
            frame_size=self.frame_size,
        )


def segment_audio(analysis: AudioAnalysis, segment_duration: float = 10.0) -> list[AudioSegment]:
    """Summarise the analysis into fixed-length energy/silence segments."""
    per_segment = math.floor(segment_duration * analysis.sample_rate / analysis.frame_size)
    if per_segment <= 0:
        return []

    segments = []
    for i in range(0, analysis.frame_count, per_segment):
        chunk = analysis.rms[i : i + per_segment]
        start = i * analysis.frame_size / analysis.sample_rate
        end = min((i + per_segment) * analysis.frame_size / analysis.sample_rate, analysis.duration)
        segments.append(
            AudioSegment(
                start=start,
                end=end,
                energy=float(sum(chunk) / len(chunk)),
                is_silence=all(analysis.silence[i : i + per_segment]),
            )
        )
    return segments
