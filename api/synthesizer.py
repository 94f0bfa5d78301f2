"""Map playback time plus audio features to a frame description.

Everything here is a pure function of its arguments so a job rendered twice
with the same seed produces the same frames.
"""

import math

from models import AudioAnalysis, FrameAudio, FrameDescriptor, StylePreset, VisualParams

DEFAULT_FPS = 30

NEUTRAL_AUDIO = FrameAudio(rms=0.1, vocal_energy=0.5, frequency=150.0, silent=False)

JUMP_CUT_RMS_THRESHOLD = 0.15

REACTIVITY_SCALE = {
    "subtle": 0.4,
    "moderate": 0.7,
    "strong": 1.0,
}


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _wrap_hue(hue: float) -> float:
    hue = hue % 360.0
    # float modulo can round up to exactly 360 for tiny negatives
    return 0.0 if hue >= 360.0 else hue


def sample_audio(time: float, analysis: AudioAnalysis) -> FrameAudio:
    idx = analysis.frame_index(time)
    if idx < 0 or idx >= analysis.frame_count:
        return NEUTRAL_AUDIO
    return FrameAudio(
        rms=float(analysis.rms[idx]),
        vocal_energy=float(analysis.vocal_energy[idx]),
        frequency=float(analysis.frequencies[idx]),
        silent=bool(analysis.silence[idx]),
    )


def _monochrome(time, audio, base_hue, params):
    jump_cut = 1.0 if audio.rms > JUMP_CUT_RMS_THRESHOLD else 0.0
    if jump_cut:
        brightness = 20 + audio.rms * 60
    else:
        brightness = 10 + audio.rms * 20
    params.update(
        hue=0.0,
        saturation=0.0,
        brightness=brightness,
        jump_cut_intensity=jump_cut,
        film_grain_intensity=audio.rms * 0.8,
        contrast_multiplier=1 + audio.rms * 2,
    )


def _synthwave(time, audio, base_hue, params):
    params.update(
        hue=base_hue + audio.frequency * 0.1,
        saturation=80 + audio.rms * 20,
        brightness=60 + audio.vocal_energy * 40,
    )


def _painterly(time, audio, base_hue, params):
    params.update(
        hue=30 + (time * 5) % 60,
        saturation=40 + audio.rms * 30,
        brightness=70 + audio.vocal_energy * 20,
    )


STYLE_OVERRIDES = {
    "monochrome": _monochrome,
    "synthwave": _synthwave,
    "painterly": _painterly,
}


def visual_params(time: float, audio: FrameAudio, style: StylePreset) -> VisualParams:
    scale = REACTIVITY_SCALE.get(style.reactivity, 1.0)
    base_hue = (time * 10) % 360

    params = {
        "hue": base_hue,
        "saturation": 50 + audio.rms * 100,
        "brightness": 50 + audio.vocal_energy * 30,
        "energy_multiplier": 1 + audio.rms * 2 * scale,
        "vocal_multiplier": 1 + audio.vocal_energy * 0.5 * scale,
        "motion_intensity": audio.rms * 2 * scale,
        "texture_intensity": audio.vocal_energy * 3 * scale,
    }

    override = STYLE_OVERRIDES.get(style.name)
    if override:
        override(time, audio, base_hue, params)

    params["hue"] = _wrap_hue(params["hue"])
    params["saturation"] = _clamp(params["saturation"], 0.0, 100.0)
    params["brightness"] = _clamp(params["brightness"], 0.0, 100.0)
    return VisualParams(**params)


def synthesize(
    time: float,
    analysis: AudioAnalysis,
    style: StylePreset,
    job_seed: int,
    fps: int = DEFAULT_FPS,
) -> FrameDescriptor:
    frame_index = math.floor(time * fps + 1e-9)
    audio = sample_audio(time, analysis)
    return FrameDescriptor(
        time=time,
        frame_index=frame_index,
        audio=audio,
        params=visual_params(time, audio, style),
        style=style,
        seed=job_seed + frame_index,
    )


def total_frames(duration: float, fps: int = DEFAULT_FPS) -> int:
    return math.floor(duration * fps + 1e-9)


def frame_times(duration: float, fps: int = DEFAULT_FPS):
    for i in range(total_frames(duration, fps)):
        yield i / fps
