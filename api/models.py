import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

SAMPLE_RATE = 44100
FRAME_SIZE = 1024
PREVIEW_LIMIT = 100


@dataclass
class AudioAnalysis:
    duration: float
    rms: list[float]
    frequencies: list[float]
    vocal_energy: list[float]
    silence: list[bool]
    sample_rate: int = SAMPLE_RATE
    frame_size: int = FRAME_SIZE

    @property
    def frame_count(self) -> int:
        return len(self.rms)

    def frame_index(self, time: float) -> int:
        """Analysis frame covering playback time `time` (may be out of range)."""
        return math.floor(time * self.sample_rate / self.frame_size)

    def preview(self, limit: int = PREVIEW_LIMIT) -> dict:
        return {
            "rms": [float(v) for v in self.rms[:limit]],
            "vocalEnergy": [float(v) for v in self.vocal_energy[:limit]],
            "silence": [bool(v) for v in self.silence[:limit]],
        }


@dataclass
class AudioSegment:
    start: float
    end: float
    energy: float
    is_silence: bool


@dataclass(frozen=True)
class StylePreset:
    name: str
    title: str
    description: str
    palette: tuple[str, ...]
    motion: str  # 'smooth' | 'jumpy' | 'drift'
    texture: str  # 'grainy' | 'clean' | 'painterly'
    reactivity: str  # 'subtle' | 'moderate' | 'strong'

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "visualParams": {
                "colorPalette": list(self.palette),
                "motionStyle": self.motion,
                "textureType": self.texture,
                "reactivity": self.reactivity,
            },
        }


@dataclass(frozen=True)
class FrameAudio:
    rms: float
    vocal_energy: float
    frequency: float
    silent: bool


@dataclass(frozen=True)
class VisualParams:
    hue: float
    saturation: float
    brightness: float
    energy_multiplier: float
    vocal_multiplier: float
    motion_intensity: float
    texture_intensity: float
    jump_cut_intensity: float = 0.0
    film_grain_intensity: float = 0.0
    contrast_multiplier: float = 1.0


@dataclass(frozen=True)
class FrameDescriptor:
    time: float
    frame_index: int
    audio: FrameAudio
    params: VisualParams
    style: StylePreset
    seed: int


@dataclass
class EpisodeMetadata:
    title: str = "Untitled Episode"
    guest: Optional[str] = None
    sponsor: Optional[str] = None


@dataclass(frozen=True)
class Position:
    x: float
    y: float
    anchor: str = "center"  # 'center' | 'top-left'


@dataclass(frozen=True)
class TextStyle:
    font_size: int
    color: str
    background: str
    opacity: float


@dataclass(frozen=True)
class OverlayElement:
    kind: str  # 'intro' | 'title-card' | 'lower-third' | 'end-screen'
    start: float
    duration: float
    text: str
    position: Position
    style: TextStyle

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class ProgressRecord:
    current: int
    total: int


class JobState(str, Enum):
    CREATED = "created"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    ENCODING = "encoding"
    OVERLAYING = "overlaying"
    THUMBNAILING = "thumbnailing"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobState.DONE, JobState.FAILED)


@dataclass
class Job:
    id: str
    audio_path: str
    style_name: str
    seed: int
    metadata: EpisodeMetadata = field(default_factory=EpisodeMetadata)
    state: JobState = JobState.CREATED
    frames_total: int = 0
    frames_done: int = 0
    result: Optional[dict] = None
    version: int = 0
    created_at: str = ""

    def snapshot(self) -> dict:
        return {
            "jobId": self.id,
            "state": self.state.value,
            "styleName": self.style_name,
            "framesDone": self.frames_done,
            "framesTotal": self.frames_total,
            "version": self.version,
            "createdAt": self.created_at,
            "done": self.state.terminal,
        }
