import logging
from types import MappingProxyType

from errors import StyleNotFoundError
from models import StylePreset

logger = logging.getLogger(__name__)

DEFAULT_PRESETS = (
    StylePreset(
        name="monochrome",
        title="French New Wave",
        description="Black & white jump cuts, freeze frames, grainy film look with RMS-reactive elements",
        palette=("#000000", "#ffffff", "#808080", "#404040"),
        motion="jumpy",
        texture="grainy",
        reactivity="strong",
    ),
    StylePreset(
        name="synthwave",
        title="'80s Retro Chromatic",
        description="Neon gridlines, VHS textures, synthwave aesthetic",
        palette=("#ff00ff", "#00ffff", "#000000", "#ffffff"),
        motion="drift",
        texture="grainy",
        reactivity="strong",
    ),
    StylePreset(
        name="painterly",
        title="Wine-Country Dreamscape",
        description="Abstract vineyards, painterly textures, soft camera drifts",
        palette=("#8B4513", "#DAA520", "#F4A460", "#DEB887"),
        motion="smooth",
        texture="painterly",
        reactivity="subtle",
    ),
)


class StyleRegistry:
    """Read-only catalog of style presets, built once at startup."""

    def __init__(self, presets=DEFAULT_PRESETS):
        by_key = {}
        for preset in presets:
            for key in (preset.name, preset.title):
                if key in by_key and by_key[key] is not preset:
                    raise ValueError(f"Duplicate style key: {key}")
                by_key[key] = preset
        self._presets = tuple(presets)
        self._by_key = MappingProxyType(by_key)
        logger.info(f"Loaded {len(self._presets)} style presets: {', '.join(self.names())}")

    def get(self, name: str) -> StylePreset:
        """Exact match on a preset's name or display title."""
        preset = self._by_key.get(name)
        if preset is None:
            raise StyleNotFoundError(name)
        return preset

    def __contains__(self, name: str) -> bool:
        return name in self._by_key

    def names(self) -> list[str]:
        return [p.name for p in self._presets]

    def presets(self) -> tuple[StylePreset, ...]:
        return self._presets
