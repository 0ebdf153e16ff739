"""
Shared pieces of the boundary detection algorithms.

Every algorithm consumes an (H, W, 3) pixel band plus its own settings
dataclass and returns strictly increasing column indices, each more than
``min_gap`` columns from its neighbour.
"""

import logging
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Type, Union

import numpy as np

from ..constants import CHANNEL_WEIGHTS, DEFAULT_BLUR_RADIUS, MIN_GAP
from ..core.errors import DegenerateInput
from ..core.types import SampleBuffer

logger = logging.getLogger(__name__)


class Algorithm(str, Enum):
    """Available boundary detection algorithms."""

    CLASSIFICATION = "classification"
    DERIVATIVE = "derivative"
    THRESHOLD = "threshold"


# Short names used by the measurement UI
ALIASES = {"pc": Algorithm.CLASSIFICATION, "ed": Algorithm.DERIVATIVE}


def resolve_algorithm(name: Union[str, Algorithm]) -> Algorithm:
    if isinstance(name, Algorithm):
        return name
    key = str(name).lower()
    if key in ALIASES:
        return ALIASES[key]
    try:
        return Algorithm(key)
    except ValueError:
        available = ", ".join([a.value for a in Algorithm] + list(ALIASES))
        raise DegenerateInput(f"Unknown algorithm '{name}'. Available algorithms: {available}") from None


def _check_fraction(name: str, value: float) -> None:
    if not (0.0 <= float(value) <= 1.0):
        raise DegenerateInput(f"{name} must be within [0, 1], got {value}")


@dataclass
class AlgorithmSettings:
    """Settings common to every algorithm."""

    color_channel: str = "intensity"
    blur_radius: int = DEFAULT_BLUR_RADIUS
    min_gap: int = MIN_GAP

    def validate(self) -> None:
        if self.color_channel not in CHANNEL_WEIGHTS:
            raise DegenerateInput(
                f"color_channel must be one of {', '.join(CHANNEL_WEIGHTS)}, got '{self.color_channel}'"
            )
        if self.blur_radius < 0:
            raise DegenerateInput("blur_radius must be non-negative")
        if self.min_gap < 0:
            raise DegenerateInput("min_gap must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "AlgorithmSettings":
        """
        Build settings from a dict.

        Keys that belong to another algorithm's settings are ignored, so one
        dict can drive every algorithm. Keys no algorithm knows are rejected.
        """
        unknown = sorted(set(values) - known_setting_names())
        if unknown:
            raise DegenerateInput(
                f"Unknown setting(s) {', '.join(unknown)}. "
                f"Valid settings for {cls.__name__}: {', '.join(f.name for f in fields(cls))}"
            )
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in names})


def known_setting_names() -> Set[str]:
    """Field names across AlgorithmSettings and every subclass."""
    names: Set[str] = set()
    pending = [AlgorithmSettings]
    while pending:
        settings_class = pending.pop()
        names.update(f.name for f in fields(settings_class))
        pending.extend(settings_class.__subclasses__())
    return names


def as_pixels(buffer: Union[SampleBuffer, np.ndarray]) -> np.ndarray:
    """Validate a sampled band and return it as an (H, W, 3) array."""
    pixels = buffer.pixels if isinstance(buffer, SampleBuffer) else np.asarray(buffer)
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise DegenerateInput(f"Expected an (H, W, 3) pixel band, got shape {pixels.shape}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise DegenerateInput(f"Pixel band is empty: {pixels.shape}")
    return pixels[..., :3]


def enforce_min_gap(columns: Sequence[int], min_gap: int) -> List[int]:
    """
    Keep columns (in ascending order) that are more than ``min_gap`` after the
    last kept one.
    """
    kept: List[int] = []
    for column in sorted(int(c) for c in columns):
        if not kept or column - kept[-1] > min_gap:
            kept.append(column)
    return kept


def column_flips(column_classes: Sequence[Optional[float]]) -> List[int]:
    """Columns whose class differs from the previous (both classified)."""
    flips = []
    previous = None
    for j, current in enumerate(column_classes):
        if current is None:
            continue
        if previous is not None and current != previous:
            flips.append(j)
        previous = current
    return flips


class BoundaryAlgorithm:
    """Interface shared by every detection algorithm."""

    algorithm: Algorithm
    settings_class: Type[AlgorithmSettings] = AlgorithmSettings

    def settings(self, settings: Union[AlgorithmSettings, Dict[str, Any], None] = None) -> AlgorithmSettings:
        if settings is None:
            settings = self.settings_class()
        elif isinstance(settings, dict):
            settings = self.settings_class.from_dict(settings)
        elif not isinstance(settings, self.settings_class):
            raise DegenerateInput(
                f"{self.algorithm.value} expects {self.settings_class.__name__}, "
                f"got {type(settings).__name__}"
            )
        settings.validate()
        return settings

    def detect(
        self,
        buffer: Union[SampleBuffer, np.ndarray],
        settings: Union[AlgorithmSettings, Dict[str, Any], None] = None,
    ) -> List[int]:
        settings = self.settings(settings)
        pixels = as_pixels(buffer)
        boundaries = self._detect(pixels, settings)
        logger.debug(f"{self.algorithm.value}: {len(boundaries)} boundaries in {pixels.shape[1]} columns")
        return boundaries

    def _detect(self, pixels: np.ndarray, settings: AlgorithmSettings) -> List[int]:
        raise NotImplementedError


_REGISTRY: Dict[Algorithm, BoundaryAlgorithm] = {}


def register(cls: Type[BoundaryAlgorithm]) -> Type[BoundaryAlgorithm]:
    _REGISTRY[cls.algorithm] = cls()
    return cls


def get_algorithm(name: Union[str, Algorithm]) -> BoundaryAlgorithm:
    return _REGISTRY[resolve_algorithm(name)]


def available_algorithms() -> List[str]:
    return [a.value for a in _REGISTRY]
