# Core types and error taxonomy

from .errors import (
    CaptureAreaTooLarge,
    ConfigurationError,
    DegenerateInput,
    ResourceUnavailable,
    RingDetectError,
    SessionCancelled,
)
from .types import (
    Config,
    DetectionGeometry,
    DetectionResult,
    Direction,
    Failure,
    FilterPass,
    LatLng,
    PixelPoint,
    SampleBuffer,
    TileCoordinate,
)

__all__ = [
    'Config',
    'DetectionGeometry',
    'DetectionResult',
    'Direction',
    'Failure',
    'FilterPass',
    'LatLng',
    'PixelPoint',
    'SampleBuffer',
    'TileCoordinate',
    'RingDetectError',
    'ConfigurationError',
    'ResourceUnavailable',
    'CaptureAreaTooLarge',
    'DegenerateInput',
    'SessionCancelled',
]
