"""
Ring Detect - tiled image sampling and tree-ring boundary detection

Samples a band of pixels along a measurement line on a tiled core image,
enhances tiles with a multi-pass convolution pipeline, and proposes
ring-boundary positions as map coordinates.

Usage:
    from ring_detect import RingDetection, Config, detect_rings, LatLng

    # Quick usage
    result = detect_rings("core.png", LatLng(-40, 10), LatLng(-40, 900))

    # Advanced usage with custom config
    config = Config(algorithm="derivative", band_height=60)
    detector = RingDetection.from_image("core.png", config)
    detector.apply_preset("detection")
    result = asyncio.run(detector.detect(start, end))
"""

from .api import RingDetection, detect_rings
from .core.errors import (
    CaptureAreaTooLarge,
    ConfigurationError,
    DegenerateInput,
    ResourceUnavailable,
    RingDetectError,
    SessionCancelled,
)
from .core.types import (
    Config,
    DetectionGeometry,
    DetectionResult,
    Direction,
    Failure,
    FilterPass,
    LatLng,
    SampleBuffer,
    TileCoordinate,
)
from .detection import detect_boundaries
from .filters import ConvolutionPipeline, kernel, weight
from .placement import commit_points, map_to_coordinates
from .presets import PRESETS, get_preset
from .tiles import OrientedRegionSampler, PyramidViewer, TilePyramid, TileTextureSource

__version__ = "0.3.0"

__all__ = [
    # Main API
    "RingDetection",
    "detect_rings",
    "detect_boundaries",
    "map_to_coordinates",
    "commit_points",
    # Engine components
    "ConvolutionPipeline",
    "OrientedRegionSampler",
    "PyramidViewer",
    "TilePyramid",
    "TileTextureSource",
    "kernel",
    "weight",
    # Configuration and results
    "Config",
    "DetectionGeometry",
    "DetectionResult",
    "Direction",
    "Failure",
    "FilterPass",
    "LatLng",
    "SampleBuffer",
    "TileCoordinate",
    # Errors
    "RingDetectError",
    "ConfigurationError",
    "ResourceUnavailable",
    "CaptureAreaTooLarge",
    "DegenerateInput",
    "SessionCancelled",
    # Presets
    "PRESETS",
    "get_preset",
    # Version
    "__version__",
]
