"""
High-level API for ring detection.
"""

import asyncio
import os
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from .core.types import (
    Config,
    DetectionGeometry,
    DetectionResult,
    Direction,
    Failure,
    FilterPass,
    LatLng,
    SampleBuffer,
)
from .detection import AlgorithmSettings, get_algorithm
from .filters.pipeline import ConvolutionPipeline, select_device
from .placement import PointStore, commit_points, map_to_coordinates
from .presets import get_preset, to_css, to_filter_passes
from .tiles.geometry import detection_geometry, normalize_anchors
from .tiles.pyramid import PyramidConfig, TilePyramid
from .tiles.sampler import OrientedRegionSampler
from .tiles.viewer import PyramidViewer, ViewerHost
from .utils.config import get_config_text


class RingDetection:
    """
    Ring detection session API: sample a band, detect boundaries, place points.
    """

    def __init__(self, viewer: ViewerHost, config: Optional[Config] = None):
        """
        Initialize ring detection against a viewer host.

        Args:
            viewer: Host providing tiles and projection
            config: Configuration object. If None, uses defaults.
        """
        self.config = config or Config()
        self.config.validate()
        self.viewer = viewer
        self.sampler = OrientedRegionSampler(viewer, self.config)
        self.device = getattr(getattr(viewer, "pipeline", None), "device", None) or select_device(self.config.device)

        if self.config.verbose:
            print("🌲 RingDetection initialized")
            print(f"📱 Selected device: {self.device}")
            print(f"🔧 Algorithm: {self.config.algorithm}")
            print(f"🔍 Zoom: {self.zoom}")

    @classmethod
    def from_image(cls, image: Union[str, os.PathLike, np.ndarray], config: Optional[Config] = None) -> "RingDetection":
        """Build an in-process viewer over an image file or array."""
        config = config or Config()
        config.validate()
        pyramid_config = PyramidConfig(tile_size=config.tile_size)
        if isinstance(image, np.ndarray):
            pyramid = TilePyramid(image, pyramid_config)
        else:
            pyramid = TilePyramid.from_file(image, pyramid_config)
        pipeline = ConvolutionPipeline(
            tile_size=config.tile_size,
            pool_size=config.framebuffer_pool_size,
            max_layers=config.max_texture_layers,
            device=config.device,
        )
        viewer = PyramidViewer(pyramid, pipeline=pipeline, css=config.css_adjustments)
        return cls(viewer, config)

    @property
    def zoom(self) -> int:
        return self.viewer.max_zoom if self.config.zoom is None else self.config.zoom

    # ---------------------------------------------------------------- settings

    def set_filter_passes(self, passes: Sequence[FilterPass]) -> None:
        """Update the enhancement pipeline of the viewer."""
        self.viewer.set_filter_passes(passes)

    def apply_preset(self, preset_name: str) -> None:
        """Apply a named image-adjustment preset (passes + CSS adjustments)."""
        settings = get_preset(preset_name)
        self.set_filter_passes(to_filter_passes(settings))
        self.config.css_adjustments = to_css(settings)
        if hasattr(self.viewer, "css"):
            self.viewer.css = self.config.css_adjustments
        if self.config.verbose:
            print(f"🎨 Applied preset: {preset_name}")

    def algorithm_settings(self, algorithm: Optional[str] = None, **overrides: Any) -> AlgorithmSettings:
        """Settings for an algorithm, seeded from the config."""
        implementation = get_algorithm(algorithm or self.config.algorithm)
        values: Dict[str, Any] = {
            "color_channel": self.config.color_channel,
            "blur_radius": self.config.blur_radius,
            "min_gap": self.config.min_gap,
            "sub_annual": self.config.sub_annual,
            "zoom": self.zoom,
        }
        values.update(overrides)
        return implementation.settings(values)

    # ---------------------------------------------------------------- pipeline

    def geometry(self, anchor1: LatLng, anchor2: LatLng, band_height: Optional[int] = None) -> DetectionGeometry:
        """Outline of the sampling rectangle for the current settings."""
        start, end = normalize_anchors(anchor1, anchor2)
        height = self.config.band_height if band_height is None else band_height
        return detection_geometry(self.viewer, start, end, height, self.zoom)

    async def sample_region(
        self,
        anchor1: LatLng,
        anchor2: LatLng,
        band_height: Optional[int] = None,
        zoom: Optional[int] = None,
        css_adjustments: Optional[str] = None,
    ) -> Union[SampleBuffer, Failure]:
        """Sample the band between two anchors (Failure is returned, not raised)."""
        return await self.sampler.sample_region(
            anchor1,
            anchor2,
            self.config.band_height if band_height is None else band_height,
            self.zoom if zoom is None else zoom,
            self.config.css_adjustments if css_adjustments is None else css_adjustments,
        )

    def detect_boundaries(
        self,
        buffer: Union[SampleBuffer, np.ndarray],
        algorithm: Optional[str] = None,
        settings: Union[AlgorithmSettings, Dict[str, Any], None] = None,
    ) -> List[int]:
        """Run a detection algorithm; settings default to the config's values."""
        algorithm = algorithm or self.config.algorithm
        if settings is None or isinstance(settings, dict):
            settings = self.algorithm_settings(algorithm, **(settings or {}))
        return get_algorithm(algorithm).detect(buffer, settings)

    def map_to_coordinates(
        self,
        offsets: Sequence[float],
        anchor1: LatLng,
        anchor2: LatLng,
        direction: Union[Direction, str, None] = None,
    ) -> List[LatLng]:
        return map_to_coordinates(
            offsets, anchor1, anchor2, direction or self.config.direction, self.zoom, self.viewer
        )

    def commit(self, store: PointStore, offsets: Sequence[float], anchor1: LatLng, anchor2: LatLng) -> List[LatLng]:
        """Insert boundaries into the host point store in direction-corrected order."""
        return commit_points(
            store,
            offsets,
            anchor1,
            anchor2,
            self.config.direction,
            self.zoom,
            self.viewer,
            include_anchors=self.config.include_anchors,
        )

    async def detect(
        self,
        anchor1: LatLng,
        anchor2: LatLng,
        algorithm: Optional[str] = None,
        settings: Union[AlgorithmSettings, Dict[str, Any], None] = None,
    ) -> DetectionResult:
        """
        Complete session: sample, detect and map to coordinates.

        Raises:
            RingDetectError: The matching error when sampling fails
        """
        algorithm = algorithm or self.config.algorithm
        started = time.perf_counter()
        if self.config.verbose:
            print(f"📐 Sampling {self.config.band_height}px band at zoom {self.zoom}...")

        result = await self.sample_region(anchor1, anchor2)
        if isinstance(result, Failure):
            if self.config.verbose:
                print(f"❌ Sampling failed: {result.kind} ({result.message})")
            result.raise_for_failure()
        sampled = time.perf_counter()

        boundaries = self.detect_boundaries(result, algorithm, settings)
        coordinates = self.map_to_coordinates(boundaries, anchor1, anchor2)
        finished = time.perf_counter()

        if self.config.verbose:
            print(f"✅ Found {len(boundaries)} boundaries in {result.width}px")

        return DetectionResult(
            boundaries=boundaries,
            coordinates=coordinates,
            buffer=result,
            geometry=self.geometry(anchor1, anchor2),
            algorithm=get_algorithm(algorithm).algorithm.value,
            zoom=self.zoom,
            processing_stats={
                "buffer_shape": result.shape,
                "sub_areas": len(result.sub_area_widths),
                "time_sample_s": round(sampled - started, 3),
                "time_detect_s": round(finished - sampled, 3),
                "device": str(self.device),
            },
        )

    def summary(self) -> str:
        """Human-readable settings block."""
        return get_config_text(self.config, self.zoom, self.algorithm_settings(), self.config.css_adjustments)


# Convenience function for quick usage
def detect_rings(
    image: Union[str, os.PathLike, np.ndarray],
    start: LatLng,
    end: LatLng,
    algorithm: str = "classification",
    preset: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> DetectionResult:
    """
    Convenience function for one detection run on an image.

    Args:
        image: Image path or (H, W, 3|4) uint8 array
        start, end: Anchors in map coordinates
        algorithm: "classification", "derivative" or "threshold"
        preset: Optional image-adjustment preset name
        settings: Algorithm setting overrides
        **kwargs: Additional config parameters

    Returns:
        DetectionResult
    """
    config = Config(algorithm=algorithm, **kwargs)
    detector = RingDetection.from_image(image, config)
    if preset:
        detector.apply_preset(preset)
    return asyncio.run(detector.detect(start, end, settings=settings))
