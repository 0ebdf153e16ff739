# Tile pyramid, texture source, viewer host and region sampler

from .geometry import detection_geometry, normalize_anchors, plan_sub_areas, unit_vector
from .pyramid import PyramidConfig, TilePyramid
from .sampler import OrientedRegionSampler
from .source import CallableLayer, PyramidLayer, TemplateLayer, TileLayer, TileTextureSource
from .viewer import PyramidViewer, ViewerHost

__all__ = [
    'TilePyramid',
    'PyramidConfig',
    'TileTextureSource',
    'TileLayer',
    'PyramidLayer',
    'TemplateLayer',
    'CallableLayer',
    'ViewerHost',
    'PyramidViewer',
    'OrientedRegionSampler',
    'detection_geometry',
    'normalize_anchors',
    'plan_sub_areas',
    'unit_vector',
]
