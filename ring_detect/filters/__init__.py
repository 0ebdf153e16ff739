# Tile enhancement: kernel library, convolution pipeline, CSS adjustments

from .css import apply_css_filters, is_neutral, parse_css_filters
from .kernels import KERNELS, kernel, kernel_names, weight
from .pipeline import ConvolutionPipeline, is_valid_tile, select_device

__all__ = [
    'KERNELS',
    'kernel',
    'kernel_names',
    'weight',
    'ConvolutionPipeline',
    'is_valid_tile',
    'select_device',
    'apply_css_filters',
    'is_neutral',
    'parse_css_filters',
]
