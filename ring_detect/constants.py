"""
Centralized constants for ring detection.
"""

# File handling
SUPPORTED_IMAGE_EXTS = (".jpg", ".jpeg", ".png", ".tif", ".tiff")

# Tile pyramid
TILE_SIZE = 256
MAX_TEXTURE_LAYERS = 8

# Convolution pipeline
FRAMEBUFFER_POOL_SIZE = 6
IDENTITY_KERNEL = "normal"
STRENGTH_UNIFORM = "uSharpenStrength"
MAX_UNIFORM_COMPONENTS = 4

# Oriented region sampling
SAMPLING_MARGIN = 500  # Extra canvas slack around each sub-area (px)
MAX_CANVAS_DIMENSION = 32767
MAX_CANVAS_AREA = 268_435_456
MAX_SUBDIVISIONS = 64
TILE_LOAD_TIMEOUT = 10.0  # Seconds to wait for a single tile

# Detection
DEFAULT_BAND_HEIGHT = 50
MIN_GAP = 10
CLASSIFICATION_MARGIN = 10
DEFAULT_COL_PERCENTILE = 0.75
DEFAULT_BOUNDARY_BRIGHTNESS = 128
DEFAULT_GLOBAL_THRESHOLD = 80
DEFAULT_SMOOTHING_ALPHA = 0.5
DEFAULT_EXTREMA_THRESHOLD = 0.3
ANNUAL_SKIP_FACTOR = 50
DEFAULT_BLUR_RADIUS = 3

# Channel weights for reducing RGB to a single intensity
CHANNEL_WEIGHTS = {
    "intensity": (1 / 3, 1 / 3, 1 / 3),
    "r": (1.0, 0.0, 0.0),
    "g": (0.0, 1.0, 0.0),
    "b": (0.0, 0.0, 1.0),
}

# Image adjustment sliders that drive the GL filter passes
GL_FILTER_NAMES = {
    "emboss": "emboss",
    "edge_detect": "edgeDetect3",
    "sharpness": "unsharpen",
}
