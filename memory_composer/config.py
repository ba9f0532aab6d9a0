# config.py
"""
Engine configuration constants for Memory Composer
"""

# Canvas defaults
DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600
DEFAULT_BACKGROUND = "#ffffff"
MAX_CANVAS_DIMENSION = 8000
SURFACE_MEMORY_FRACTION = 0.25  # Refuse surfaces larger than 25% of available RAM

# Layout defaults
GRID_PADDING = 10
MOSAIC_TILE_SIZES = (120, 100, 140, 110, 130)
CIRCULAR_RADIUS_FACTOR = 0.3
CIRCULAR_TILE_SIZE = 120
DIAGONAL_TILE_SIZE = 120
HEART_SCALE_FACTOR = 0.02  # 0.002 shrinks the curve to ~40px on an 800x600 canvas
HEART_TILE_SIZE = 80
FILMSTRIP_FRAME_SIZE = (120, 90)
FILMSTRIP_SPACING = 10
FILMSTRIP_COLUMNS = 3
FILMSTRIP_ORIGIN = (100, 120)
COVER_TILE_SIZE = 150
COVER_GAP = 20
COVER_TOP = 180
STRIP_MAX_TRACKS = 3  # Columns/rows layouts never use more than three tracks
STRIP_MARGIN = 20
STRIP_GUTTER = 10
FEATURED_STRIP_LENGTH = 3  # Images per row under the two featured tiles

# Effect ranges (min, max, identity)
EFFECT_RANGES = {
    "brightness": (0.0, 200.0, 100.0),
    "contrast": (0.0, 200.0, 100.0),
    "saturation": (0.0, 200.0, 100.0),
    "hue": (-180.0, 180.0, 0.0),
    "blur": (0.0, 10.0, 0.0),
    "sepia": (0.0, 100.0, 0.0),
    "grayscale": (0.0, 100.0, 0.0),
    "vintage": (0.0, 100.0, 0.0),
    "vignette": (0.0, 100.0, 0.0),
}
VINTAGE_TINT = (255, 204, 153)
VINTAGE_MAX_ALPHA = 0.3
VIGNETTE_RADIUS_FACTOR = 0.6
VIGNETTE_MAX_ALPHA = 0.6

# Resource loading
LOADER_MAX_WORKERS = 4
LOADER_TIMEOUT_SECS = 10.0
MAX_IMAGE_DIMENSION = 10000
SUPPORTED_IMAGE_FORMATS = ['png', 'jpg', 'jpeg', 'bmp', 'webp', 'gif', 'tiff']
ALLOWED_URL_SCHEMES = {"http", "https", "data", "file"}

# Cache settings
MAX_CACHE_SIZE = 50
CACHE_CLEANUP_THRESHOLD = 0.8  # Cleanup when cache reaches 80% of max size

# Typography
TITLE_FONT_SIZE = 28
COLLAGE_TITLE_FONT_SIZE = 24
CAPTION_FONT_SIZE = 16
BOOK_CAPTION_FONT_SIZE = 18

# Export options
EXPORT_FORMATS = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}
QUALITY_MIN = 1
QUALITY_MAX = 100
QUALITY_DEFAULT = 95

# Template geometry
MASHUP_HEIGHT = 450
COLLAGE_HEADER_HEIGHT = 60
COLLAGE_TITLE_BASELINE = 40
COLLAGE_BORDER_INSET = 10
BOOK_COVER_MARGIN = 50
BOOK_SPINE_WIDTH = 20
BOOK_TITLE_BASELINE = 120
BOOK_CAPTION_OFFSET = 80
MASHUP_TITLE_BASELINE = 50
MASHUP_SUBTITLE_BASELINE = 80
MASHUP_SIDE_MARGIN = 100
FRAME_WIDTH = 2
FILM_FRAME_COLOR = "#000000"
PLAYHEAD_COLOR = "#ff0000"
VIDEO_ICON_COLOR = (0, 0, 0, 128)
TEMPLATE_IMAGE_LIMITS = {"book": 4, "mashup": 6}
