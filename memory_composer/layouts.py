"""Layout engine: where each image goes on the canvas.

:func:`compute_layout` is a pure function of the image count, the layout
kind, the canvas size and a :class:`~memory_composer.models.LayoutParams`.
It performs no I/O; the only randomness is the mosaic scatter, which draws
from a private :class:`random.Random` seeded by ``params.seed``.

Every returned placement is clamped into ``[0, width] x [0, height]``.
Mosaic tiles may overlap each other; that is the look of the layout.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import InvalidParameter
from .models import LayoutKind, LayoutParams, Placement
from .utils.validation import validate_dimensions

LOGGER = logging.getLogger(__name__)

LayoutFunc = Callable[[int, float, float, LayoutParams], List[Placement]]


def heart_point(t: float) -> Tuple[float, float]:
    """Point of the parametric heart curve at ``t`` (y grows upwards)."""
    x = 16 * math.sin(t) ** 3
    y = 13 * math.cos(t) - 5 * math.cos(2 * t) - 2 * math.cos(3 * t) - math.cos(4 * t)
    return x, y


def grid_dimensions(count: int) -> Tuple[int, int]:
    """Return ``(cols, rows)`` for a near-square grid holding ``count`` cells."""
    if count <= 0:
        return 0, 0
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    return cols, rows


def _clamp(x: float, y: float, w: float, h: float, width: float, height: float) -> Placement:
    """Shrink and shift a rectangle until it lies inside the canvas."""
    w = min(w, width)
    h = min(h, height)
    x = min(max(x, 0.0), width - w)
    y = min(max(y, 0.0), height - h)
    return Placement(x, y, w, h)


def _centered_tile(cx: float, cy: float, size: float, width: float, height: float) -> Placement:
    return _clamp(cx - size / 2, cy - size / 2, size, size, width, height)


def grid_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    cols, rows = grid_dimensions(count)
    pad = params.padding
    cell_w = (width - pad * (cols + 1)) / cols
    cell_h = (height - pad * (rows + 1)) / rows
    if cell_w <= 0 or cell_h <= 0:
        raise InvalidParameter(
            "padding", pad, f"leaves no room for a {cols}x{rows} grid on {width}x{height}"
        )
    placements = []
    for index in range(count):
        row, col = divmod(index, cols)
        x = pad + col * (cell_w + pad)
        y = pad + row * (cell_h + pad)
        placements.append(_clamp(x, y, cell_w, cell_h, width, height))
    return placements


def mosaic_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    rng = random.Random(params.seed)
    pad = params.padding
    placements = []
    for index in range(count):
        size = params.tile_sizes[index % len(params.tile_sizes)]
        span_x = max(0.0, width - size - pad * 2)
        span_y = max(0.0, height - size - pad * 2)
        x = rng.random() * span_x + pad
        y = rng.random() * span_y + pad
        placements.append(_clamp(x, y, size, size, width, height))
    return placements


def circular_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    cx, cy = width / 2, height / 2
    radius = min(width, height) * params.radius_factor
    step = 2 * math.pi / count
    placements = []
    for index in range(count):
        angle = index * step
        placements.append(
            _centered_tile(
                cx + math.cos(angle) * radius,
                cy + math.sin(angle) * radius,
                params.circular_tile,
                width,
                height,
            )
        )
    return placements


def diagonal_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    tile = params.diagonal_tile
    divisor = (count - 1) or 1
    step_x = (width - tile) / divisor
    step_y = (height - tile) / divisor
    return [
        _clamp(index * step_x, index * step_y, tile, tile, width, height)
        for index in range(count)
    ]


def heart_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    cx, cy = width / 2, height / 2
    scale = min(width, height) * params.heart_scale
    placements = []
    for index in range(count):
        t = index / count * 2 * math.pi
        x, y = heart_point(t)
        # screen y grows downwards, the curve's y grows upwards
        placements.append(_centered_tile(cx + scale * x, cy - scale * y, params.heart_tile, width, height))
    return placements


def filmstrip_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    frame_w, frame_h = params.frame_size
    origin_x, origin_y = params.frame_origin
    placements = []
    for index in range(count):
        row, col = divmod(index, params.frame_columns)
        x = origin_x + col * (frame_w + params.frame_spacing)
        y = origin_y + row * (frame_h + params.frame_spacing)
        placements.append(_clamp(x, y, frame_w, frame_h, width, height))
    return placements


def cover_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    tile, gap = params.cover_tile, params.cover_gap
    start_x = width / 2 - (tile * 2 + gap) / 2
    placements = []
    for index in range(count):
        row, col = divmod(index, 2)
        x = start_x + col * (tile + gap)
        y = params.cover_top + row * (tile + gap)
        placements.append(_clamp(x, y, tile, tile, width, height))
    return placements


def _tracks(start: float, extent: float, count: int, gutter: float) -> List[Tuple[float, float]]:
    """Split ``extent`` into ``count`` equal tracks separated by ``gutter``."""
    pitch = (extent + gutter) / count
    size = pitch - gutter
    if size <= 0:
        raise InvalidParameter("strip_gutter", gutter, f"leaves no room for {count} tracks in {extent}")
    return [(start + index * pitch, size) for index in range(count)]


def _strip_layout(
    count: int, width: float, height: float, params: LayoutParams, vertical: bool
) -> List[Placement]:
    margin, gutter = params.strip_margin, params.strip_gutter
    if width <= margin * 2 or height <= margin * 2:
        raise InvalidParameter("strip_margin", margin, f"leaves no room on {width}x{height}")
    tracks = min(params.strip_tracks, count)
    depth = math.ceil(count / tracks)
    if vertical:
        xs = _tracks(margin, width - margin * 2, tracks, gutter)
        ys = _tracks(margin, height - margin * 2, depth, gutter)
    else:
        xs = _tracks(margin, width - margin * 2, depth, gutter)
        ys = _tracks(margin, height - margin * 2, tracks, gutter)
    placements = []
    for index in range(count):
        # columns fill left to right, rows fill top to bottom
        major, minor = divmod(index, tracks)
        col, row = (minor, major) if vertical else (major, minor)
        (x, w), (y, h) = xs[col], ys[row]
        placements.append(_clamp(x, y, w, h, width, height))
    return placements


def columns_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    return _strip_layout(count, width, height, params, vertical=True)


def rows_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    return _strip_layout(count, width, height, params, vertical=False)


def featured_layout(count: int, width: float, height: float, params: LayoutParams) -> List[Placement]:
    """Two large tiles side by side with the remaining images in strips below."""
    margin, gutter = params.strip_margin, params.strip_gutter
    if width <= margin * 2 or height <= margin * 2:
        raise InvalidParameter("strip_margin", margin, f"leaves no room on {width}x{height}")
    inner_w, inner_h = width - margin * 2, height - margin * 2
    if count == 1:
        return [_clamp(margin, margin, inner_w, inner_h, width, height)]
    halves = _tracks(margin, inner_w, 2, gutter)
    if count == 2:
        return [_clamp(x, margin, w, inner_h, width, height) for x, w in halves]
    (top_y, top_h), (strip_y, strip_h) = _tracks(margin, inner_h, 2, gutter)
    placements = [_clamp(x, top_y, w, top_h, width, height) for x, w in halves]
    rest = count - 2
    per_row = min(params.featured_strip, rest)
    rows = _tracks(strip_y, strip_h, math.ceil(rest / per_row), gutter)
    cells = _tracks(margin, inner_w, per_row, gutter)
    for index in range(rest):
        row, col = divmod(index, per_row)
        (x, w), (y, h) = cells[col], rows[row]
        placements.append(_clamp(x, y, w, h, width, height))
    return placements


_LAYOUT_DISPATCH: Dict[LayoutKind, LayoutFunc] = {
    LayoutKind.GRID: grid_layout,
    LayoutKind.MOSAIC: mosaic_layout,
    LayoutKind.CIRCULAR: circular_layout,
    LayoutKind.DIAGONAL: diagonal_layout,
    LayoutKind.HEART: heart_layout,
    LayoutKind.FILMSTRIP: filmstrip_layout,
    LayoutKind.COVER: cover_layout,
    LayoutKind.COLUMNS: columns_layout,
    LayoutKind.ROWS: rows_layout,
    LayoutKind.FEATURED: featured_layout,
}


def compute_layout(
    count: int,
    kind: Union[LayoutKind, str],
    width: int,
    height: int,
    params: Optional[LayoutParams] = None,
) -> List[Placement]:
    """Return ``count`` placements for ``kind`` on a ``width`` x ``height`` canvas.

    Raises:
        InvalidParameter: for a negative or non-integer count, non-positive
            dimensions, an unknown kind, or parameters that leave no room.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise InvalidParameter("count", count, "must be a non-negative integer")
    validate_dimensions(width, height)
    layout_kind = LayoutKind.parse(kind)
    if count == 0:
        return []
    params = params or LayoutParams()
    placements = _LAYOUT_DISPATCH[layout_kind](count, float(width), float(height), params)
    LOGGER.debug("Computed %d %s placements on %dx%d", len(placements), layout_kind.value, width, height)
    return placements


def available_layouts() -> List[str]:
    return [kind.value for kind in _LAYOUT_DISPATCH]


__all__ = [
    "available_layouts",
    "compute_layout",
    "grid_dimensions",
    "heart_point",
]
