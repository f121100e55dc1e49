"""
Transform Engine - Coordinate spaces, snapping and nearest-neighbor sampling.

Three coordinate spaces are involved:
- Canvas space: the logical pixel grid of the output, origin top-left
- Screen space: canvas space seen through the view (pan, then zoom)
- Export space: canvas space multiplied by the export scale

Everything here is pure. The only classes are small frozen values
(ViewState, Rect, Placement) and DragSession, which accumulates pointer
motion for one drag gesture.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

import numpy as np
from numpy.typing import NDArray

from kitbash.core.errors import InvalidExportScaleError, InvalidTransformError


MIN_ZOOM = 0.1
MAX_ZOOM = 32.0
DEFAULT_ZOOM = 4.0

MIN_EXPORT_SCALE = 1.0
MAX_EXPORT_SCALE = 10.0


# ---------------------------------------------------------------------------
# Snapping and validation
# ---------------------------------------------------------------------------

def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return int(value)
    value = float(value)
    if not math.isfinite(value):
        raise InvalidTransformError(f"Coordinate must be finite, got {value}")
    # a - whole is exact for finite floats
    a = abs(value)
    whole = math.floor(a)
    n = whole + 1 if a - whole >= 0.5 else whole
    return n if value >= 0 else -n


def snap(point: tuple[float, float]) -> tuple[int, int]:
    """Snap a canvas-space point to the integer pixel grid."""
    x, y = point
    return (round_half_away(x), round_half_away(y))


def validate_scale(scale: float) -> float:
    """Return scale as a float, rejecting non-finite and non-positive values."""
    try:
        value = float(scale)
    except (TypeError, ValueError):
        raise InvalidTransformError(f"Scale must be a number, got {scale!r}") from None
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidTransformError(f"Scale must be finite and > 0, got {scale!r}")
    return value


def resolve_export_scale(scale: float) -> float:
    """
    Validate and clamp a caller-supplied export scale into [1.0, 10.0].

    The caller's range checking is not trusted: out of range values are
    clamped, values that are not finite or not positive are rejected.
    """
    try:
        value = float(scale)
    except (TypeError, ValueError):
        raise InvalidExportScaleError(f"Export scale must be a number, got {scale!r}") from None
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidExportScaleError(f"Export scale must be finite and > 0, got {scale!r}")
    return min(max(value, MIN_EXPORT_SCALE), MAX_EXPORT_SCALE)


def scaled_size(size: tuple[int, int], scale: float) -> tuple[int, int]:
    """Native (width, height) multiplied by scale and rounded. May be zero."""
    width, height = size
    return (
        max(round_half_away(width * scale), 0),
        max(round_half_away(height * scale), 0),
    )


def export_size(canvas_size: tuple[int, int], export_scale: float) -> tuple[int, int]:
    """Pixel size of one export bitmap."""
    return scaled_size(canvas_size, export_scale)


# ---------------------------------------------------------------------------
# Screen space
# ---------------------------------------------------------------------------

def clamp_zoom(zoom: float) -> float:
    zoom = float(zoom)
    if not math.isfinite(zoom):
        raise InvalidTransformError(f"Zoom must be finite, got {zoom}")
    return min(max(zoom, MIN_ZOOM), MAX_ZOOM)


@dataclass(frozen=True, slots=True)
class ViewState:
    """
    Pan and zoom of the preview. Presentation only, never affects export.

    screen = (canvas - pan) * zoom
    canvas = screen / zoom + pan
    """
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = DEFAULT_ZOOM

    def __post_init__(self) -> None:
        if not (math.isfinite(self.pan_x) and math.isfinite(self.pan_y)):
            raise InvalidTransformError(f"Pan must be finite, got ({self.pan_x}, {self.pan_y})")
        object.__setattr__(self, "zoom", clamp_zoom(self.zoom))

    @property
    def pan(self) -> tuple[float, float]:
        return (self.pan_x, self.pan_y)

    def canvas_to_screen(self, point: tuple[float, float]) -> tuple[float, float]:
        x, y = point
        return ((x - self.pan_x) * self.zoom, (y - self.pan_y) * self.zoom)

    def screen_to_canvas(self, point: tuple[float, float]) -> tuple[float, float]:
        x, y = point
        return (x / self.zoom + self.pan_x, y / self.zoom + self.pan_y)

    def with_zoom(self, zoom: float) -> ViewState:
        return replace(self, zoom=zoom)

    def pan_by(self, screen_dx: float, screen_dy: float) -> ViewState:
        """Move the view by a screen-space drag (content follows the pointer)."""
        return replace(
            self,
            pan_x=self.pan_x - screen_dx / self.zoom,
            pan_y=self.pan_y - screen_dy / self.zoom,
        )

    def zoom_at(self, screen_point: tuple[float, float], factor: float) -> ViewState:
        """Zoom by factor keeping the canvas point under screen_point fixed."""
        anchor = self.screen_to_canvas(screen_point)
        zoom = clamp_zoom(self.zoom * float(factor))
        sx, sy = screen_point
        return ViewState(
            pan_x=anchor[0] - sx / zoom,
            pan_y=anchor[1] - sy / zoom,
            zoom=zoom,
        )

    def reset(self) -> ViewState:
        return ViewState()


# ---------------------------------------------------------------------------
# Nearest-neighbor sampling
# ---------------------------------------------------------------------------

def nearest_indices(
    src_len: int,
    dst_len: int,
    start: int = 0,
    stop: int | None = None,
) -> NDArray[np.intp]:
    """
    Source indices for destination samples start..stop-1.

    index = floor(d * src_len / dst_len), clamped to [0, src_len - 1].
    Integer arithmetic keeps the mapping exact for any size.
    """
    if stop is None:
        stop = dst_len
    if src_len <= 0 or dst_len <= 0 or stop <= start:
        return np.zeros(0, dtype=np.intp)
    dst = np.arange(start, stop, dtype=np.int64)
    idx = (dst * src_len) // dst_len
    return np.clip(idx, 0, src_len - 1).astype(np.intp)


def nearest_neighbor(pixels: NDArray, target_size: tuple[int, int]) -> NDArray:
    """Resample an (H, W, C) array to target_size (width, height). No blending."""
    tw, th = target_size
    sh, sw = pixels.shape[0], pixels.shape[1]
    cols = nearest_indices(sw, tw)
    rows = nearest_indices(sh, th)
    return pixels[rows[:, np.newaxis], cols[np.newaxis, :]]


@dataclass(frozen=True, slots=True)
class Rect:
    """Half-open integer rectangle [x0, x1) x [y0, y1)."""
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return max(self.x1 - self.x0, 0)

    @property
    def height(self) -> int:
        return max(self.y1 - self.y0, 0)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def intersect(self, other: Rect) -> Rect:
        return Rect(
            max(self.x0, other.x0),
            max(self.y0, other.y0),
            min(self.x1, other.x1),
            min(self.y1, other.y1),
        )


@dataclass(frozen=True, slots=True)
class Placement:
    """Where a layer lands on a target surface, already clipped."""
    dest: Rect
    clipped: Rect
    rows: NDArray[np.intp]
    cols: NDArray[np.intp]

    @property
    def is_visible(self) -> bool:
        return not self.clipped.is_empty

    def sample(self, pixels: NDArray) -> NDArray:
        """Source pixels for the clipped region, nearest-neighbor sampled."""
        return pixels[self.rows[:, np.newaxis], self.cols[np.newaxis, :]]


def placement(
    position: tuple[int, int],
    source_size: tuple[int, int],
    scale: float,
    surface_size: tuple[int, int],
) -> Placement:
    """
    Compute destination and clipped rectangles of a layer on a surface.

    The destination spans position .. position + scaled_size. Only the part
    inside the surface is sampled, so a huge scale never allocates the full
    scaled layer.
    """
    sw, sh = source_size
    tw, th = scaled_size(source_size, scale)
    x, y = position
    dest = Rect(x, y, x + tw, y + th)
    clipped = dest.intersect(Rect(0, 0, surface_size[0], surface_size[1]))
    if clipped.is_empty:
        empty = np.zeros(0, dtype=np.intp)
        return Placement(dest=dest, clipped=clipped, rows=empty, cols=empty)
    cols = nearest_indices(sw, tw, clipped.x0 - x, clipped.x1 - x)
    rows = nearest_indices(sh, th, clipped.y0 - y, clipped.y1 - y)
    return Placement(dest=dest, clipped=clipped, rows=rows, cols=cols)


# ---------------------------------------------------------------------------
# Interactive dragging
# ---------------------------------------------------------------------------

class DragSession:
    """
    Accumulates screen-space pointer motion for one layer drag.

    The stored position is snap(origin + total_delta / zoom), recomputed from
    the drag origin on every event so sub-pixel motion adds up instead of
    being rounded away event by event.
    """

    def __init__(self, origin: tuple[int, int], zoom: float):
        self._origin = (int(origin[0]), int(origin[1]))
        self._zoom = clamp_zoom(zoom)
        self._dx = 0.0
        self._dy = 0.0

    @property
    def origin(self) -> tuple[int, int]:
        return self._origin

    def update(self, screen_dx: float, screen_dy: float) -> tuple[int, int]:
        """Add a pointer delta and return the snapped canvas position."""
        self._dx += float(screen_dx)
        self._dy += float(screen_dy)
        return self.position

    @property
    def position(self) -> tuple[int, int]:
        return snap((
            self._origin[0] + self._dx / self._zoom,
            self._origin[1] + self._dy / self._zoom,
        ))
