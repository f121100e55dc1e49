"""
Canvas - The global compositing surface.

Holds the canvas size, the preview background color and the view state.
None of these are stored on layers, and only the size reaches the export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from kitbash.core.data_types import TRANSPARENT, Color
from kitbash.core.transform import ViewState


logger = logging.getLogger(__name__)

DEFAULT_CANVAS_SIZE = (64, 64)


def validate_canvas_size(width: int, height: int) -> tuple[int, int]:
    if isinstance(width, bool) or isinstance(height, bool):
        raise ValueError(f"Canvas size must be integers, got ({width!r}, {height!r})")
    if int(width) != width or int(height) != height:
        raise ValueError(f"Canvas size must be integers, got ({width!r}, {height!r})")
    width, height = int(width), int(height)
    if width <= 0 or height <= 0:
        raise ValueError(f"Canvas size must be positive, got {width}x{height}")
    return (width, height)


@dataclass
class Canvas:
    """
    Canvas configuration for one session.

    Attributes:
        width, height: Output size in canvas pixels
        background_color: Preview fill, never baked into exported layers
        view: Pan/zoom of the preview
    """
    width: int = DEFAULT_CANVAS_SIZE[0]
    height: int = DEFAULT_CANVAS_SIZE[1]
    background_color: Color = TRANSPARENT
    view: ViewState = field(default_factory=ViewState)

    def __post_init__(self) -> None:
        self.width, self.height = validate_canvas_size(self.width, self.height)
        self.background_color = Color.parse(self.background_color)

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def resize(self, width: int, height: int) -> None:
        """
        Change the canvas size.

        Layers are not moved; any that now fall outside simply render
        partially or not at all.
        """
        self.width, self.height = validate_canvas_size(width, height)
        logger.debug("Canvas resized to %dx%d", self.width, self.height)

    def set_background(self, color) -> None:
        self.background_color = Color.parse(color)

    def pan_by(self, screen_dx: float, screen_dy: float) -> None:
        self.view = self.view.pan_by(screen_dx, screen_dy)

    def zoom_at(self, screen_point: tuple[float, float], factor: float) -> None:
        self.view = self.view.zoom_at(screen_point, factor)

    def set_zoom(self, zoom: float) -> None:
        self.view = self.view.with_zoom(zoom)

    def reset_view(self) -> None:
        self.view = self.view.reset()
