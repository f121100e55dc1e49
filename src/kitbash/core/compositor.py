"""
Compositor - Preview rendering of the visible layer stack.

The preview is presentational only. Export never reads it; every exported
layer is resampled from its own original pixels instead.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
from numpy.typing import NDArray

from kitbash.core.canvas import Canvas
from kitbash.core.data_types import Color, ImageData
from kitbash.core.layers import Layer, LayerView
from kitbash.core.transform import placement


CHECKER_CELL = 8
CHECKER_LIGHT = Color(100, 100, 100)
CHECKER_DARK = Color(50, 50, 50)


def checkerboard(width: int, height: int, cell: int = CHECKER_CELL) -> NDArray[np.uint8]:
    """Opaque gray checkerboard used behind transparent backgrounds."""
    rows = (np.arange(height) // cell)[:, np.newaxis]
    cols = (np.arange(width) // cell)[np.newaxis, :]
    light = ((rows + cols) % 2) == 0
    out = np.empty((height, width, 4), dtype=np.uint8)
    out[...] = CHECKER_DARK.as_tuple()
    out[light] = CHECKER_LIGHT.as_tuple()
    return out


def blend_over(dst: NDArray[np.uint8], src: NDArray[np.uint8]) -> None:
    """
    Source-over alpha compositing of src onto dst, in place.

    Both arrays are (H, W, 4) uint8 with straight alpha and identical shape.
    """
    src_alpha = src[..., 3]
    if np.all(src_alpha == 255):
        dst[...] = src
        return
    if not np.any(src_alpha):
        return

    s = src.astype(np.float32) / 255.0
    d = dst.astype(np.float32) / 255.0
    sa = s[..., 3:4]
    da = d[..., 3:4]

    out_a = sa + da * (1.0 - sa)
    numerator = s[..., :3] * sa + d[..., :3] * da * (1.0 - sa)
    safe_a = np.where(out_a > 0.0, out_a, 1.0)
    out_rgb = np.where(out_a > 0.0, numerator / safe_a, 0.0)

    dst[..., :3] = np.rint(np.clip(out_rgb, 0.0, 1.0) * 255.0).astype(np.uint8)
    dst[..., 3:4] = np.rint(np.clip(out_a, 0.0, 1.0) * 255.0).astype(np.uint8)


class Compositor:
    """
    Renders visible layers into a single canvas-size RGBA bitmap.

    Layers are drawn back to front in ascending z order with nearest-neighbor
    sampling, clipped to the canvas. Layers entirely outside are skipped.
    """

    def __init__(self, checkerboard: bool = False):
        self.checkerboard = checkerboard

    def background(self, canvas: Canvas) -> NDArray[np.uint8]:
        width, height = canvas.size
        color = canvas.background_color
        if self.checkerboard and not color.is_opaque:
            out = checkerboard(width, height)
            if color.a:
                fill = np.empty_like(out)
                fill[...] = color.as_tuple()
                blend_over(out, fill)
            return out
        return ImageData.filled(width, height, color).pixels

    def render(self, canvas: Canvas, layers: Iterable[Layer | LayerView]) -> ImageData:
        """
        Composite layers onto the canvas background.

        Args:
            canvas: Supplies size and background color
            layers: Layers or snapshot views; order is taken from z_index

        Returns:
            ImageData of canvas.size
        """
        out = self.background(canvas)
        ordered = sorted(
            (l for l in layers if l.visible),
            key=lambda l: l.z_index,
        )
        for layer in ordered:
            place = placement(layer.position, layer.size, layer.scale, canvas.size)
            if not place.is_visible:
                continue
            region = place.clipped
            blend_over(
                out[region.y0:region.y1, region.x0:region.x1],
                place.sample(layer.pixels.pixels),
            )
        return ImageData(pixels=out)

    def render_pil(self, canvas: Canvas, layers: Iterable[Layer | LayerView]):
        """Render and convert to a PIL Image."""
        return self.render(canvas, layers).to_pil()
