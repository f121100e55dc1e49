"""
Layer Store - Ordered collection of positioned image layers.

The store owns every layer and its transform. It has no rendering logic and
performs no I/O; the Compositor and Export Pipeline only ever see the
read-only LayerView copies returned by snapshot().
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterator
from uuid import uuid4

from kitbash.core.data_types import ImageData
from kitbash.core.errors import InvalidLayerError, InvalidTransformError, LayerNotFoundError
from kitbash.core.transform import snap, validate_scale


logger = logging.getLogger(__name__)


IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp"}


def name_from_filename(filename: str) -> str:
    """Display label for an imported file: base name without its image extension."""
    path = PurePath(filename)
    if path.suffix.lower() in IMAGE_SUFFIXES and path.stem:
        return path.stem
    return path.name or filename


@dataclass(slots=True)
class Layer:
    """A single image placed on the canvas."""

    id: str
    name: str
    pixels: ImageData
    x: int = 0
    y: int = 0
    scale: float = 1.0
    z_index: int = 0
    visible: bool = True
    # Insertion order, used to break z_index ties.
    seq: int = 0

    @classmethod
    def create(
        cls,
        pixels: ImageData,
        name: str,
        *,
        z_index: int = 0,
        seq: int = 0,
        layer_id: str | None = None,
    ) -> Layer:
        return cls(
            id=layer_id if layer_id is not None else uuid4().hex,
            name=name,
            pixels=pixels,
            z_index=int(z_index),
            seq=int(seq),
        )

    @property
    def position(self) -> tuple[int, int]:
        return (self.x, self.y)

    @property
    def size(self) -> tuple[int, int]:
        """Native pixel size (width, height)."""
        return self.pixels.size

    def view(self) -> LayerView:
        return LayerView(
            id=self.id,
            name=self.name,
            pixels=self.pixels.copy(),
            x=self.x,
            y=self.y,
            scale=self.scale,
            z_index=self.z_index,
            visible=self.visible,
        )


@dataclass(frozen=True, slots=True)
class LayerView:
    """
    Read-only copy of a layer at snapshot time.

    Holds its own copy of the pixels, so later edits to the store are never
    observed through a view.
    """
    id: str
    name: str
    pixels: ImageData
    x: int
    y: int
    scale: float
    z_index: int
    visible: bool

    @property
    def position(self) -> tuple[int, int]:
        return (self.x, self.y)

    @property
    def size(self) -> tuple[int, int]:
        return self.pixels.size


class LayerStore:
    """
    Layers keyed by id, kept in a dense z order 0..N-1.

    Lower z_index is drawn first (back). Ties, which only appear when
    z values are restored from outside, are broken by insertion order.
    """

    def __init__(self) -> None:
        self._layers: dict[str, Layer] = {}
        self._seq = itertools.count()
        self._selected_id: str | None = None

    # -- queries ------------------------------------------------------------

    @property
    def layers(self) -> list[Layer]:
        """Layers in render order (ascending z_index, then insertion)."""
        return sorted(self._layers.values(), key=lambda l: (l.z_index, l.seq))

    @property
    def visible_layers(self) -> list[Layer]:
        return [l for l in self.layers if l.visible]

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def __iter__(self) -> Iterator[Layer]:
        yield from self.layers

    def get(self, layer_id: str) -> Layer | None:
        return self._layers.get(layer_id)

    def find_by_name(self, name: str) -> Layer | None:
        for layer in self.layers:
            if layer.name == name:
                return layer
        return None

    def _require(self, layer_id: str) -> Layer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise LayerNotFoundError(layer_id)
        return layer

    def snapshot(self) -> tuple[LayerView, ...]:
        """Immutable copies of every layer, in render order."""
        return tuple(layer.view() for layer in self.layers)

    # -- selection ----------------------------------------------------------

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @selected_id.setter
    def selected_id(self, layer_id: str | None) -> None:
        if layer_id is not None and layer_id not in self._layers:
            raise LayerNotFoundError(layer_id)
        self._selected_id = layer_id

    @property
    def selected_layer(self) -> Layer | None:
        if self._selected_id is None:
            return None
        return self._layers.get(self._selected_id)

    # -- mutation -----------------------------------------------------------

    def add(self, pixels: ImageData, name: str, *, layer_id: str | None = None) -> str:
        """
        Append a new layer on top of the stack.

        The pixel buffer is copied, so the layer owns it exclusively.

        Returns:
            The new layer's id

        Raises:
            InvalidLayerError: If the buffer has zero area
        """
        if not isinstance(pixels, ImageData):
            raise InvalidLayerError(f"Expected ImageData, got {type(pixels).__name__}")
        if pixels.is_empty:
            raise InvalidLayerError(f"Layer {name!r} has zero area ({pixels.width}x{pixels.height})")
        if layer_id is not None and layer_id in self._layers:
            raise InvalidLayerError(f"Layer id {layer_id!r} already exists")

        z = max((l.z_index for l in self._layers.values()), default=-1) + 1
        layer = Layer.create(
            pixels.copy(),
            name_from_filename(name),
            z_index=z,
            seq=next(self._seq),
            layer_id=layer_id,
        )
        self._layers[layer.id] = layer
        logger.debug("Added layer %s (%s) %dx%d at z=%d", layer.id, layer.name, *layer.size, z)
        return layer.id

    def remove(self, layer_id: str) -> Layer | None:
        """Remove a layer. Returns None if it does not exist."""
        removed = self._layers.pop(layer_id, None)
        if removed is None:
            return None
        if self._selected_id == layer_id:
            self._selected_id = None
        self._renumber(self.layers)
        logger.debug("Removed layer %s (%s)", removed.id, removed.name)
        return removed

    def clear(self) -> None:
        self._layers.clear()
        self._selected_id = None

    def reorder(self, layer_id: str, new_z: int) -> None:
        """
        Move a layer to new_z and renumber all layers into 0..N-1.

        new_z is clamped to the valid range. Moving to an adjacent slot swaps
        exactly two layers; every other layer keeps its z_index.
        """
        layer = self._require(layer_id)
        new_z = int(new_z)
        ordered = [l for l in self.layers if l.id != layer_id]
        new_z = min(max(new_z, 0), len(ordered))
        ordered.insert(new_z, layer)
        self._renumber(ordered)
        logger.debug("Moved layer %s to z=%d", layer_id, new_z)

    def raise_layer(self, layer_id: str) -> None:
        """Move one step towards the front."""
        self.reorder(layer_id, self._require(layer_id).z_index + 1)

    def lower_layer(self, layer_id: str) -> None:
        """Move one step towards the back."""
        self.reorder(layer_id, self._require(layer_id).z_index - 1)

    def set_transform(
        self,
        layer_id: str,
        position: tuple[float, float] | None = None,
        scale: float | None = None,
    ) -> Layer:
        """
        Update position and/or scale.

        Both values are validated before anything is stored, so a rejected
        call leaves the layer untouched. Positions are snapped to the pixel
        grid.

        Raises:
            LayerNotFoundError: Unknown id
            InvalidTransformError: Non-finite position, or scale not finite and > 0
        """
        layer = self._require(layer_id)
        new_position = self._check_position(position) if position is not None else None
        new_scale = validate_scale(scale) if scale is not None else None

        if new_position is not None:
            layer.x, layer.y = new_position
        if new_scale is not None:
            layer.scale = new_scale
        return layer

    def translate(self, layer_id: str, dx: float, dy: float) -> Layer:
        """Move a layer by a canvas-space delta (snapped)."""
        layer = self._require(layer_id)
        return self.set_transform(layer_id, position=(layer.x + dx, layer.y + dy))

    def reset_transform(self, layer_id: str) -> Layer:
        return self.set_transform(layer_id, position=(0, 0), scale=1.0)

    def set_visibility(self, layer_id: str, visible: bool) -> Layer:
        layer = self._require(layer_id)
        layer.visible = bool(visible)
        return layer

    def rename(self, layer_id: str, name: str) -> Layer:
        layer = self._require(layer_id)
        layer.name = str(name)
        return layer

    def restore(
        self,
        layer_id: str,
        *,
        position: tuple[float, float],
        scale: float,
        z_index: int,
        visible: bool,
        name: str | None = None,
    ) -> Layer:
        """
        Set every editable property at once (metadata re-import).

        z_index is stored as given; call normalize_order() after restoring a
        batch so the stack is dense again.
        """
        layer = self._require(layer_id)
        new_position = self._check_position(position)
        new_scale = validate_scale(scale)
        layer.x, layer.y = new_position
        layer.scale = new_scale
        layer.z_index = int(z_index)
        layer.visible = bool(visible)
        if name is not None:
            layer.name = str(name)
        return layer

    def normalize_order(self) -> None:
        """Renumber into 0..N-1 keeping the current (z_index, insertion) order."""
        self._renumber(self.layers)

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _check_position(position: tuple[float, float]) -> tuple[int, int]:
        try:
            x, y = float(position[0]), float(position[1])
        except (TypeError, ValueError, IndexError):
            raise InvalidTransformError(f"Position must be an (x, y) pair, got {position!r}") from None
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidTransformError(f"Position must be finite, got {position!r}")
        return snap((x, y))

    def _renumber(self, ordered: list[Layer]) -> None:
        for z, layer in enumerate(ordered):
            layer.z_index = z
