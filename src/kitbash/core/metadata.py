"""
Layer Metadata - Transform records written alongside exported layers.

The metadata document is the editable source of truth for a layout: an
ordered list (back to front) of one record per layer with the original
canvas-space transform. Export scale never appears in it, so applying a
document back onto a store reproduces the exact transforms.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable

from kitbash.core.errors import InvalidTransformError, MetadataError
from kitbash.core.layers import Layer, LayerStore, LayerView
from kitbash.core.transform import validate_scale


logger = logging.getLogger(__name__)

METADATA_FILENAME = "data.json"


@dataclass(frozen=True, slots=True)
class LayerRecord:
    """One layer's entry in the metadata document."""

    id: str
    name: str
    x: int
    y: int
    scale: float
    z_index: int
    visible: bool

    @classmethod
    def from_layer(cls, layer: Layer | LayerView) -> LayerRecord:
        return cls(
            id=layer.id,
            name=layer.name,
            x=int(layer.x),
            y=int(layer.y),
            scale=float(layer.scale),
            z_index=int(layer.z_index),
            visible=bool(layer.visible),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LayerRecord:
        """
        Parse and validate one record.

        Raises:
            MetadataError: Missing keys or wrong value types
        """
        if not isinstance(data, dict):
            raise MetadataError(f"Layer record must be an object, got {type(data).__name__}")
        missing = [k for k in ("id", "name", "x", "y", "scale", "z_index", "visible") if k not in data]
        if missing:
            raise MetadataError(f"Layer record missing keys: {', '.join(missing)}")

        def integer(key: str) -> int:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MetadataError(f"{key} must be an integer, got {value!r}")
            if not math.isfinite(value) or int(value) != value:
                raise MetadataError(f"{key} must be an integer, got {value!r}")
            return int(value)

        scale = data["scale"]
        if isinstance(scale, bool) or not isinstance(scale, (int, float)):
            raise MetadataError(f"scale must be a number, got {scale!r}")
        try:
            scale = validate_scale(scale)
        except InvalidTransformError as e:
            raise MetadataError(str(e)) from e

        if not isinstance(data["visible"], bool):
            raise MetadataError(f"visible must be a boolean, got {data['visible']!r}")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            x=integer("x"),
            y=integer("y"),
            scale=scale,
            z_index=integer("z_index"),
            visible=data["visible"],
        )


def build_document(layers: Iterable[Layer | LayerView]) -> list[LayerRecord]:
    """Records for every layer (visible or not), ordered back to front."""
    return [LayerRecord.from_layer(l) for l in layers]


def dumps(records: Iterable[LayerRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2)


def loads(text: str | bytes) -> list[LayerRecord]:
    """
    Parse a metadata document.

    Raises:
        MetadataError: If the JSON is invalid or is not a list of records
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MetadataError(f"Failed to parse layer metadata: {e}") from e
    if not isinstance(data, list):
        raise MetadataError("Layer metadata must be a list of records")
    records = [LayerRecord.from_dict(item) for item in data]
    return sorted(records, key=lambda r: r.z_index)


def save_metadata(path: Path, records: Iterable[LayerRecord]) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(records))
    return path


def load_metadata(path: Path) -> list[LayerRecord]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Layer metadata not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return loads(f.read())


def apply_metadata(store: LayerStore, records: Iterable[LayerRecord]) -> list[LayerRecord]:
    """
    Restore transforms, visibility, names and order from records.

    Each record is matched to a layer by id, falling back to the first
    not-yet-matched layer with the same name. The whole document is matched
    before anything is changed.

    Returns:
        Records that matched no layer
    """
    plan: list[tuple[Layer, LayerRecord]] = []
    unmatched: list[LayerRecord] = []
    claimed: set[str] = set()

    records = list(records)
    for record in records:
        layer = store.get(record.id)
        if layer is None or layer.id in claimed:
            layer = next(
                (l for l in store.layers if l.name == record.name and l.id not in claimed),
                None,
            )
        if layer is None:
            unmatched.append(record)
            continue
        claimed.add(layer.id)
        plan.append((layer, record))

    for layer, record in plan:
        store.restore(
            layer.id,
            position=(record.x, record.y),
            scale=record.scale,
            z_index=record.z_index,
            visible=record.visible,
            name=record.name,
        )
    store.normalize_order()

    if unmatched:
        logger.warning("%d layer record(s) matched no layer", len(unmatched))
    return unmatched
