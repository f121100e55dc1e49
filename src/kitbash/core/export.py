"""
Export Pipeline - Per-layer rasterization at an export scale.

An export turns an immutable ExportRequest into an ExportResult:
- one full-canvas transparent PNG per visible layer, back to front
- one metadata record per layer with the original canvas-space transform

Nothing is handed out until every layer has rendered. Any failure, including
cancellation, discards everything produced so far.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import numpy as np

from kitbash.core.data_types import ImageData
from kitbash.core.errors import ExportAllocationError, ExportCancelledError
from kitbash.core.layers import LayerStore, LayerView
from kitbash.core.metadata import LayerRecord, build_document, dumps
from kitbash.core.transform import export_size, placement, resolve_export_scale, round_half_away

if TYPE_CHECKING:
    from kitbash.core.archive import ArchiveWriter
    from kitbash.core.canvas import Canvas


logger = logging.getLogger(__name__)

DEFAULT_MAX_ARTIFACT_SIZE = (8192, 8192)

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True, slots=True)
class ExportLimits:
    """Largest export bitmap the pipeline will allocate."""
    max_width: int = DEFAULT_MAX_ARTIFACT_SIZE[0]
    max_height: int = DEFAULT_MAX_ARTIFACT_SIZE[1]

    def check(self, size: tuple[int, int]) -> None:
        width, height = size
        if width > self.max_width or height > self.max_height:
            raise ExportAllocationError(
                f"Export size {width}x{height} exceeds limit "
                f"{self.max_width}x{self.max_height}"
            )


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """
    Everything one export needs, copied out of the store at request time.

    Attributes:
        export_scale: Validated scale in [1.0, 10.0]
        requested_scale: Scale as supplied by the caller
        canvas_size: Canvas (width, height) in canvas pixels
        layers: Snapshot of every layer in render order
    """
    export_scale: float
    requested_scale: float
    canvas_size: tuple[int, int]
    layers: tuple[LayerView, ...]

    @classmethod
    def from_store(
        cls,
        store: LayerStore,
        canvas: Canvas,
        export_scale: float,
        limits: ExportLimits | None = None,
    ) -> ExportRequest:
        """
        Validate the scale and snapshot the store.

        A request whose output, at either the requested or the clamped scale,
        exceeds the limits is refused here, before any bitmap is allocated.

        Raises:
            InvalidExportScaleError: Scale is not finite or not positive
            ExportAllocationError: Output exceeds limits
        """
        scale = resolve_export_scale(export_scale)
        requested = float(export_scale)
        limits = limits or ExportLimits()
        limits.check(export_size(canvas.size, max(scale, requested)))
        return cls(
            export_scale=scale,
            requested_scale=requested,
            canvas_size=canvas.size,
            layers=store.snapshot(),
        )

    @property
    def output_size(self) -> tuple[int, int]:
        return export_size(self.canvas_size, self.export_scale)

    @property
    def visible_layers(self) -> tuple[LayerView, ...]:
        return tuple(l for l in self.layers if l.visible)


@dataclass(frozen=True, slots=True)
class ExportArtifact:
    """One encoded layer image."""
    filename: str
    layer_id: str
    z_index: int
    size: tuple[int, int]
    data: bytes


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Complete artifact set of one export."""
    images: tuple[ExportArtifact, ...]
    metadata: tuple[LayerRecord, ...]
    output_size: tuple[int, int]

    @property
    def metadata_json(self) -> str:
        return dumps(self.metadata)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def artifact_filename(z_index: int, name: str) -> str:
    """Deterministic archive entry name: zero-padded z index plus a safe name."""
    safe = _UNSAFE_CHARS.sub("_", name).strip("._") or "layer"
    return f"{z_index:03d}_{safe}.png"


class ExportPipeline:
    """
    Rasterizes each visible layer of a request into its own bitmap.

    Every layer is resampled straight from its original pixels at
    effective_scale = layer.scale * export_scale, using the same
    nearest-neighbor placement as the Compositor.
    """

    def __init__(self, on_progress: ProgressCallback | None = None):
        self._on_progress = on_progress

    def rasterize(self, request: ExportRequest, layer: LayerView) -> ImageData:
        """Render one layer onto a blank transparent export-size bitmap."""
        width, height = request.output_size
        try:
            out = np.zeros((height, width, 4), dtype=np.uint8)
        except MemoryError as e:
            raise ExportAllocationError(
                f"Could not allocate {width}x{height} export bitmap"
            ) from e

        s = request.export_scale
        position = (round_half_away(layer.x * s), round_half_away(layer.y * s))
        place = placement(position, layer.size, layer.scale * s, (width, height))
        if place.is_visible:
            region = place.clipped
            out[region.y0:region.y1, region.x0:region.x1] = place.sample(layer.pixels.pixels)
        return ImageData(pixels=out)

    def run(
        self,
        request: ExportRequest,
        cancelled: Callable[[], bool] | None = None,
    ) -> ExportResult:
        """
        Produce the full artifact set for a request.

        Raises:
            ExportAllocationError: A bitmap could not be allocated or encoded
            ExportCancelledError: cancelled() returned True between layers
        """
        visible = request.visible_layers
        total = len(visible)
        images: list[ExportArtifact] = []

        logger.info(
            "Exporting %d layer(s) at %gx -> %dx%d",
            total, request.export_scale, *request.output_size,
        )

        for i, layer in enumerate(visible):
            if cancelled is not None and cancelled():
                raise ExportCancelledError("Export cancelled")

            self._report(i, total, layer.name)
            bitmap = self.rasterize(request, layer)
            try:
                data = bitmap.to_png_bytes()
            except MemoryError as e:
                raise ExportAllocationError(f"Could not encode layer {layer.name!r}") from e

            images.append(ExportArtifact(
                filename=artifact_filename(layer.z_index, layer.name),
                layer_id=layer.id,
                z_index=layer.z_index,
                size=bitmap.size,
                data=data,
            ))
            logger.debug("Rendered layer %s (%s)", layer.id, layer.name)

        self._report(total, total, "")
        return ExportResult(
            images=tuple(images),
            metadata=tuple(build_document(request.layers)),
            output_size=request.output_size,
        )

    def export(
        self,
        request: ExportRequest,
        writer: ArchiveWriter,
        cancelled: Callable[[], bool] | None = None,
    ) -> ExportResult:
        """Run the export and hand the result to an archive writer."""
        result = self.run(request, cancelled)
        if cancelled is not None and cancelled():
            raise ExportCancelledError("Export cancelled")
        writer.write(result)
        return result

    def _report(self, done: int, total: int, name: str) -> None:
        if self._on_progress:
            self._on_progress(done, total, name)
