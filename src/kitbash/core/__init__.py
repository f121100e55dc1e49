"""
Core module - Layer model, compositing and export.

This module provides the building blocks for Kitbash:
- Layers: Layer store and read-only snapshots
- Transform: Coordinate spaces, snapping, nearest-neighbor sampling
- Compositor: Preview rendering
- Export: Per-layer rasterization, metadata and archive writers
- Session: Canvas, layers and settings for one editor
"""

from kitbash.core.errors import (
    ArchiveWriteError,
    ExportAllocationError,
    ExportCancelledError,
    ExportError,
    ImportDecodeError,
    InvalidExportScaleError,
    InvalidLayerError,
    InvalidTransformError,
    KitbashError,
    LayerNotFoundError,
    MetadataError,
)

from kitbash.core.data_types import (
    TRANSPARENT,
    Color,
    ImageData,
)

from kitbash.core.transform import (
    DragSession,
    ViewState,
    nearest_neighbor,
    resolve_export_scale,
    snap,
)

from kitbash.core.layers import (
    Layer,
    LayerStore,
    LayerView,
)

from kitbash.core.canvas import Canvas
from kitbash.core.compositor import Compositor

from kitbash.core.export import (
    ExportArtifact,
    ExportLimits,
    ExportPipeline,
    ExportRequest,
    ExportResult,
)

from kitbash.core.metadata import (
    LayerRecord,
    apply_metadata,
)

from kitbash.core.archive import (
    ArchiveWriter,
    DirectoryArchiveWriter,
    ZipArchiveWriter,
)

from kitbash.core.execution import (
    ExportEngine,
    ExportJob,
    ExportProgress,
    ExportStatus,
)

from kitbash.core.settings import Settings
from kitbash.core.session import Session


__all__ = [
    # errors.py
    "ArchiveWriteError",
    "ExportAllocationError",
    "ExportCancelledError",
    "ExportError",
    "ImportDecodeError",
    "InvalidExportScaleError",
    "InvalidLayerError",
    "InvalidTransformError",
    "KitbashError",
    "LayerNotFoundError",
    "MetadataError",
    # data_types.py
    "TRANSPARENT",
    "Color",
    "ImageData",
    # transform.py
    "DragSession",
    "ViewState",
    "nearest_neighbor",
    "resolve_export_scale",
    "snap",
    # layers.py
    "Layer",
    "LayerStore",
    "LayerView",
    # canvas.py / compositor.py
    "Canvas",
    "Compositor",
    # export.py
    "ExportArtifact",
    "ExportLimits",
    "ExportPipeline",
    "ExportRequest",
    "ExportResult",
    # metadata.py
    "LayerRecord",
    "apply_metadata",
    # archive.py
    "ArchiveWriter",
    "DirectoryArchiveWriter",
    "ZipArchiveWriter",
    # execution.py
    "ExportEngine",
    "ExportJob",
    "ExportProgress",
    "ExportStatus",
    # settings.py / session.py
    "Settings",
    "Session",
]
