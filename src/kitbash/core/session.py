"""
Session - One editing session: a canvas, its layers and the settings.

This is the seam the front end talks to. It imports images through Pillow,
renders the preview and starts exports; the heavy lifting stays in the
store, compositor and export pipeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from kitbash.core.archive import DirectoryArchiveWriter, ZipArchiveWriter
from kitbash.core.canvas import Canvas
from kitbash.core.compositor import Compositor
from kitbash.core.data_types import ImageData
from kitbash.core.errors import ImportDecodeError
from kitbash.core.export import ExportPipeline, ExportRequest, ExportResult
from kitbash.core.layers import LayerStore
from kitbash.core.metadata import LayerRecord, apply_metadata
from kitbash.core.settings import Settings
from kitbash.core.transform import ViewState


logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    """Outcome of a batch import."""
    added: list[str] = field(default_factory=list)
    failed: dict[Path, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class Session:
    """
    Canvas plus layer store for a single editor.

    There is exactly one mutator; exports take a snapshot and never hold a
    live reference into the store.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = (settings or Settings()).validated()
        self.canvas = Canvas(
            width=self.settings.canvas_width,
            height=self.settings.canvas_height,
            background_color=self.settings.background_color,
            view=ViewState(zoom=self.settings.view_zoom),
        )
        self.store = LayerStore()
        self.compositor = Compositor(checkerboard=self.settings.checkerboard)

    # -- import ---------------------------------------------------------------

    def add_image(self, image: ImageData, name: str) -> str:
        return self.store.add(image, name)

    def import_file(self, path: str | Path) -> str:
        """
        Decode an image file and add it as a new top layer.

        Raises:
            FileNotFoundError: If the file does not exist
            ImportDecodeError: If the file cannot be decoded
            InvalidLayerError: If the image has zero area
        """
        path = Path(path)
        image = ImageData.from_file(path)
        return self.store.add(image, path.name)

    def import_files(self, paths: Iterable[str | Path]) -> ImportReport:
        """
        Import several files. A file that fails is logged and skipped.
        """
        report = ImportReport()
        for path in paths:
            path = Path(path)
            try:
                report.added.append(self.import_file(path))
            except (FileNotFoundError, ImportDecodeError, ValueError) as e:
                logger.warning("Failed to import %s: %s", path, e)
                report.failed[path] = str(e)
        return report

    # -- preview ----------------------------------------------------------------

    def render_preview(self) -> ImageData:
        return self.compositor.render(self.canvas, self.store.layers)

    # -- export -----------------------------------------------------------------

    def build_export_request(self, export_scale: float | None = None) -> ExportRequest:
        scale = self.settings.export_scale if export_scale is None else export_scale
        return ExportRequest.from_store(
            self.store, self.canvas, scale, self.settings.export_limits
        )

    def export(
        self,
        export_scale: float | None = None,
        cancelled: Callable[[], bool] | None = None,
    ) -> ExportResult:
        """Render the artifact set without writing it anywhere."""
        request = self.build_export_request(export_scale)
        return ExportPipeline().run(request, cancelled)

    def export_archive(
        self,
        path: str | Path | None = None,
        export_scale: float | None = None,
    ) -> ExportResult:
        """Export all visible layers into a ZIP archive."""
        request = self.build_export_request(export_scale)
        writer = ZipArchiveWriter(path or self.settings.archive_name)
        return ExportPipeline().export(request, writer)

    def export_directory(
        self,
        directory: str | Path,
        export_scale: float | None = None,
    ) -> ExportResult:
        """Export all visible layers as individual PNG files."""
        request = self.build_export_request(export_scale)
        return ExportPipeline().export(request, DirectoryArchiveWriter(directory))

    # -- layout -----------------------------------------------------------------

    def restore_layout(self, records: Iterable[LayerRecord]) -> list[LayerRecord]:
        """Apply saved layer metadata. Returns records that matched no layer."""
        return apply_metadata(self.store, records)
