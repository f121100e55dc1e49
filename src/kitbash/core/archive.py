"""
Archive Writers - Package export results into a ZIP or a directory.

Writers stage everything next to the destination and only move it into
place once every entry has been written. A failed write leaves the
destination as it was.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path

from kitbash.core.data_types import ImageData
from kitbash.core.errors import ArchiveWriteError
from kitbash.core.export import ExportResult
from kitbash.core.metadata import METADATA_FILENAME, LayerRecord, loads


logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_NAME = "kitbash_layers.zip"

_ARTIFACT_NAME = re.compile(r"^\d{3,}_.+\.png$")


class ArchiveWriter(ABC):
    """Destination for a completed export."""

    @abstractmethod
    def write(self, result: ExportResult) -> Path:
        """Write all images and the metadata document. Returns the destination."""
        ...


class ZipArchiveWriter(ArchiveWriter):
    """Deflated ZIP with one PNG per layer plus data.json."""

    def __init__(self, path: str | Path, include_metadata: bool = True):
        self.path = Path(path)
        self.include_metadata = include_metadata

    def write(self, result: ExportResult) -> Path:
        tmp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".part", dir=self.path.parent
            )
            tmp_path = Path(name)
            with os.fdopen(fd, "wb") as f:
                with zipfile.ZipFile(f, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                    for artifact in result.images:
                        zf.writestr(artifact.filename, artifact.data)
                    if self.include_metadata:
                        zf.writestr(METADATA_FILENAME, result.metadata_json)
            os.replace(tmp_path, self.path)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise ArchiveWriteError(f"Failed to write archive {self.path}: {e}") from e

        logger.info("Wrote %d layer(s) to %s", len(result.images), self.path)
        return self.path


class DirectoryArchiveWriter(ArchiveWriter):
    """Individual PNG files (and data.json) in a directory."""

    def __init__(self, directory: str | Path, include_metadata: bool = True):
        self.directory = Path(directory)
        self.include_metadata = include_metadata

    def write(self, result: ExportResult) -> Path:
        staging: Path | None = None
        try:
            parent = self.directory.resolve().parent
            parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{self.directory.name}.", dir=parent))

            entries = [(a.filename, a.data) for a in result.images]
            if self.include_metadata:
                entries.append((METADATA_FILENAME, result.metadata_json.encode("utf-8")))
            for filename, data in entries:
                (staging / filename).write_bytes(data)

            self.directory.mkdir(parents=True, exist_ok=True)
            for filename, _ in entries:
                os.replace(staging / filename, self.directory / filename)

            # Layer images from an earlier export that this result does not describe
            written = {filename for filename, _ in entries}
            for stale in self.directory.iterdir():
                if stale.name not in written and _ARTIFACT_NAME.match(stale.name) and stale.is_file():
                    stale.unlink()
                    logger.debug("Removed stale layer image %s", stale)
        except OSError as e:
            raise ArchiveWriteError(f"Failed to write layers to {self.directory}: {e}") from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info("Wrote %d layer(s) to %s", len(result.images), self.directory)
        return self.directory


def read_archive_metadata(path: str | Path) -> list[LayerRecord]:
    """Load the metadata document from an exported ZIP."""
    with zipfile.ZipFile(path, "r") as zf:
        return loads(zf.read(METADATA_FILENAME))


def read_archive_images(path: str | Path) -> dict[str, ImageData]:
    """Decode every layer image in an exported ZIP, keyed by entry name."""
    images: dict[str, ImageData] = {}
    with zipfile.ZipFile(path, "r") as zf:
        for info in zf.infolist():
            if info.filename.lower().endswith(".png"):
                images[info.filename] = ImageData.from_bytes(
                    zf.read(info.filename), name=info.filename
                )
    return images
