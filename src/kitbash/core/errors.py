"""
Errors - Exception hierarchy for the layer engine.

Every error raised by the core derives from KitbashError so callers can
catch the whole family. Validation errors also derive from the matching
builtin (ValueError / KeyError) for callers that only know those.
"""

from __future__ import annotations


class KitbashError(Exception):
    """Base class for all layer engine errors."""


class InvalidLayerError(KitbashError, ValueError):
    """Pixel buffer is malformed or has zero area."""


class LayerNotFoundError(KitbashError, KeyError):
    """No layer with the requested id exists in the store."""

    def __init__(self, layer_id: str):
        super().__init__(layer_id)
        self.layer_id = layer_id

    def __str__(self) -> str:
        return f"Layer not found: {self.layer_id}"


class InvalidTransformError(KitbashError, ValueError):
    """Position or scale is not finite, or scale is not positive."""


class InvalidExportScaleError(InvalidTransformError):
    """Export scale is not finite or not positive."""


class ImportDecodeError(KitbashError):
    """An image file could not be decoded."""


class MetadataError(KitbashError, ValueError):
    """A layer metadata document is malformed."""


class ExportError(KitbashError):
    """Base class for export failures. The layer store is never touched."""


class ExportAllocationError(ExportError):
    """Export bitmap dimensions exceed the configured bound."""


class ExportCancelledError(ExportError):
    """Export was cancelled before it finished."""


class ArchiveWriteError(ExportError):
    """The archive writer failed; no partial archive is kept."""
