"""
Settings - Configuration surface for canvas and export defaults.

Settings are plain values handed in by the front end. The core never trusts
them blindly: validated() clamps the export scale and rejects bad sizes,
and each consumer validates again at its own boundary.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from kitbash.core.archive import DEFAULT_ARCHIVE_NAME
from kitbash.core.canvas import DEFAULT_CANVAS_SIZE, validate_canvas_size
from kitbash.core.data_types import TRANSPARENT, Color
from kitbash.core.export import DEFAULT_MAX_ARTIFACT_SIZE, ExportLimits
from kitbash.core.transform import DEFAULT_ZOOM, clamp_zoom, resolve_export_scale


logger = logging.getLogger(__name__)

# Settings storage directory
CONFIG_DIR = Path.home() / ".config" / "kitbash"


def get_settings_path() -> Path:
    """Default settings file. The directory is created by save_settings."""
    return CONFIG_DIR / "settings.json"


@dataclass
class Settings:
    """
    User-adjustable defaults.

    These mirror the controls of the editor: canvas setup, preview
    background, view zoom and the export panel.
    """
    # Canvas
    canvas_width: int = DEFAULT_CANVAS_SIZE[0]
    canvas_height: int = DEFAULT_CANVAS_SIZE[1]
    background_color: Color = field(default_factory=lambda: TRANSPARENT)
    checkerboard: bool = True

    # View
    view_zoom: float = DEFAULT_ZOOM

    # Export
    export_scale: float = 1.0
    max_artifact_width: int = DEFAULT_MAX_ARTIFACT_SIZE[0]
    max_artifact_height: int = DEFAULT_MAX_ARTIFACT_SIZE[1]
    archive_name: str = DEFAULT_ARCHIVE_NAME

    @property
    def canvas_size(self) -> tuple[int, int]:
        return (self.canvas_width, self.canvas_height)

    @property
    def export_limits(self) -> ExportLimits:
        return ExportLimits(self.max_artifact_width, self.max_artifact_height)

    def validated(self) -> Settings:
        """
        Return a copy with every value checked.

        Raises:
            ValueError: Non-positive sizes or limits, unparseable color
            InvalidExportScaleError: Export scale not finite or not positive
        """
        width, height = validate_canvas_size(self.canvas_width, self.canvas_height)
        if self.max_artifact_width <= 0 or self.max_artifact_height <= 0:
            raise ValueError(
                f"Artifact limits must be positive, got "
                f"{self.max_artifact_width}x{self.max_artifact_height}"
            )
        if not math.isfinite(float(self.view_zoom)):
            raise ValueError(f"View zoom must be finite, got {self.view_zoom}")
        return replace(
            self,
            canvas_width=width,
            canvas_height=height,
            background_color=Color.parse(self.background_color),
            view_zoom=clamp_zoom(self.view_zoom),
            export_scale=resolve_export_scale(self.export_scale),
            max_artifact_width=int(self.max_artifact_width),
            max_artifact_height=int(self.max_artifact_height),
            archive_name=self.archive_name or DEFAULT_ARCHIVE_NAME,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "canvas_width": self.canvas_width,
            "canvas_height": self.canvas_height,
            "background_color": Color.parse(self.background_color).to_hex(),
            "checkerboard": self.checkerboard,
            "view_zoom": self.view_zoom,
            "export_scale": self.export_scale,
            "max_artifact_width": self.max_artifact_width,
            "max_artifact_height": self.max_artifact_height,
            "archive_name": self.archive_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create settings from dictionary. Missing keys use defaults."""
        defaults = cls()
        return cls(
            canvas_width=data.get("canvas_width", defaults.canvas_width),
            canvas_height=data.get("canvas_height", defaults.canvas_height),
            background_color=Color.parse(data.get("background_color", defaults.background_color)),
            checkerboard=bool(data.get("checkerboard", defaults.checkerboard)),
            view_zoom=data.get("view_zoom", defaults.view_zoom),
            export_scale=data.get("export_scale", defaults.export_scale),
            max_artifact_width=data.get("max_artifact_width", defaults.max_artifact_width),
            max_artifact_height=data.get("max_artifact_height", defaults.max_artifact_height),
            archive_name=data.get("archive_name", defaults.archive_name),
        )


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from disk.

    A missing file yields defaults. An unreadable or invalid file is logged
    and also yields defaults, so a bad config never blocks startup.
    """
    path = path or get_settings_path()
    if not path.exists():
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("settings file must contain an object")
        return Settings.from_dict(data).validated()
    except (OSError, json.JSONDecodeError, ValueError, TypeError) as e:
        logger.warning("Ignoring invalid settings file %s: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Write settings as JSON. Returns the path written."""
    path = path or get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    return path
