"""
Tests for settings.
"""

import json
import logging

import pytest

from kitbash.core import settings as settings_module
from kitbash.core.data_types import TRANSPARENT, Color
from kitbash.core.errors import InvalidExportScaleError
from kitbash.core.settings import Settings, load_settings, save_settings


class TestSettings:
    """Tests for Settings values."""

    def test_defaults(self):
        settings = Settings()
        assert settings.canvas_size == (64, 64)
        assert settings.background_color == TRANSPARENT
        assert settings.export_scale == 1.0
        assert settings.view_zoom == 4.0
        assert settings.archive_name == "kitbash_layers.zip"
        limits = settings.export_limits
        assert (limits.max_width, limits.max_height) == (8192, 8192)

    def test_dict_round_trip(self):
        settings = Settings(
            canvas_width=128,
            canvas_height=96,
            background_color=Color(10, 20, 30, 40),
            export_scale=3.5,
            max_artifact_width=5000,
            max_artifact_height=4000,
        )
        assert Settings.from_dict(settings.to_dict()) == settings

    def test_from_dict_defaults(self):
        assert Settings.from_dict({}) == Settings()

    def test_validated_clamps(self):
        settings = Settings(export_scale=20, view_zoom=100).validated()
        assert settings.export_scale == 10.0
        assert settings.view_zoom == 32.0

    def test_validated_parses_color(self):
        settings = Settings(background_color="#112233").validated()
        assert settings.background_color == Color(0x11, 0x22, 0x33, 255)

    @pytest.mark.parametrize("kwargs", [
        {"canvas_width": 0},
        {"canvas_height": -4},
        {"max_artifact_width": 0},
    ])
    def test_validated_rejects(self, kwargs):
        with pytest.raises(ValueError):
            Settings(**kwargs).validated()

    def test_validated_rejects_bad_scale(self):
        with pytest.raises(InvalidExportScaleError):
            Settings(export_scale=float("nan")).validated()


class TestSettingsFile:
    """Tests for settings persistence."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(Settings(canvas_width=32, export_scale=2.0), path)
        loaded = load_settings(path)
        assert loaded.canvas_width == 32
        assert loaded.export_scale == 2.0

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "nope.json") == Settings()

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]", '{"canvas_width": -1}'])
    def test_invalid_file_gives_defaults(self, tmp_path, caplog, content):
        path = tmp_path / "settings.json"
        path.write_text(content)
        with caplog.at_level(logging.WARNING):
            assert load_settings(path) == Settings()
        assert "Ignoring invalid settings file" in caplog.text

    def test_file_is_json(self, tmp_path):
        path = save_settings(Settings(), tmp_path / "sub" / "settings.json")
        data = json.loads(path.read_text())
        assert data["background_color"] == "#00000000"

    def test_default_path_not_created_on_load(self, tmp_path, monkeypatch):
        config_dir = tmp_path / "config" / "kitbash"
        monkeypatch.setattr(settings_module, "CONFIG_DIR", config_dir)

        assert load_settings() == Settings()
        assert not config_dir.exists()

        save_settings(Settings(canvas_width=8))
        assert (config_dir / "settings.json").exists()
        assert load_settings().canvas_width == 8
