# ABOUTME: Tests for configuration loading and validation.
# ABOUTME: Verifies Pydantic Settings behavior, defaults, and extraction category flags.

from pathlib import Path

import pytest
from pydantic import ValidationError

from narrative_ledger.config import (
    CategoryTemperatures,
    ExtractionSettings,
    Settings,
    TrackSettings,
)


class TestSettings:
    """Tests for Settings configuration class."""

    def test_settings_default_values(self, tmp_path: Path) -> None:
        """Settings should load with sensible defaults."""
        settings = Settings(data_dir=tmp_path, _env_file=None)

        assert settings.gemini_model == "gemini-2.5-flash"
        assert settings.log_format == "console"
        assert settings.extraction.snapshot_interval == 50
        assert settings.extraction.max_fanout_concurrency == 4

    def test_settings_secret_values_hidden(self, mock_settings: Settings) -> None:
        """Secret values should not be exposed in string representation."""
        assert "test-api-key" not in str(mock_settings)

    def test_settings_paths_are_path_objects(self, mock_settings: Settings) -> None:
        """Path settings should be Path objects."""
        assert isinstance(mock_settings.data_dir, Path)

    def test_nested_env_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Nested extraction settings are read with a double underscore delimiter."""
        monkeypatch.setenv("EXTRACTION__TRACK__CLIMATE", "false")
        monkeypatch.setenv("EXTRACTION__SNAPSHOT_INTERVAL", "10")

        settings = Settings(data_dir=tmp_path, _env_file=None)

        assert settings.extraction.track.climate is False
        assert settings.extraction.snapshot_interval == 10

    def test_invalid_interval_rejected(self) -> None:
        """Snapshot interval must be positive."""
        with pytest.raises(ValidationError):
            ExtractionSettings(snapshot_interval=0)


class TestExtractionSettings:
    """Tests for category flags and temperatures."""

    def test_all_enabled_by_default(self) -> None:
        """Every category is tracked by default."""
        settings = ExtractionSettings()
        for category in ("time", "location", "props", "climate", "characters", "narrative"):
            assert settings.is_enabled(category)

    def test_climate_depends_on_time_and_location(self) -> None:
        """Climate needs both time and location tracking."""
        assert not ExtractionSettings(track=TrackSettings(time=False)).is_enabled("climate")
        assert not ExtractionSettings(track=TrackSettings(location=False)).is_enabled("climate")

    def test_props_depend_on_location(self) -> None:
        """Props need location tracking."""
        assert not ExtractionSettings(track=TrackSettings(location=False)).is_enabled("props")

    def test_relationships_depend_on_characters(self) -> None:
        """Relationships and narrative need character tracking."""
        settings = ExtractionSettings(track=TrackSettings(characters=False))
        assert not settings.is_enabled("relationships")
        assert not settings.is_enabled("narrative")

    def test_unknown_category_disabled(self) -> None:
        """Unknown categories never run."""
        assert not ExtractionSettings().is_enabled("weather")

    def test_category_temperature(self) -> None:
        """Category temperatures default to None."""
        temperatures = CategoryTemperatures(scene=0.9)
        assert temperatures.for_category("scene") == 0.9
        assert temperatures.for_category("time") is None
        assert temperatures.for_category("bogus") is None
