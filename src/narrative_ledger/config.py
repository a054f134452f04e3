# ABOUTME: Centralized configuration using Pydantic Settings.
# ABOUTME: Loads generator, storage, logging, and extraction settings from environment and .env.

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackSettings(BaseModel):
    """Which narrative categories are extracted at all."""

    time: bool = True
    location: bool = True
    props: bool = True
    climate: bool = True
    characters: bool = True
    relationships: bool = True
    scene: bool = True
    narrative: bool = True
    chapters: bool = True


class CategoryTemperatures(BaseModel):
    """Per-category sampling temperature overrides (None keeps extractor defaults)."""

    time: float | None = None
    location: float | None = None
    props: float | None = None
    climate: float | None = None
    characters: float | None = None
    relationships: float | None = None
    scene: float | None = None
    narrative: float | None = None
    chapters: float | None = None

    def for_category(self, category: str) -> float | None:
        return getattr(self, category, None)


class CustomPrompt(BaseModel):
    """User-supplied replacement text for one extractor prompt."""

    system_prompt: str | None = None
    user_template: str | None = None


class ExtractionSettings(BaseModel):
    """Settings consumed read-only by the extraction scheduler."""

    track: TrackSettings = Field(default_factory=TrackSettings)
    temperatures: CategoryTemperatures = Field(default_factory=CategoryTemperatures)
    prompt_temperatures: dict[str, float] = Field(default_factory=dict)
    custom_prompts: dict[str, CustomPrompt] = Field(default_factory=dict)
    snapshot_interval: int = Field(default=50, ge=1)
    max_fanout_concurrency: int = Field(default=4, ge=1)
    generation_timeout: float = Field(default=90.0, gt=0)
    parse_retries: int = Field(default=2, ge=0)
    retry_temperature: float = 0.1

    def is_enabled(self, category: str) -> bool:
        """Category flag combined with the flags it depends on."""
        track = self.track
        if category == "climate":
            return track.climate and track.time and track.location
        if category == "props":
            return track.props and track.location
        if category == "relationships":
            return track.relationships and track.characters
        if category == "narrative":
            return track.narrative and track.relationships and track.characters and track.scene
        return bool(getattr(track, category, False))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # AI / Gemini
    gemini_api_key: SecretStr | None = None
    gcp_project: str | None = None
    gcp_location: str = "global"
    gemini_model: str = "gemini-2.5-flash"
    ai_top_p: float = 0.95
    ai_max_output_tokens: int = 4096
    ai_max_attempts: int = 3

    # Paths
    data_dir: Path = Path("data")

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"

    # Extraction
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables and .env file. Nested
    extraction settings use ``__`` as delimiter, e.g.
    ``EXTRACTION__TRACK__CLIMATE=false``.
    """
    return Settings()
