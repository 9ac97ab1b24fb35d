"""
Configuration management for ClipCore using Pydantic.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, ClassVar, Literal, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clipcore.config.rules import HeuristicRules

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class ExtractionSettings(BaseModel):
    """Named, overridable thresholds used by the extraction heuristics."""

    parser: Literal["html.parser", "lxml"] = Field(
        default="html.parser", description="BeautifulSoup tree builder used to parse snapshots."
    )

    # Image classifier
    icon_max_px: int = Field(default=50, ge=1, description="Images with both sides at or below this are icons.")
    thumbnail_max_px: int = Field(default=100, ge=1, description="CDN renditions at or below this width are thumbnails.")
    author_photo_min_px: int = Field(default=100, ge=1, description="Lower bound of the square author-photo band.")
    author_photo_max_px: int = Field(default=300, ge=1, description="Upper bound of the square author-photo band.")
    author_photo_square_tolerance: int = Field(default=20, ge=0, description="Max |w-h| for a square image.")
    byline_text_min: int = Field(default=50, ge=0, description="Ancestor text window start for byline phrases.")
    byline_text_max: int = Field(default=300, ge=1, description="Ancestor text window end for byline phrases.")
    ancestor_scan_depth: int = Field(default=5, ge=1, description="How many ancestors the classifier inspects.")

    # Caption heuristic
    caption_min_len: int = Field(default=2, ge=1)
    caption_max_len: int = Field(default=80, ge=1)
    caption_wrapper_max_text: int = Field(default=200, ge=1, description="Max text of a thin wrapper around an img.")

    # Boilerplate cleaner
    metadata_leaf_max: int = Field(default=100, ge=1)
    metadata_container_max: int = Field(default=300, ge=1)
    author_card_max: int = Field(default=500, ge=1)
    faq_section_max: int = Field(default=5000, ge=1)

    # Generic article extractor
    min_readability_chars: int = Field(default=200, ge=0)
    min_readability_blocks: int = Field(default=3, ge=0)
    min_container_text: int = Field(default=200, ge=0)
    title_max_length: int = Field(default=50, ge=1)
    lead_image_min_px: int = Field(default=200, ge=1)
    readability_min_text_length: int = Field(default=25, ge=0)
    readability_retry_length: int = Field(default=250, ge=0)

    # Social-post extractor
    social_container_min_text: int = Field(default=50, ge=0)
    social_image_min_px: int = Field(default=100, ge=1)
    social_title_preview: int = Field(default=50, ge=1)
    permalink_timeout_ms: int = Field(default=500, ge=1, description="Timeout of the page-context permalink lookup.")
    permalink_ancestor_depth: int = Field(default=5, ge=1)
    permalink_origin: str = Field(default="https://x.com")

    @field_validator("author_photo_max_px")
    @classmethod
    def validate_author_band(cls, v: int, info: ValidationInfo) -> int:
        """Ensure the author-photo band is not inverted."""
        low = info.data.get("author_photo_min_px")
        if low is not None and v < low:
            raise ValueError("author_photo_max_px must be >= author_photo_min_px")
        return v

    @field_validator("caption_max_len")
    @classmethod
    def validate_caption_window(cls, v: int, info: ValidationInfo) -> int:
        low = info.data.get("caption_min_len")
        if low is not None and v < low:
            raise ValueError("caption_max_len must be >= caption_min_len")
        return v

    @property
    def permalink_timeout(self) -> float:
        """Permalink bridge timeout in seconds."""
        return self.permalink_timeout_ms / 1000.0


class MonitoringConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(
        default=None,
        description="Path to log file. If None, logs to console.",
    )

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "ClipCore"
    version: str = "0.1.0"
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    rules: HeuristicRules = Field(default_factory=HeuristicRules)

    model_config = SettingsConfigDict(env_prefix="CLIPCORE_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    paths_to_check = [
        current_dir / "clipcore.yaml",
        current_dir / "clipcore.yml",
        current_dir / "config.yaml",
        current_dir / "config.yml",
    ]
    for path in paths_to_check:
        if path.exists():
            return path
    return None


# --- Lazy Configuration Loader ---


class LazyConfig:
    """
    A proxy for the Config object that delays its loading and validation
    until an attribute is first accessed. This prevents configuration errors
    from crashing the application on import.
    """

    _config: ClassVar[Config | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        if self.__class__._config is None:
            with self.__class__._lock:
                if self.__class__._config is None:
                    self.__class__._config = self._load_config_with_fallback()
        return getattr(self.__class__._config, name)

    @classmethod
    def reset(cls) -> None:
        """Drop the loaded configuration so the next access reloads it."""
        with cls._lock:
            cls._config = None

    def _load_config_with_fallback(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        config_path = find_config_file()
        if config_path:
            try:
                log.info("Lazy loading configuration from: %s", config_path)
                return Config.from_yaml(config_path)
            except (ValidationError, FileNotFoundError, yaml.YAMLError) as e:
                log.error(
                    "Failed to load or validate configuration from '%s': %s. "
                    "Falling back to default settings. Please check your config file.",
                    config_path,
                    e,
                    exc_info=log.getEffectiveLevel() <= logging.DEBUG,
                )
        else:
            log.info("No config file found. Using default settings for lazy load.")

        try:
            return Config()
        except ValidationError as e:
            log.critical("FATAL: Default configuration is invalid: %s", e, exc_info=True)
            raise RuntimeError(f"Default configuration is invalid, cannot start: {e}") from e


# --- Global Settings Instance ---
settings: "Config" = cast("Config", LazyConfig())
