# src/barmap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/barmap/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `BARMAP_CONFIG_PATH`
- a small whitelist of environment variables (e.g., `BARMAP_MONGO_URI`)

Design rule:
- Tuning knobs (separation distance, recent-window length, retry bound) live in YAML,
  not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from barmap.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `barmap.config`."""
    text = resources.files("barmap.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Barmap"
    log_level: str = "INFO"


class CollectionNames(BaseModel):
    locations: str = "locations"
    ratings: str = "ratings"


class StoreSettings(BaseModel):
    backend: Literal["memory", "mongo"] = "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "barmap"
    mongo_timeout_ms: int = Field(5000, ge=1)
    collections: CollectionNames = Field(default_factory=CollectionNames)


class ProximitySettings(BaseModel):
    # Two locations closer than this are treated as the same physical site.
    min_separation_km: float = Field(0.05, gt=0)
    # Flat degrees-to-km factor for the bounding-box pre-filter.
    km_per_degree: float = Field(111.0, gt=0)
    default_search_radius_km: float = Field(5.0, gt=0)
    max_search_radius_km: float = Field(50.0, gt=0)


class RatingSettings(BaseModel):
    recent_window_days: int = Field(30, ge=1)
    review_max_length: int = Field(500, ge=1)
    max_write_attempts: int = Field(3, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    ratings: RatingSettings = Field(default_factory=RatingSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: the whitelist is intentionally small; anything else belongs in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("BARMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend = os.getenv("BARMAP_STORE_BACKEND")
    if backend:
        data.setdefault("store", {})["backend"] = backend.strip().lower()

    mongo_uri = os.getenv("BARMAP_MONGO_URI")
    if mongo_uri:
        data.setdefault("store", {})["mongo_uri"] = mongo_uri

    mongo_db = os.getenv("BARMAP_MONGO_DATABASE")
    if mongo_db:
        data.setdefault("store", {})["mongo_database"] = mongo_db

    return data


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load and validate settings without caching (used by tests and the CLI `--config`)."""
    load_dotenv_if_present()
    path = config_path or os.getenv("BARMAP_CONFIG_PATH")
    raw = _read_yaml_file(path) if path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    return load_settings()


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
