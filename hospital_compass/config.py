"""
Configuration helpers for the HealthCare Compass backend.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _parse_weights(value: str | None) -> tuple[float, float, float]:
    """Parse "rating,volume,distance" weights, e.g. "0.4,0.4,0.2"."""
    if not value:
        return (0.4, 0.4, 0.2)
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if len(parts) != 3:
        raise ValueError(
            f"COMPASS_RECOMMENDED_WEIGHTS needs three values, got {value!r}"
        )
    rating, volume, distance = (float(p) for p in parts)
    return (rating, volume, distance)


def _env(name: str, default: str, cast=str):
    """Field whose default is read from ``name`` when Settings() is built."""
    return field(default_factory=lambda: cast(os.getenv(name, default)))


@dataclass(frozen=True)
class Settings:
    """Runtime configuration pulled from environment variables."""

    data_csv: Path = _env(
        "COMPASS_DATA_CSV", str(BASE_DIR / "Frontend" / "data" / "merged_data.csv"), Path
    )
    frontend_dir: Path = _env("COMPASS_FRONTEND_DIR", str(BASE_DIR / "Frontend"), Path)
    database_url: str = _env("COMPASS_DATABASE_URL", f"sqlite:///{BASE_DIR / 'compass.db'}")
    # Use environment variable in production
    secret_key: str = field(
        default_factory=lambda: os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    )

    page_size: int = _env("COMPASS_PAGE_SIZE", "5", int)
    max_visible_pages: int = _env("COMPASS_MAX_VISIBLE_PAGES", "5", int)
    compare_limit: int = _env("COMPASS_COMPARE_LIMIT", "3", int)
    top_hospitals_limit: int = _env("COMPASS_TOP_LIMIT", "10", int)

    # Fallback when the caller does not share a location (Boston, MA)
    default_lat: float = _env("COMPASS_DEFAULT_LAT", "42.3601", float)
    default_lon: float = _env("COMPASS_DEFAULT_LON", "-71.0589", float)

    recommended_weights: tuple[float, float, float] = field(
        default_factory=lambda: _parse_weights(os.getenv("COMPASS_RECOMMENDED_WEIGHTS"))
    )

    def __post_init__(self):
        if self.page_size <= 0:
            raise ValueError("COMPASS_PAGE_SIZE must be positive")
        if not 3 <= self.compare_limit <= 10:
            raise ValueError("COMPASS_COMPARE_LIMIT must be between 3 and 10")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached settings instance.

    Settings are computed once per process; tests build their own
    ``Settings`` and pass it to ``create_app`` instead.
    """

    return Settings()
