import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    fetch_timeout: float = 15.0
    duplicate_window_days: int = 7
    duplicate_threshold: float = 0.85
    duplicate_ignore_years: bool = True
    venue_reuse_confidence: int = 90
    sync_batch_size: int = 50
    sync_max_batches: int = 100
    sync_workers: int = 4
    sync_render_js: bool = False
    rate_limit_requests: int = 20
    rate_limit_window_seconds: int = 3600
    site_url: str = "https://meetmeatthefair.com"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset or bad values."""
        defaults = cls()
        return cls(
            data_dir=Path(os.environ.get("DATA_DIR", defaults.data_dir)),
            fetch_timeout=_env_float("FETCH_TIMEOUT", defaults.fetch_timeout),
            duplicate_window_days=_env_int("DUPLICATE_WINDOW_DAYS", defaults.duplicate_window_days),
            duplicate_threshold=_env_float("DUPLICATE_THRESHOLD", defaults.duplicate_threshold),
            duplicate_ignore_years=_env_bool("DUPLICATE_IGNORE_YEARS", defaults.duplicate_ignore_years),
            venue_reuse_confidence=_env_int("VENUE_REUSE_CONFIDENCE", defaults.venue_reuse_confidence),
            sync_batch_size=_env_int("SYNC_BATCH_SIZE", defaults.sync_batch_size),
            sync_max_batches=_env_int("SYNC_MAX_BATCHES", defaults.sync_max_batches),
            sync_workers=_env_int("SYNC_WORKERS", defaults.sync_workers),
            sync_render_js=_env_bool("SYNC_RENDER_JS", defaults.sync_render_js),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", defaults.rate_limit_requests),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds),
            site_url=os.environ.get("SITE_URL", defaults.site_url),
        )
