"""Application-wide configuration defaults and helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Base directory for resolving relative paths.
BASE_DIR = Path(__file__).resolve().parent


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    """Parse an integer env var, falling back to ``default`` on bad input."""
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Config:
    """Runtime configuration loaded from environment variables."""

    debug: bool = False
    output_dir: Path = BASE_DIR / "reports"
    http_timeout: float = 10.0
    http_max_retries: int = 3
    proxy_url: Optional[str] = None
    batch_workers: int = 4
    fetch_workers: int = 8
    parallel_fetch: bool = True
    volatility_interval: str = "YEAR"
    low_price_threshold: float = 30.0

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration instance using environment overrides."""
        config = cls(
            debug=_to_bool(os.getenv("APP_DEBUG")),
            output_dir=Path(os.getenv("OUTPUT_DIR", BASE_DIR / "reports")),
            http_timeout=_to_float(os.getenv("HTTP_TIMEOUT"), 10.0),
            http_max_retries=max(_to_int(os.getenv("HTTP_MAX_RETRIES"), 3), 1),
            proxy_url=os.getenv("PROXY_URL") or None,
            batch_workers=max(_to_int(os.getenv("BATCH_WORKERS"), 4), 1),
            fetch_workers=max(_to_int(os.getenv("FETCH_WORKERS"), 8), 1),
            parallel_fetch=_to_bool(os.getenv("PARALLEL_FETCH"), default=True),
            volatility_interval=os.getenv("VOLATILITY_INTERVAL", "YEAR").strip().upper() or "YEAR",
            low_price_threshold=_to_float(os.getenv("LOW_PRICE_THRESHOLD"), 30.0),
        )
        return config

    def ensure_directories(self) -> None:
        """Create directories needed for runtime artifacts."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
