"""Settings helpers to centralize configuration access."""
from __future__ import annotations

from typing import Optional

from config import Config


def load_settings(
    debug_override: Optional[bool] = None,
    *,
    interval_override: Optional[str] = None,
    parallel_override: Optional[bool] = None,
) -> Config:
    """Return a Config instance, applying optional runtime overrides."""
    config = Config.from_env()
    if debug_override is not None:
        config.debug = debug_override
    if interval_override:
        config.volatility_interval = interval_override.strip().upper()
    if parallel_override is not None:
        config.parallel_fetch = parallel_override
    return config
