"""Statistics primitives used by the volatility and valuation estimators."""
from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from xstock.domain.errors import InsufficientDataError


def log_returns(prices: Sequence[float]) -> List[float]:
    """Natural log of end/start price for each consecutive pair, latest pair first."""
    if len(prices) < 2:
        raise InsufficientDataError(f"At least 2 prices are required, got {len(prices)}")
    values = np.asarray(prices, dtype=float)
    if not np.all(values > 0):
        raise InsufficientDataError("Log returns need strictly positive prices")
    # Reverse so the most recent period comes first; order does not affect dispersion.
    returns = np.log(values[1:] / values[:-1])[::-1]
    return [float(v) for v in returns]


def sample_std_dev(values: Sequence[float]) -> float:
    """Bessel-corrected (n-1) standard deviation."""
    if len(values) < 2:
        raise InsufficientDataError(f"Sample standard deviation needs at least 2 values, got {len(values)}")
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def annualize(std_dev: float, factor: float) -> float:
    return std_dev * math.sqrt(factor)


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        raise InsufficientDataError("Median of an empty series is undefined")
    return float(np.median(np.asarray(values, dtype=float)))
