"""Historical volatility estimator.

Method (see https://goodcalculators.com/historical-volatility-calculator/):

1. Take prices sampled at a fixed interval.
2. For each period compute ln(end price / start price).
3. The sample standard deviation of those logs is the per-period volatility.
4. Scale by sqrt(number of periods per horizon), e.g. sqrt(250) trading days
   per year, to express it on a longer horizon.
"""
from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Sequence, Union

from xstock.domain.models.stock import PriceSeries
from xstock.domain.services.statistics import annualize, log_returns, sample_std_dev

logger = logging.getLogger(__name__)


class Interval(str, Enum):
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


SCALING_FACTORS: Mapping[Interval, float] = MappingProxyType(
    {
        Interval.DAY: 1.0,
        Interval.WEEK: 5.0,
        Interval.MONTH: 21.75,
        Interval.YEAR: 250.0,
    }
)


def scaling_factor(interval: Union[Interval, str]) -> float:
    """Return the sqrt-time scaling factor; unrecognized intervals fall back to YEAR."""
    if isinstance(interval, Interval):
        return SCALING_FACTORS[interval]
    try:
        resolved = Interval(str(interval).strip().upper())
    except ValueError:
        logger.debug("Unknown volatility interval %r; using YEAR", interval)
        resolved = Interval.YEAR
    return SCALING_FACTORS[resolved]


def estimate(prices: Union[PriceSeries, Sequence[float]], interval: Union[Interval, str] = Interval.YEAR) -> float:
    """Annualized (or interval-scaled) volatility of a price series."""
    values = prices.prices if isinstance(prices, PriceSeries) else list(prices)
    stdev = sample_std_dev(log_returns(values))
    logger.debug("stdev=%s over %d prices", stdev, len(values))
    return annualize(stdev, scaling_factor(interval))
