"""Fair-price heuristic: historical median P/E times next-period EPS.

``fair price = median(P/E history) * (EPS * (1 + latest quarter revenue growth))``

The median multiple approximates the market's normal valuation of the stock;
growing the latest EPS by the most recent quarterly revenue growth gives a rough
forward earnings figure. When the latest quarterly report is not out yet the
result is ``UNDETERMINED`` rather than a guess.
"""
from __future__ import annotations

from typing import Optional, Sequence

from xstock.domain.models.stock import (
    UNDETERMINED,
    FairPrice,
    FinancialSnapshot,
    PERecord,
    Undetermined,
)


def estimate_fair_price(
    pe_history: PERecord, latest_eps: Optional[float], growth_ratio: Optional[float]
) -> FairPrice:
    """Return the fair price, or ``UNDETERMINED`` when EPS or the growth ratio is absent.

    Raises ``InsufficientDataError`` when the P/E history is empty.
    """
    if latest_eps is None or growth_ratio is None:
        return UNDETERMINED
    return pe_history.median() * (latest_eps * (1 + growth_ratio))


def latest_growth_ratio(history: Sequence[FinancialSnapshot]) -> Optional[float]:
    """Revenue growth of the most recent period, ``None`` if not disclosed."""
    if not history:
        return None
    return history[0].revenue_growth_ratio


def fair_price_for(history: Sequence[FinancialSnapshot], pe_history: PERecord) -> FairPrice:
    ratio = latest_growth_ratio(history)
    if ratio is None:
        return UNDETERMINED
    return estimate_fair_price(pe_history, history[0].eps, ratio)


def upside(fair_price: FairPrice, price: Optional[float]) -> Optional[float]:
    """Relative distance from the current price to the fair price."""
    if isinstance(fair_price, Undetermined) or price is None or price <= 0:
        return None
    return fair_price / price - 1.0
