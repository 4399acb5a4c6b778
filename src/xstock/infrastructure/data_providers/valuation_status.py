"""Score a security's current multiples against their own history."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

import numpy as np
import pandas as pd

from xstock.domain.errors import TransportError
from xstock.domain.models.stock import ValuationStatus

DEFAULT_MULTIPLES = {
    "PE_TTM": "市盈率",
    "PB_MRQ": "市净率",
    "PS_TTM": "市销率",
    "PCF_OCF_TTM": "市现率",
}

UNDERVALUED = "低估"
FAIR = "合理"
OVERVALUED = "高估"

LOW_PERCENTILE = 30.0
HIGH_PERCENTILE = 70.0


def label_for(percentile: float) -> str:
    if percentile < LOW_PERCENTILE:
        return UNDERVALUED
    if percentile > HIGH_PERCENTILE:
        return OVERVALUED
    return FAIR


def percentile_rank(history: Sequence[float], current: float) -> float:
    """Share of observations at or below ``current``, on a 0-100 scale."""
    vals = np.asarray(history, dtype=float)
    return float((vals <= current).mean() * 100.0)


def score_multiples(
    rows: Iterable[Mapping[str, Any]],
    multiples: Mapping[str, str] = DEFAULT_MULTIPLES,
) -> ValuationStatus:
    """Build a ``ValuationStatus`` from valuation rows ordered newest first.

    Each multiple is labelled by where its latest value sits in its own history;
    the composite score is the mean percentile (lower means cheaper).
    """
    df = pd.DataFrame(list(rows))
    labels: Dict[str, str] = {}
    percentiles: List[float] = []
    for column, display_name in multiples.items():
        if df.empty or column not in df:
            continue
        series = pd.to_numeric(df[column], errors="coerce").dropna()
        # Non-positive multiples (losses) carry no valuation signal, current or historical.
        if series.empty or series.iloc[0] <= 0:
            continue
        current = float(series.iloc[0])
        pct = percentile_rank(series[series > 0].to_numpy(), current)
        labels[display_name] = label_for(pct)
        percentiles.append(pct)
    if not percentiles:
        raise TransportError("no valuation data")
    return ValuationStatus(score=round(float(np.mean(percentiles)), 2), multiples=labels)
