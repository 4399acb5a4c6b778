"""Partition composite stock records into overlapping report views."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from xstock.domain.models.stock import CompositeStockRecord

ALL_VIEW = "all"
INDUSTRY_SUFFIX = " sector"

DEFAULT_LOW_PRICE = 30.0
DEFAULT_LOW_VOLATILITY = 0.1
DEFAULT_HIGH_VOLATILITY = 0.5


@dataclass(frozen=True)
class ReportView:
    """A named, possibly overlapping subset of the record collection."""

    name: str
    predicate: Callable[[CompositeStockRecord], bool]

    def matches(self, record: CompositeStockRecord) -> bool:
        return bool(self.predicate(record))


def industry_view_name(industry: str) -> str:
    return f"{industry}{INDUSTRY_SUFFIX}"


def _fmt(value: float) -> str:
    return f"{value:g}"


def distinct_industries(records: Iterable[CompositeStockRecord]) -> List[str]:
    """Industries in first-seen order."""
    seen: Dict[str, None] = {}
    for record in records:
        seen.setdefault(record.industry, None)
    return list(seen)


def default_views(
    records: Sequence[CompositeStockRecord],
    *,
    low_price: float = DEFAULT_LOW_PRICE,
    low_volatility: float = DEFAULT_LOW_VOLATILITY,
    high_volatility: float = DEFAULT_HIGH_VOLATILITY,
) -> List[ReportView]:
    """Fixed price/volatility views plus one view per observed industry.

    Volatility bands are [0, low], (low, high] and (high, inf).
    """
    views = [
        ReportView(ALL_VIEW, lambda r: True),
        ReportView(f"price ≤ {_fmt(low_price)}", lambda r: r.price <= low_price),
        ReportView(f"volatility ≤ {_fmt(low_volatility)}", lambda r: r.volatility <= low_volatility),
        ReportView(
            f"{_fmt(low_volatility)} < volatility ≤ {_fmt(high_volatility)}",
            lambda r: low_volatility < r.volatility <= high_volatility,
        ),
        ReportView(f"volatility > {_fmt(high_volatility)}", lambda r: r.volatility > high_volatility),
    ]
    for industry in distinct_industries(records):
        views.append(ReportView(industry_view_name(industry), lambda r, ind=industry: r.industry == ind))
    return views


def classify(
    records: Iterable[CompositeStockRecord],
    views: Optional[Sequence[ReportView]] = None,
) -> Dict[str, List[CompositeStockRecord]]:
    """Map each view name to the records it selects, preserving input order."""
    records = list(records)
    for idx, record in enumerate(records):
        if record is None:
            raise ValueError(f"Record at position {idx} is None")
    if views is None:
        views = default_views(records)
    return {view.name: [record for record in records if view.matches(record)] for view in views}
