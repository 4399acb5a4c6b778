"""Domain models describing the per-security data assembled for a report run."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from xstock.domain.errors import InsufficientDataError
from xstock.domain.services.statistics import median


class Undetermined:
    """Sentinel for a fair price whose inputs have not been disclosed yet."""

    _instance: Optional["Undetermined"] = None

    def __new__(cls) -> "Undetermined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDETERMINED"

    def __reduce__(self):
        return (Undetermined, ())


UNDETERMINED = Undetermined()

FairPrice = Union[float, Undetermined]


@dataclass(frozen=True)
class PricePoint:
    date: str
    price: float


@dataclass(frozen=True)
class PriceSeries:
    """Chronological daily closing prices, one entry per trading day."""

    points: Tuple[PricePoint, ...] = ()

    def __post_init__(self) -> None:
        seen = set()
        for point in self.points:
            if point.date in seen:
                raise ValueError(f"Duplicate price date {point.date!r}")
            if not point.price > 0:
                raise ValueError(f"Non-positive price {point.price!r} on {point.date!r}")
            seen.add(point.date)

    @classmethod
    def from_columns(cls, dates: Sequence[str], prices: Sequence[float]) -> "PriceSeries":
        """Build a series from parallel date/price columns (the eniu layout)."""
        if len(dates) != len(prices):
            raise ValueError(f"Mismatched price columns: {len(dates)} dates vs {len(prices)} prices")
        return cls(points=tuple(PricePoint(date=str(d), price=float(p)) for d, p in zip(dates, prices)))

    @property
    def prices(self) -> List[float]:
        return [point.price for point in self.points]

    @property
    def latest(self) -> Optional[PricePoint]:
        return self.points[-1] if self.points else None

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class FinancialSnapshot:
    """Key figures of one reporting period (ratios are fractions, ROE is percent; ``eps`` is None when undisclosed)."""

    report_date: str
    report_type: str
    eps: Optional[float]
    revenue_growth_ratio: Optional[float] = None
    net_profit_growth_ratio: Optional[float] = None
    roe: Optional[float] = None


FinancialHistory = Tuple[FinancialSnapshot, ...]


@dataclass(frozen=True)
class PEPoint:
    date: str
    pe: float


@dataclass(frozen=True)
class PERecord:
    """Trailing P/E observations over time."""

    points: Tuple[PEPoint, ...] = ()

    @property
    def values(self) -> List[float]:
        return [point.pe for point in self.points]

    def median(self) -> float:
        """Median multiple of the series, i.e. the security's normal valuation."""
        if not self.points:
            raise InsufficientDataError("P/E history is empty; median is undefined")
        return median(self.values)

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class ValuationStatus:
    """Composite valuation score plus a qualitative label per multiple."""

    score: float
    multiples: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "multiples", MappingProxyType(dict(self.multiples)))


@dataclass(frozen=True)
class CompanyProfile:
    """Opaque company information passed through to the export layer."""

    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass(frozen=True)
class OrgRating:
    """Aggregated institution ratings over one look-back window."""

    period: str
    rating: str
    buy_count: int = 0
    add_count: int = 0
    neutral_count: int = 0
    reduce_count: int = 0
    sell_count: int = 0


@dataclass(frozen=True)
class ProfitForecast:
    """Consensus EPS forecast for a fiscal year."""

    year: int
    eps: Optional[float]
    institution_count: int = 0


@dataclass(frozen=True)
class StockIdentity:
    """Listing snapshot identifying a security before its data is aggregated."""

    security_code: str
    name: str
    industry: str
    price: float
    roe: Optional[float] = None

    @property
    def plain_code(self) -> str:
        return self.security_code.split(".")[0]


@dataclass(frozen=True)
class CompositeStockRecord:
    """Everything known about one security for a single report run."""

    identity: StockIdentity
    financial_history: FinancialHistory
    valuation_status: ValuationStatus
    pe_history: PERecord
    fair_price: FairPrice
    price_history: PriceSeries
    volatility: float
    company_profile: CompanyProfile
    next_disclosure_date: str
    ratings: Tuple[OrgRating, ...]
    forecasts: Tuple[ProfitForecast, ...]

    @property
    def security_code(self) -> str:
        return self.identity.security_code

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def industry(self) -> str:
        return self.identity.industry

    @property
    def price(self) -> float:
        return self.identity.price

    @property
    def roe(self) -> Optional[float]:
        return self.identity.roe

    @property
    def has_fair_price(self) -> bool:
        return not isinstance(self.fair_price, Undetermined)


def sort_by_roe(records: Iterable[CompositeStockRecord]) -> List[CompositeStockRecord]:
    """Return records ordered by ROE descending; records without ROE go last."""
    return sorted(
        records,
        key=lambda r: (r.roe is None, -(r.roe if r.roe is not None else 0.0)),
    )
