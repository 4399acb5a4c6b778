"""Blueprint describing the per-security aggregation steps."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

FINANCIAL_HISTORY = "financial_history"
VALUATION_STATUS = "valuation_status"
PE_HISTORY = "pe_history"
FAIR_PRICE = "fair_price"
PRICE_HISTORY = "price_history"
VOLATILITY = "volatility"
COMPANY_PROFILE = "company_profile"
DISCLOSURE_DATE = "disclosure_date"
ANALYST_RATINGS = "analyst_ratings"
PROFIT_FORECASTS = "profit_forecasts"


@dataclass(frozen=True)
class StepSpec:
    """Single aggregation step.

    ``source`` names the ``DataSources`` collaborator the step calls; derived
    steps have no source and only run once every step in ``depends_on`` is done.
    """

    key: str
    description: str
    source: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)

    @property
    def is_derived(self) -> bool:
        return self.source is None


def build_default_steps() -> List[StepSpec]:
    """Return the ordered steps for building one composite stock record."""
    return [
        StepSpec(
            key=FINANCIAL_HISTORY,
            description="Historical main financial indicators (EPS, revenue growth, ROE), newest first.",
            source=FINANCIAL_HISTORY,
        ),
        StepSpec(
            key=VALUATION_STATUS,
            description="Composite valuation score plus PE/PB/PS/PCF status labels.",
            source=VALUATION_STATUS,
        ),
        StepSpec(
            key=PE_HISTORY,
            description="Trailing P/E history used for the median multiple.",
            source=PE_HISTORY,
        ),
        StepSpec(
            key=FAIR_PRICE,
            description="Median P/E x (EPS x (1 + latest revenue growth)); undetermined before the report is out.",
            depends_on=[FINANCIAL_HISTORY, PE_HISTORY],
        ),
        StepSpec(
            key=PRICE_HISTORY,
            description="Full daily closing price history.",
            source=PRICE_HISTORY,
        ),
        StepSpec(
            key=VOLATILITY,
            description="Historical volatility of log returns scaled to the configured interval.",
            depends_on=[PRICE_HISTORY],
        ),
        StepSpec(
            key=COMPANY_PROFILE,
            description="Company profile passthrough (business scope, main products).",
            source=COMPANY_PROFILE,
        ),
        StepSpec(
            key=DISCLOSURE_DATE,
            description="Scheduled disclosure date of the next periodic report.",
            source=DISCLOSURE_DATE,
        ),
        StepSpec(
            key=ANALYST_RATINGS,
            description="Institution rating statistics.",
            source=ANALYST_RATINGS,
        ),
        StepSpec(
            key=PROFIT_FORECASTS,
            description="Consensus EPS forecasts.",
            source=PROFIT_FORECASTS,
        ),
    ]


def collaborator_steps(steps: Optional[List[StepSpec]] = None) -> List[StepSpec]:
    """Steps that call an external collaborator, in blueprint order."""
    return [step for step in (steps or build_default_steps()) if not step.is_derived]
