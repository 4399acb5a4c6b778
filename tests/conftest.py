from __future__ import annotations

from typing import Any, Dict

import pytest

from xstock.domain.models.stock import (
    CompanyProfile,
    CompositeStockRecord,
    FinancialSnapshot,
    OrgRating,
    PEPoint,
    PERecord,
    PriceSeries,
    ProfitForecast,
    StockIdentity,
    ValuationStatus,
)
from xstock.workflows.aggregator import DataSources


def sample_history(growth=0.2):
    return [
        FinancialSnapshot(
            report_date="2024-03-31",
            report_type="一季报",
            eps=1.0,
            revenue_growth_ratio=growth,
            net_profit_growth_ratio=0.1,
            roe=5.0,
        ),
        FinancialSnapshot(report_date="2023-12-31", report_type="年报", eps=3.6, revenue_growth_ratio=0.05, roe=15.0),
    ]


def sample_pe():
    return PERecord(points=(PEPoint("2024-01-02", 10.0), PEPoint("2024-01-03", 12.0), PEPoint("2024-01-04", 14.0)))


def sample_prices():
    return PriceSeries.from_columns(
        ["2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"],
        [10.0, 11.0, 10.5, 12.0],
    )


@pytest.fixture
def record_factory():
    """Build composite records with only the fields a test cares about."""

    def make(
        code: str = "600000.SH",
        *,
        name: str = "浦发银行",
        industry: str = "银行",
        price: float = 10.0,
        roe=8.0,
        volatility: float = 0.2,
        fair_price: Any = 12.0,
    ) -> CompositeStockRecord:
        return CompositeStockRecord(
            identity=StockIdentity(security_code=code, name=name, industry=industry, price=price, roe=roe),
            financial_history=tuple(sample_history()),
            valuation_status=ValuationStatus(score=42.5, multiples={"市盈率": "合理", "市净率": "低估"}),
            pe_history=sample_pe(),
            fair_price=fair_price,
            price_history=sample_prices(),
            volatility=volatility,
            company_profile=CompanyProfile(fields={"ORG_PROFILE": "商业银行", "MAIN_BUSINESS": "存贷款"}),
            next_disclosure_date="2024-08-30",
            ratings=(OrgRating(period="近3月", rating="买入", buy_count=5, add_count=2),),
            forecasts=(ProfitForecast(year=2024, eps=1.3, institution_count=10),),
        )

    return make


@pytest.fixture
def sources_factory():
    """Build ``DataSources`` of canned values; ``overrides`` replaces individual collaborators."""

    def make(**overrides: Any) -> DataSources:
        slots: Dict[str, Any] = {
            "financial_history": lambda code: sample_history(),
            "valuation_status": lambda code: ValuationStatus(score=40.0, multiples={"市盈率": "合理"}),
            "pe_history": lambda code: sample_pe(),
            "price_history": lambda code: sample_prices(),
            "company_profile": lambda code: CompanyProfile(fields={"ORG_PROFILE": code}),
            "disclosure_date": lambda code: "2024-08-30",
            "analyst_ratings": lambda code: [OrgRating(period="近3月", rating="买入", buy_count=5)],
            "profit_forecasts": lambda code: [ProfitForecast(year=2024, eps=1.3, institution_count=10)],
        }
        slots.update(overrides)
        return DataSources(**slots)

    return make


@pytest.fixture
def identity():
    return StockIdentity(security_code="600000.SH", name="浦发银行", industry="银行", price=12.0, roe=8.0)
