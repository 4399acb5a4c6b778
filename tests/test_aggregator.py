from __future__ import annotations

import threading
import time

import pytest

from xstock.domain.errors import InsufficientDataError, TransportError
from xstock.domain.models.stock import UNDETERMINED, FinancialSnapshot, PERecord, PriceSeries, StockIdentity
from xstock.workflows.aggregator import StockAggregator, build_many
from xstock.workflows.blueprint import FAIR_PRICE, VOLATILITY, build_default_steps, collaborator_steps

COLLABORATORS = [step.key for step in collaborator_steps()]


def failing(exc):
    def call(code):
        raise exc

    return call


def test_blueprint_order_and_dependencies():
    steps = build_default_steps()
    keys = [step.key for step in steps]
    assert keys[0] == "financial_history"
    assert len(COLLABORATORS) == 8
    derived = {step.key: step.depends_on for step in steps if step.is_derived}
    assert derived == {FAIR_PRICE: ["financial_history", "pe_history"], VOLATILITY: ["price_history"]}
    for key, deps in derived.items():
        assert all(keys.index(dep) < keys.index(key) for dep in deps)


@pytest.mark.parametrize("parallel", [True, False])
def test_build_assembles_every_field(sources_factory, identity, parallel):
    aggregator = StockAggregator(sources_factory(), parallel=parallel)
    record = aggregator.build(identity)

    assert record.security_code == "600000.SH"
    assert record.fair_price == pytest.approx(14.4)
    assert record.has_fair_price
    assert record.volatility > 0
    assert len(record.financial_history) == 2
    assert record.financial_history[0].report_date == "2024-03-31"
    assert record.valuation_status.score == 40.0
    assert record.company_profile.get("ORG_PROFILE") == "600000.SH"
    assert record.next_disclosure_date == "2024-08-30"
    assert isinstance(record.ratings, tuple) and record.ratings[0].buy_count == 5
    assert isinstance(record.forecasts, tuple) and record.forecasts[0].year == 2024


def test_parallel_and_sequential_agree(sources_factory, identity):
    parallel = StockAggregator(sources_factory(), parallel=True).build(identity)
    sequential = StockAggregator(sources_factory(), parallel=False).build(identity)
    assert parallel == sequential


def test_build_is_idempotent(sources_factory, identity):
    aggregator = StockAggregator(sources_factory())
    assert aggregator.build(identity) == aggregator.build(identity)


@pytest.mark.parametrize("parallel", [True, False])
@pytest.mark.parametrize("step", COLLABORATORS)
def test_collaborator_failure_names_step(sources_factory, identity, step, parallel):
    sources = sources_factory(**{step: failing(TransportError("upstream down"))})
    aggregator = StockAggregator(sources, parallel=parallel)
    with pytest.raises(TransportError) as info:
        aggregator.build(identity)
    assert info.value.step == step
    assert info.value.security_code == "600000.SH"
    assert info.value.message == "upstream down"


@pytest.mark.parametrize("parallel", [True, False])
def test_unexpected_exception_becomes_transport_error(sources_factory, identity, parallel):
    sources = sources_factory(company_profile=failing(KeyError("ORG_PROFILE")))
    with pytest.raises(TransportError) as info:
        StockAggregator(sources, parallel=parallel).build(identity)
    assert info.value.step == "company_profile"
    assert isinstance(info.value.__cause__, KeyError)


@pytest.mark.parametrize("parallel", [True, False])
def test_fair_price_undetermined_before_report(sources_factory, identity, parallel):
    pending = [FinancialSnapshot(report_date="2024-03-31", report_type="一季报", eps=0.8, revenue_growth_ratio=None)]
    sources = sources_factory(financial_history=lambda code: pending)
    record = StockAggregator(sources, parallel=parallel).build(identity)
    assert record.fair_price is UNDETERMINED
    assert not record.has_fair_price


@pytest.mark.parametrize("parallel", [True, False])
def test_empty_pe_history_fails_fair_price(sources_factory, identity, parallel):
    sources = sources_factory(pe_history=lambda code: PERecord())
    with pytest.raises(InsufficientDataError) as info:
        StockAggregator(sources, parallel=parallel).build(identity)
    assert info.value.step == FAIR_PRICE


@pytest.mark.parametrize("parallel", [True, False])
def test_short_price_history_fails_volatility(sources_factory, identity, parallel):
    sources = sources_factory(price_history=lambda code: PriceSeries.from_columns(["2024-01-02"], [10.0]))
    with pytest.raises(InsufficientDataError) as info:
        StockAggregator(sources, parallel=parallel).build(identity)
    assert info.value.step == VOLATILITY
    assert info.value.security_code == "600000.SH"


def test_parallel_failure_does_not_wait_for_slow_siblings(sources_factory, identity):
    release = threading.Event()

    def slow(code):
        release.wait(5)
        return "2024-08-30"

    sources = sources_factory(
        disclosure_date=slow,
        financial_history=failing(TransportError("boom")),
    )
    started = time.perf_counter()
    try:
        with pytest.raises(TransportError):
            StockAggregator(sources, parallel=True).build(identity)
        assert time.perf_counter() - started < 2.0
    finally:
        release.set()


def test_parallel_fetches_overlap(sources_factory, identity):
    barrier = threading.Barrier(2, timeout=2)

    def meet(value):
        def call(code):
            barrier.wait()
            return value

        return call

    sources = sources_factory(
        disclosure_date=meet("2024-08-30"),
        analyst_ratings=meet([]),
    )
    record = StockAggregator(sources, parallel=True).build(identity)
    assert record.ratings == ()


def test_interval_changes_volatility(sources_factory, identity):
    yearly = StockAggregator(sources_factory(), interval="YEAR").build(identity)
    daily = StockAggregator(sources_factory(), interval="DAY").build(identity)
    assert yearly.volatility == pytest.approx(daily.volatility * 250 ** 0.5)


def test_build_many_isolates_failures(sources_factory):
    def history(code):
        if code == "000002.SZ":
            raise TransportError("no data")
        return [FinancialSnapshot(report_date="2024-03-31", report_type="一季报", eps=1.0, revenue_growth_ratio=0.1)]

    aggregator = StockAggregator(sources_factory(financial_history=history))
    identities = [
        StockIdentity("600000.SH", "浦发银行", "银行", 10.0, 8.0),
        StockIdentity("000002.SZ", "万科A", "房地产", 8.0, -3.0),
        StockIdentity("600519.SH", "贵州茅台", "白酒", 1500.0, 30.0),
    ]
    result = build_many(aggregator, identities, max_workers=3)

    assert [r.security_code for r in result.records] == ["600000.SH", "600519.SH"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert (failure.security_code, failure.step, failure.reason) == ("000002.SZ", "financial_history", "no data")


def test_build_many_empty():
    result = build_many(StockAggregator(sources=None), [])
    assert result.records == [] and result.failures == []


def test_shared_error_instance_is_tagged_per_failure(sources_factory, identity):
    shared = TransportError("cached outage", step="stale_step")
    sources = sources_factory(
        financial_history=failing(shared),
        analyst_ratings=failing(shared),
    )
    with pytest.raises(TransportError) as info:
        StockAggregator(sources, parallel=False).build(identity)

    assert info.value.step == "financial_history"
    assert info.value.security_code == "600000.SH"
    assert info.value.__cause__ is shared
    assert shared.step == "stale_step"
    assert shared.security_code is None


@pytest.mark.parametrize("parallel", [True, False])
def test_zero_price_fails_volatility_step(sources_factory, identity, parallel):
    sources = sources_factory(price_history=lambda code: [10.0, 0.0, 11.0, 12.0])
    with pytest.raises(InsufficientDataError) as info:
        StockAggregator(sources, parallel=parallel).build(identity)
    assert info.value.step == VOLATILITY
