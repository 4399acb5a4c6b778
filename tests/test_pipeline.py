from __future__ import annotations

from config import Config
from xstock.domain.errors import TransportError
from xstock.domain.models.stock import StockIdentity
from xstock.workflows.aggregator import StockAggregator
from xstock.workflows.context import PipelineContext
from xstock.workflows.pipeline import IDENTITY_STEP, ReportPipeline

LISTINGS = {
    "600000.SH": StockIdentity("600000.SH", "浦发银行", "银行", 10.0, 6.0),
    "600519.SH": StockIdentity("600519.SH", "贵州茅台", "白酒", 1500.0, 30.0),
    "601398.SH": StockIdentity("601398.SH", "工商银行", "银行", 5.5, None),
}


class FakeQuotes:
    def __init__(self):
        self.requested = []
        self.closed = False

    def fetch_stock_identity(self, code):
        self.requested.append(code)
        if code not in LISTINGS:
            raise TransportError(f"no quote for {code}")
        return LISTINGS[code]

    def close(self):
        self.closed = True


def make_pipeline(sources_factory, tmp_path):
    config = Config(output_dir=tmp_path, batch_workers=2)
    quotes = FakeQuotes()
    context = PipelineContext(
        config=config,
        eastmoney=quotes,
        eniu=FakeQuotes(),
        aggregator=StockAggregator(sources_factory(), parallel=False),
    )
    return ReportPipeline(config, context=context), quotes


def test_run_orders_by_roe_and_classifies(sources_factory, tmp_path):
    pipeline, quotes = make_pipeline(sources_factory, tmp_path)
    result = pipeline.run(["600000.sh", "601398.SH", " 600519.SH ", "600000.SH", "999999.SH"])

    assert quotes.requested == ["600000.SH", "601398.SH", "600519.SH", "999999.SH"]
    assert [r.security_code for r in result.records] == ["600519.SH", "600000.SH", "601398.SH"]
    assert [r.security_code for r in result.views["all"]] == ["600519.SH", "600000.SH", "601398.SH"]
    assert [r.security_code for r in result.views["银行 sector"]] == ["600000.SH", "601398.SH"]
    assert [r.security_code for r in result.views["price ≤ 30"]] == ["600000.SH", "601398.SH"]
    assert [(f.security_code, f.step) for f in result.failures] == [("999999.SH", IDENTITY_STEP)]


def test_export_and_state(sources_factory, tmp_path):
    pipeline, _ = make_pipeline(sources_factory, tmp_path)
    result = pipeline.run(["600000.SH"])
    assert pipeline.export(result, tmp_path / "report.xlsx").exists()
    assert pipeline.persist_state(result, tmp_path / "report.json").exists()


def test_context_manager_closes_clients(sources_factory, tmp_path):
    pipeline, quotes = make_pipeline(sources_factory, tmp_path)
    with pipeline:
        pass
    assert quotes.closed


def test_describe_steps(sources_factory, tmp_path):
    pipeline, _ = make_pipeline(sources_factory, tmp_path)
    steps = pipeline.describe_steps()
    assert steps[0].startswith("financial_history:")
    assert any(step.startswith("volatility:") and "after price_history" in step for step in steps)
