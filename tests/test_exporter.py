from __future__ import annotations

import json
import zipfile

from xstock.domain.models.stock import UNDETERMINED
from xstock.domain.services.classifier import classify
from xstock.reports.exporter import COLUMNS, ExcelExporter, persist_json, record_to_row, sheet_names
from xstock.workflows.aggregator import BuildFailure


def test_record_to_row_columns(record_factory):
    row = record_to_row(record_factory(price=12.0, fair_price=15.0, volatility=0.123456))
    assert tuple(row) == COLUMNS
    assert row["代码"] == "600000.SH"
    assert row["合理价"] == 15.0
    assert row["合理价空间"] == "25.00%"
    assert row["历史波动率"] == 0.1235
    assert row["营收增长"] == "20.00%"
    assert "市净率: 低估" in row["估值明细"]
    assert row["机构评级"].startswith("近3月: 买入")
    assert row["每股收益预测"] == "2024: 1.3 (10家)"
    assert row["公司信息"] == "商业银行\n存贷款"


def test_record_to_row_undetermined(record_factory):
    row = record_to_row(record_factory(fair_price=UNDETERMINED))
    assert row["合理价"] == "--"
    assert row["合理价空间"] == "--"


def test_sheet_names_are_excel_safe_and_unique():
    long_a = "a" * 35 + "x"
    long_b = "a" * 35 + "y"
    mapping = sheet_names(["price ≤ 30", "a/b:c", "all", "ALL", long_a, long_b])
    assert mapping["price ≤ 30"] == "price ≤ 30"
    assert mapping["a/b:c"] == "a_b_c"
    assert mapping["ALL"] == "ALL~2"
    assert mapping[long_a] == "a" * 31
    assert mapping[long_b] == "a" * 29 + "~2"
    assert all(len(name) <= 31 for name in mapping.values())


def test_excel_export_writes_one_sheet_per_view(tmp_path, record_factory):
    records = [record_factory("A.SH", price=10.0), record_factory("B.SZ", price=50.0, industry="白酒")]
    target = ExcelExporter(tmp_path / "out" / "report.xlsx").export(classify(records))

    assert target.exists()
    with zipfile.ZipFile(target) as archive:
        workbook = archive.read("xl/workbook.xml").decode("utf-8")
    for name in ("all", "price ≤ 30", "银行 sector", "白酒 sector"):
        assert f'name="{name}"' in workbook


def test_persist_json(tmp_path, record_factory):
    records = [record_factory("A.SH"), record_factory("B.SH", fair_price=UNDETERMINED)]
    failures = [BuildFailure(security_code="C.SH", step="price_history", reason="timeout")]
    path = persist_json(records, failures, tmp_path / "state.json")

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["records"][0]["identity"]["security_code"] == "A.SH"
    assert payload["records"][0]["valuation_status"]["multiples"]["市盈率"] == "合理"
    assert payload["records"][1]["fair_price"] is None
    assert payload["failures"] == [{"security_code": "C.SH", "step": "price_history", "reason": "timeout"}]
