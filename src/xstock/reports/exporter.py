"""Export classified stock views to an Excel workbook or JSON."""
from __future__ import annotations

import json
import re
from collections import OrderedDict
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Sequence

import pandas as pd

from xstock.domain.models.stock import CompositeStockRecord, Undetermined
from xstock.domain.services.valuation import upside

COLUMN_WIDTHS = {
    "估值明细": 45.0,
    "每股收益预测": 45.0,
    "公司信息": 75.0,
}
DEFAULT_COLUMN_WIDTH = 30.0

COLUMNS = (
    "代码",
    "名称",
    "行业",
    "最新价",
    "ROE",
    "合理价",
    "合理价空间",
    "历史波动率",
    "综合估值",
    "估值明细",
    "最新EPS",
    "营收增长",
    "财报披露日期",
    "机构评级",
    "每股收益预测",
    "公司信息",
)

_SHEET_FORBIDDEN = re.compile(r"[\[\]:*?/\\]")
_SHEET_NAME_LIMIT = 31


def _round(value: Any, digits: int = 4) -> Any:
    return round(value, digits) if isinstance(value, float) else value


def _format_ratings(record: CompositeStockRecord) -> str:
    return "\n".join(
        f"{r.period}: {r.rating} (买入{r.buy_count} 增持{r.add_count} 中性{r.neutral_count} "
        f"减持{r.reduce_count} 卖出{r.sell_count})"
        for r in record.ratings
    )


def _format_forecasts(record: CompositeStockRecord) -> str:
    return "\n".join(
        f"{f.year}: {f.eps if f.eps is not None else '--'} ({f.institution_count}家)" for f in record.forecasts
    )


def _format_profile(record: CompositeStockRecord) -> str:
    profile = record.company_profile
    parts = [
        str(profile.get(key))
        for key in ("ORG_PROFILE", "MAIN_BUSINESS", "BUSINESS_SCOPE")
        if profile.get(key)
    ]
    return "\n".join(parts)


def record_to_row(record: CompositeStockRecord) -> "OrderedDict[str, Any]":
    """Flatten a record into worksheet columns."""
    latest = record.financial_history[0] if record.financial_history else None
    fair_price = None if isinstance(record.fair_price, Undetermined) else _round(record.fair_price, 2)
    row_upside = upside(record.fair_price, record.price)
    return OrderedDict(
        [
            ("代码", record.security_code),
            ("名称", record.name),
            ("行业", record.industry),
            ("最新价", record.price),
            ("ROE", record.roe),
            ("合理价", fair_price if fair_price is not None else "--"),
            ("合理价空间", f"{row_upside:.2%}" if row_upside is not None else "--"),
            ("历史波动率", _round(record.volatility)),
            ("综合估值", record.valuation_status.score),
            (
                "估值明细",
                "\n".join(f"{name}: {label}" for name, label in record.valuation_status.multiples.items()),
            ),
            ("最新EPS", latest.eps if latest else None),
            (
                "营收增长",
                f"{latest.revenue_growth_ratio:.2%}" if latest and latest.revenue_growth_ratio is not None else "--",
            ),
            ("财报披露日期", record.next_disclosure_date or "--"),
            ("机构评级", _format_ratings(record)),
            ("每股收益预测", _format_forecasts(record)),
            ("公司信息", _format_profile(record)),
        ]
    )


def sheet_names(view_names: Iterable[str]) -> Dict[str, str]:
    """Map view names to unique, Excel-safe worksheet names."""
    mapping: Dict[str, str] = {}
    used = set()
    for view in view_names:
        base = _SHEET_FORBIDDEN.sub("_", view).strip("'")[:_SHEET_NAME_LIMIT] or "sheet"
        candidate = base
        n = 2
        while candidate.lower() in used:
            suffix = f"~{n}"
            candidate = base[: _SHEET_NAME_LIMIT - len(suffix)] + suffix
            n += 1
        used.add(candidate.lower())
        mapping[view] = candidate
    return mapping


@dataclass
class ExcelExporter:
    """Write one worksheet per report view."""

    path: Path

    def export(self, views: Mapping[str, Sequence[CompositeStockRecord]]) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        names = sheet_names(views.keys())
        columns = list(COLUMNS)
        with pd.ExcelWriter(self.path, engine="xlsxwriter") as writer:
            header_format = writer.book.add_format(
                {"bold": True, "bg_color": "#FFCCCC", "border": 1, "align": "center", "valign": "vcenter"}
            )
            for view, records in views.items():
                sheet = names[view]
                frame = pd.DataFrame([record_to_row(r) for r in records], columns=columns)
                frame.to_excel(writer, sheet_name=sheet, index=False)
                worksheet = writer.sheets[sheet]
                for idx, column in enumerate(columns):
                    worksheet.write(0, idx, column, header_format)
                    worksheet.set_column(idx, idx, COLUMN_WIDTHS.get(column, DEFAULT_COLUMN_WIDTH))
        return self.path


def persist_json(records: Sequence[CompositeStockRecord], failures: Sequence[Any], path: Path) -> Path:
    """Serialize records and failures to disk for debugging or auditing."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(
        {"records": _to_jsonable(list(records)), "failures": _to_jsonable(list(failures))},
        default=str,
        indent=2,
        ensure_ascii=False,
    )
    path.write_text(payload, encoding="utf-8")
    return path


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Undetermined):
        return None
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if hasattr(value, "tolist"):
        return value.tolist()
    return value
