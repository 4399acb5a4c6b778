"""EastMoney datacenter/quote API client returning typed domain values."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from xstock.domain.errors import TransportError
from xstock.domain.models.fund import FundManagerInfo
from xstock.domain.models.stock import (
    CompanyProfile,
    FinancialSnapshot,
    OrgRating,
    PEPoint,
    PERecord,
    ProfitForecast,
    StockIdentity,
    ValuationStatus,
)
from xstock.infrastructure.data_providers.base import JsonHttpClient
from xstock.infrastructure.data_providers.valuation_status import score_multiples

DATACENTER_URL = "https://datacenter.eastmoney.com/securities/api/data/v1/get"
QUOTE_URL = "https://push2.eastmoney.com/api/qt/stock/get"

# Market prefixes used by the quote API ``secid`` parameter.
MARKET_IDS = {"SH": "1", "SZ": "0", "BJ": "0"}

REPORT_FINANCE_MAIN = "RPT_F10_FINANCE_MAINFINADATA"
REPORT_VALUATION = "RPT_VALUEANALYSIS_DET"
REPORT_ORG_INFO = "RPT_F10_BASIC_ORGINFO"
REPORT_APPOINTMENT = "RPT_PUBLIC_BS_APPOIN"
REPORT_ORG_RATING = "RPT_RES_ORGRATING"
REPORT_PROFIT_PREDICT = "RPT_WEB_RESPREDICT"

# Roughly five years of trading days.
VALUATION_HISTORY_SIZE = 1250

# Tiantian Fund manager ranking; answers with a `var returnjson= {...}` script.
FUND_MANAGER_URL = "https://fund.eastmoney.com/Data/FundDataPortfolio_Interface.aspx"
FUND_TYPES = ("all", "gp", "hh", "zq", "sy")
FUND_MANAGER_SORT_COLUMNS = ("abbname", "jjgspy", "totaldays", "netnav", "penavgrowth")
SORT_ORDERS = ("asc", "desc")
FUND_MANAGER_FIELD_COUNT = 12

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "" or value == "-":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _percent_to_ratio(value: Any) -> Optional[float]:
    parsed = _to_float(value)
    return parsed / 100.0 if parsed is not None else None


def _to_int(value: Any) -> int:
    parsed = _to_float(value)
    return int(parsed) if parsed is not None else 0


def _date_part(value: Any) -> str:
    """Trim ``2024-04-30 00:00:00`` style timestamps to the date."""
    return str(value)[:10] if value else ""


def secid(secucode: str) -> str:
    code, _, market = secucode.partition(".")
    market_id = MARKET_IDS.get(market.upper())
    if not code or market_id is None:
        raise ValueError(f"Unsupported secucode {secucode!r}")
    return f"{market_id}.{code}"


def _unit_number(value: Any, unit: str) -> float:
    """Parse ``26.52%`` or ``28.43亿元`` style figures; ``--`` and blanks become 0."""
    text = str(value or "").strip()
    if unit and text.endswith(unit):
        text = text[: -len(unit)]
    parsed = _to_float(text)
    return parsed if parsed is not None else 0.0


def _split_list(value: Any) -> Tuple[str, ...]:
    return tuple(part for part in str(value or "").split(",") if part)


def _embedded_array(text: str, key: str) -> List[Any]:
    """Decode the JSON array assigned to ``key`` inside a JSON or JavaScript object literal."""
    for marker in (f'"{key}":', f"{key}:"):
        pos = text.find(marker)
        if pos != -1:
            break
    else:
        raise TransportError(f"payload has no {key!r} array")
    start = text.find("[", pos)
    if start == -1:
        raise TransportError(f"payload has no {key!r} array")
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except ValueError as exc:
        raise TransportError(f"payload {key!r} array is malformed: {exc}") from exc
    return value


def _fund_manager(row: Any) -> Optional[FundManagerInfo]:
    if not isinstance(row, list) or len(row) != FUND_MANAGER_FIELD_COUNT:
        return None
    return FundManagerInfo(
        manager_id=str(row[0]),
        name=str(row[1]),
        company_id=str(row[2]),
        company_name=str(row[3]),
        fund_codes=_split_list(row[4]),
        fund_names=_split_list(row[5]),
        working_days=int(_unit_number(row[6], "")),
        current_best_return=_unit_number(row[7], "%"),
        current_best_fund_code=str(row[8]),
        current_best_fund_name=str(row[9]),
        current_fund_scale=_unit_number(row[10], "亿元"),
        working_best_return=_unit_number(row[11], "%"),
    )


class EastMoneyClient(JsonHttpClient):
    """Seven of the aggregation collaborators, the identity lookup and the fund manager listing."""

    source_name = "eastmoney"

    # ------------------
    # Public API helpers
    # ------------------
    def fetch_stock_identity(self, secucode: str) -> StockIdentity:
        """Name, latest price, industry and weighted ROE from the realtime quote."""
        payload = self._get_json(
            QUOTE_URL,
            params={
                "secid": secid(secucode),
                "fields": "f43,f57,f58,f127,f173",
                "fltt": 2,
                "invt": 2,
            },
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise TransportError(f"eastmoney has no quote for {secucode}", security_code=secucode)
        price = _to_float(data.get("f43"))
        if price is None:
            raise TransportError(f"eastmoney quote for {secucode} has no price", security_code=secucode)
        return StockIdentity(
            security_code=secucode.upper(),
            name=str(data.get("f58") or ""),
            industry=str(data.get("f127") or "未知"),
            price=price,
            roe=_to_float(data.get("f173")),
        )

    def fetch_financial_history(self, secucode: str) -> List[FinancialSnapshot]:
        rows = self._datacenter(
            REPORT_FINANCE_MAIN,
            f'(SECUCODE="{secucode}")',
            columns="SECUCODE,REPORT_DATE,REPORT_TYPE,EPSJB,TOTALOPERATEREVETZ,PARENTNETPROFITTZ,ROEJQ",
            sort_columns="REPORT_DATE",
            page_size=20,
        )
        history = []
        for row in rows:
            history.append(
                FinancialSnapshot(
                    report_date=_date_part(row.get("REPORT_DATE")),
                    report_type=str(row.get("REPORT_TYPE") or ""),
                    eps=_to_float(row.get("EPSJB")),
                    revenue_growth_ratio=_percent_to_ratio(row.get("TOTALOPERATEREVETZ")),
                    net_profit_growth_ratio=_percent_to_ratio(row.get("PARENTNETPROFITTZ")),
                    roe=_to_float(row.get("ROEJQ")),
                )
            )
        return history

    def fetch_valuation_status(self, secucode: str) -> ValuationStatus:
        return score_multiples(self._valuation_rows(secucode))

    def fetch_pe_history(self, secucode: str) -> PERecord:
        """Positive trailing P/E observations, oldest first."""
        points = []
        for row in reversed(self._valuation_rows(secucode)):
            pe = _to_float(row.get("PE_TTM"))
            if pe is None or pe <= 0:
                continue
            points.append(PEPoint(date=_date_part(row.get("TRADE_DATE")), pe=pe))
        return PERecord(points=tuple(points))

    def fetch_company_profile(self, secucode: str) -> CompanyProfile:
        rows = self._datacenter(REPORT_ORG_INFO, f'(SECUCODE="{secucode}")', page_size=1, sort_columns=None)
        return CompanyProfile(fields=rows[0] if rows else {})

    def fetch_next_disclosure_date(self, secucode: str) -> str:
        """Scheduled date of the latest periodic report; empty when none is scheduled."""
        code = secucode.split(".")[0]
        rows = self._datacenter(
            REPORT_APPOINTMENT,
            f'(SECURITY_CODE="{code}")',
            sort_columns="REPORT_DATE",
            page_size=1,
        )
        if not rows:
            return ""
        row = rows[0]
        return _date_part(row.get("APPOINT_PUBLISH_DATE") or row.get("FIRST_APPOINT_DATE"))

    def fetch_analyst_ratings(self, secucode: str) -> List[OrgRating]:
        rows = self._datacenter(REPORT_ORG_RATING, f'(SECUCODE="{secucode}")', sort_columns=None, page_size=10)
        return [
            OrgRating(
                period=str(row.get("DATE_TYPE") or ""),
                rating=str(row.get("COMPRE_RATING") or ""),
                buy_count=_to_int(row.get("RATING_BUY_NUM")),
                add_count=_to_int(row.get("RATING_ADD_NUM")),
                neutral_count=_to_int(row.get("RATING_NEUTRAL_NUM")),
                reduce_count=_to_int(row.get("RATING_REDUCE_NUM")),
                sell_count=_to_int(row.get("RATING_SALE_NUM")),
            )
            for row in rows
        ]

    def fetch_profit_forecasts(self, secucode: str) -> List[ProfitForecast]:
        """Consensus EPS for up to four fiscal years (``YEARn``/``EPSn`` columns)."""
        rows = self._datacenter(REPORT_PROFIT_PREDICT, f'(SECUCODE="{secucode}")', sort_columns=None, page_size=1)
        if not rows:
            return []
        row = rows[0]
        count = _to_int(row.get("RATING_ORG_NUM"))
        forecasts = []
        for n in range(1, 5):
            year = _to_int(row.get(f"YEAR{n}"))
            if not year:
                continue
            forecasts.append(ProfitForecast(year=year, eps=_to_float(row.get(f"EPS{n}")), institution_count=count))
        return forecasts

    def fetch_fund_managers(
        self,
        fund_type: str = "all",
        sort_column: str = "penavgrowth",
        order: str = "desc",
        *,
        page: int = 1,
        page_size: int = 20,
    ) -> List[FundManagerInfo]:
        """One page of the fund manager ranking.

        ``fund_type``: all, gp (equity), hh (mixed), zq (bond), sy (income).
        ``sort_column``: abbname, jjgspy (company), totaldays, netnav (scale),
        penavgrowth (best current return). ``order``: asc or desc.
        """
        fund_type, sort_column, order = fund_type.lower(), sort_column.lower(), order.lower()
        if fund_type not in FUND_TYPES:
            raise ValueError(f"Unknown fund type {fund_type!r}; expected one of {', '.join(FUND_TYPES)}")
        if sort_column not in FUND_MANAGER_SORT_COLUMNS:
            raise ValueError(
                f"Unknown sort column {sort_column!r}; expected one of {', '.join(FUND_MANAGER_SORT_COLUMNS)}"
            )
        if order not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order {order!r}; expected asc or desc")
        text = self._get_text(
            FUND_MANAGER_URL,
            params={
                "dt": 14,
                "mc": "returnjson",
                "ft": fund_type,
                "pn": page_size,
                "pi": page,
                "sc": sort_column,
                "st": order,
            },
        )
        managers = []
        for row in _embedded_array(text, "data"):
            manager = _fund_manager(row)
            if manager is None:
                logger.warning("Skipping malformed fund manager row: %r", row)
                continue
            managers.append(manager)
        return managers

    # -----------------
    # Internal helpers
    # -----------------
    def _valuation_rows(self, secucode: str) -> List[Dict[str, Any]]:
        return self._datacenter(
            REPORT_VALUATION,
            f'(SECUCODE="{secucode}")',
            columns="TRADE_DATE,PE_TTM,PB_MRQ,PS_TTM,PCF_OCF_TTM",
            sort_columns="TRADE_DATE",
            page_size=VALUATION_HISTORY_SIZE,
        )

    def _datacenter(
        self,
        report_name: str,
        filter_expr: str,
        *,
        columns: str = "ALL",
        sort_columns: Optional[str] = "REPORT_DATE",
        sort_types: str = "-1",
        page_size: int = 50,
    ) -> List[Dict[str, Any]]:
        """Query one page of a datacenter report; newest first when sorted."""
        params: Dict[str, Any] = {
            "reportName": report_name,
            "columns": columns,
            "filter": filter_expr,
            "pageNumber": 1,
            "pageSize": page_size,
            "source": "HSF10",
            "client": "PC",
        }
        if sort_columns:
            params["sortColumns"] = sort_columns
            params["sortTypes"] = sort_types
        payload = self._get_json(DATACENTER_URL, params=params)
        if not isinstance(payload, Mapping):
            raise TransportError(f"eastmoney {report_name} returned a non-object payload")
        if payload.get("success") is False and payload.get("code") not in (0, 9201):
            raise TransportError(f"eastmoney {report_name} error: {payload.get('message')}")
        result = payload.get("result")
        if not result:
            return []
        data = result.get("data") if isinstance(result, Mapping) else None
        return list(data or [])
