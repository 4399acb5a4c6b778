"""Fund manager listing entries."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class FundManagerInfo:
    """One fund manager as listed by Tiantian Fund (returns in percent, scale in 亿元)."""

    manager_id: str
    name: str
    company_id: str
    company_name: str
    fund_codes: Tuple[str, ...]
    fund_names: Tuple[str, ...]
    working_days: int
    current_best_return: float
    current_best_fund_code: str
    current_best_fund_name: str
    current_fund_scale: float
    working_best_return: float
