"""Assemble composite stock records from independently fetched datasets.

Each security is built from eight collaborator calls plus two derived fields
(fair price, volatility). A collaborator or derivation failure aborts that
security only; the raised ``XStockError`` carries the security code and the
failing step so batch callers can log and move on.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, NoReturn, Optional, Sequence, Union

from xstock.domain.errors import TransportError, XStockError
from xstock.domain.models.stock import (
    CompanyProfile,
    CompositeStockRecord,
    FinancialSnapshot,
    OrgRating,
    PERecord,
    PriceSeries,
    ProfitForecast,
    StockIdentity,
    ValuationStatus,
)
from xstock.domain.services import valuation, volatility
from xstock.domain.services.volatility import Interval
from xstock.workflows.blueprint import (
    ANALYST_RATINGS,
    COMPANY_PROFILE,
    DISCLOSURE_DATE,
    FAIR_PRICE,
    FINANCIAL_HISTORY,
    PE_HISTORY,
    PRICE_HISTORY,
    PROFIT_FORECASTS,
    VALUATION_STATUS,
    VOLATILITY,
    StepSpec,
    build_default_steps,
)

logger = logging.getLogger(__name__)


@dataclass
class DataSources:
    """The eight collaborator capabilities, each called with a security code."""

    financial_history: Callable[[str], Sequence[FinancialSnapshot]]
    valuation_status: Callable[[str], ValuationStatus]
    pe_history: Callable[[str], PERecord]
    price_history: Callable[[str], PriceSeries]
    company_profile: Callable[[str], CompanyProfile]
    disclosure_date: Callable[[str], str]
    analyst_ratings: Callable[[str], Sequence[OrgRating]]
    profit_forecasts: Callable[[str], Sequence[ProfitForecast]]

    @classmethod
    def from_clients(cls, eastmoney: Any, eniu: Any) -> "DataSources":
        """Wire the HTTP clients into collaborator slots."""
        return cls(
            financial_history=eastmoney.fetch_financial_history,
            valuation_status=eastmoney.fetch_valuation_status,
            pe_history=eastmoney.fetch_pe_history,
            price_history=eniu.fetch_price_history,
            company_profile=eastmoney.fetch_company_profile,
            disclosure_date=eastmoney.fetch_next_disclosure_date,
            analyst_ratings=eastmoney.fetch_analyst_ratings,
            profit_forecasts=eastmoney.fetch_profit_forecasts,
        )


@dataclass(frozen=True)
class BuildFailure:
    security_code: str
    step: Optional[str]
    reason: str


@dataclass
class BatchResult:
    """Successfully built records plus one failure entry per skipped security."""

    records: List[CompositeStockRecord] = field(default_factory=list)
    failures: List[BuildFailure] = field(default_factory=list)


class StockAggregator:
    """Build ``CompositeStockRecord`` values from injected data sources."""

    def __init__(
        self,
        sources: DataSources,
        *,
        interval: Union[Interval, str] = Interval.YEAR,
        parallel: bool = True,
        max_workers: int = 8,
        steps: Optional[List[StepSpec]] = None,
    ) -> None:
        self._sources = sources
        self._interval = interval
        self._parallel = parallel
        self._max_workers = max(max_workers, 1)
        self._steps = steps or build_default_steps()
        self._derivers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            FAIR_PRICE: self._derive_fair_price,
            VOLATILITY: self._derive_volatility,
        }

    @property
    def steps(self) -> List[StepSpec]:
        return list(self._steps)

    def build(self, identity: StockIdentity) -> CompositeStockRecord:
        """Fetch, derive and assemble one record; raise ``XStockError`` on any failure."""
        code = identity.security_code
        started = time.perf_counter()
        if self._parallel:
            results = self._run_parallel(code)
        else:
            results = self._run_sequential(code)
        logger.debug("%s built in %.0f ms", code, (time.perf_counter() - started) * 1000)
        return CompositeStockRecord(
            identity=identity,
            financial_history=tuple(results[FINANCIAL_HISTORY]),
            valuation_status=results[VALUATION_STATUS],
            pe_history=results[PE_HISTORY],
            fair_price=results[FAIR_PRICE],
            price_history=results[PRICE_HISTORY],
            volatility=results[VOLATILITY],
            company_profile=results[COMPANY_PROFILE],
            next_disclosure_date=results[DISCLOSURE_DATE] or "",
            ratings=tuple(results[ANALYST_RATINGS]),
            forecasts=tuple(results[PROFIT_FORECASTS]),
        )

    # -----------------
    # Execution modes
    # -----------------
    def _run_sequential(self, code: str) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        for step in self._steps:
            try:
                if step.is_derived:
                    results[step.key] = self._derivers[step.key](results)
                else:
                    results[step.key] = self._fetcher(step)(code)
            except Exception as exc:  # pylint: disable=broad-except
                self._raise_with_context(exc, code, step.key)
        return results

    def _run_parallel(self, code: str) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        order = {step.key: idx for idx, step in enumerate(self._steps)}
        pending_derived = [step for step in self._steps if step.is_derived]
        pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix=f"fetch-{code}")
        futures: Dict[Future, str] = {}
        succeeded = False
        try:
            for step in self._steps:
                if not step.is_derived:
                    futures[pool.submit(self._fetcher(step), code)] = step.key
            outstanding = set(futures)
            while outstanding:
                done, outstanding = wait(outstanding, return_when=FIRST_COMPLETED)
                failed = sorted(
                    (fut for fut in done if fut.exception() is not None),
                    key=lambda fut: order[futures[fut]],
                )
                if failed:
                    exc = failed[0].exception()
                    self._raise_with_context(exc, code, futures[failed[0]])
                for fut in done:
                    results[futures[fut]] = fut.result()
                pending_derived = self._run_ready_derivations(code, pending_derived, results)
            succeeded = True
        finally:
            # Sibling calls of a failed security are of no further use.
            pool.shutdown(wait=succeeded, cancel_futures=not succeeded)
        return results

    def _run_ready_derivations(
        self, code: str, pending: List[StepSpec], results: Dict[str, Any]
    ) -> List[StepSpec]:
        remaining: List[StepSpec] = []
        for step in pending:
            if not all(dep in results for dep in step.depends_on):
                remaining.append(step)
                continue
            try:
                results[step.key] = self._derivers[step.key](results)
            except Exception as exc:  # pylint: disable=broad-except
                self._raise_with_context(exc, code, step.key)
        return remaining

    # -----------------
    # Internal helpers
    # -----------------
    def _fetcher(self, step: StepSpec) -> Callable[[str], Any]:
        return getattr(self._sources, step.source)

    def _derive_fair_price(self, results: Dict[str, Any]):
        return valuation.fair_price_for(results[FINANCIAL_HISTORY], results[PE_HISTORY])

    def _derive_volatility(self, results: Dict[str, Any]) -> float:
        return volatility.estimate(results[PRICE_HISTORY], self._interval)

    @staticmethod
    def _raise_with_context(exc: BaseException, code: str, step: str) -> NoReturn:
        """Re-raise domain errors as tagged copies; wrap anything else as transport failure."""
        if isinstance(exc, XStockError):
            raise exc.with_context(code, step) from exc
        raise TransportError(f"{type(exc).__name__}: {exc}", security_code=code, step=step) from exc


def build_many(
    aggregator: StockAggregator,
    identities: Iterable[StockIdentity],
    *,
    max_workers: int = 4,
) -> BatchResult:
    """Build every identity independently; failures are collected, not raised."""
    identities = list(identities)
    result = BatchResult()
    if not identities:
        return result
    with ThreadPoolExecutor(max_workers=max(max_workers, 1), thread_name_prefix="build") as pool:
        futures = [pool.submit(aggregator.build, identity) for identity in identities]
        for identity, future in zip(identities, futures):
            try:
                result.records.append(future.result())
            except XStockError as exc:
                logger.warning("Skipping %s (%s): %s", identity.security_code, exc.step, exc.message)
                result.failures.append(
                    BuildFailure(security_code=identity.security_code, step=exc.step, reason=exc.message)
                )
    logger.info("Built %d of %d securities", len(result.records), len(identities))
    return result
