"""End-to-end report pipeline: identities -> records -> ordering -> views -> export."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from config import Config
from xstock.domain.errors import XStockError
from xstock.domain.models.stock import CompositeStockRecord, StockIdentity, sort_by_roe
from xstock.domain.services.classifier import classify, default_views
from xstock.reports.exporter import ExcelExporter, persist_json
from xstock.workflows.aggregator import BuildFailure, build_many
from xstock.workflows.context import PipelineContext

logger = logging.getLogger(__name__)

IDENTITY_STEP = "identity"


@dataclass
class PipelineResult:
    records: List[CompositeStockRecord] = field(default_factory=list)
    failures: List[BuildFailure] = field(default_factory=list)
    views: Dict[str, List[CompositeStockRecord]] = field(default_factory=dict)


class ReportPipeline:
    """Compose identity lookup, aggregation, ordering and classification."""

    def __init__(self, config: Config, context: Optional[PipelineContext] = None) -> None:
        self._config = config
        self._context = context or PipelineContext.from_config(config)

    @property
    def context(self) -> PipelineContext:
        return self._context

    def resolve_identities(self, codes: Iterable[str]) -> Tuple[List[StockIdentity], List[BuildFailure]]:
        """Look up listing snapshots; unknown codes become failures."""
        codes = _dedupe(codes)
        identities: List[StockIdentity] = []
        failures: List[BuildFailure] = []
        if not codes:
            return identities, failures
        with ThreadPoolExecutor(max_workers=self._config.batch_workers, thread_name_prefix="identity") as pool:
            futures = [pool.submit(self._context.eastmoney.fetch_stock_identity, code) for code in codes]
            for code, future in zip(codes, futures):
                try:
                    identities.append(future.result())
                except (XStockError, ValueError) as exc:
                    reason = exc.message if isinstance(exc, XStockError) else str(exc)
                    logger.warning("Skipping %s (identity): %s", code, reason)
                    failures.append(BuildFailure(security_code=code, step=IDENTITY_STEP, reason=reason))
        return identities, failures

    def run(self, codes: Iterable[str]) -> PipelineResult:
        """Build, order by ROE and classify every resolvable security."""
        identities, failures = self.resolve_identities(codes)
        batch = build_many(self._context.aggregator, identities, max_workers=self._config.batch_workers)
        records = sort_by_roe(batch.records)
        views = classify(records, default_views(records, low_price=self._config.low_price_threshold))
        return PipelineResult(records=records, failures=failures + batch.failures, views=views)

    def export(self, result: PipelineResult, path: Path) -> Path:
        return ExcelExporter(path).export(result.views)

    def persist_state(self, result: PipelineResult, path: Path) -> Path:
        return persist_json(result.records, result.failures, path)

    def describe_steps(self) -> List[str]:
        """Return human-readable aggregation step descriptions."""
        descriptions = []
        for step in self._context.aggregator.steps:
            after = f" (after {', '.join(step.depends_on)})" if step.depends_on else ""
            descriptions.append(f"{step.key}: {step.description}{after}")
        return descriptions

    def close(self) -> None:
        self._context.close()

    def __enter__(self) -> "ReportPipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _dedupe(codes: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for code in codes:
        code = code.strip().upper()
        if code:
            seen.setdefault(code, None)
    return list(seen)
