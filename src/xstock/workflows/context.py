"""Pipeline dependency container."""
from __future__ import annotations

from dataclasses import dataclass

from config import Config
from xstock.infrastructure.data_providers.eastmoney_client import EastMoneyClient
from xstock.infrastructure.data_providers.eniu_client import EniuClient
from xstock.workflows.aggregator import DataSources, StockAggregator


@dataclass
class PipelineContext:
    """Holds the HTTP clients and the aggregator shared by one report run."""

    config: Config
    eastmoney: EastMoneyClient
    eniu: EniuClient
    aggregator: StockAggregator

    @classmethod
    def from_config(cls, config: Config) -> "PipelineContext":
        client_kwargs = {
            "timeout": config.http_timeout,
            "proxy_url": config.proxy_url,
            "max_retries": config.http_max_retries,
        }
        eastmoney = EastMoneyClient(**client_kwargs)
        eniu = EniuClient(**client_kwargs)
        aggregator = StockAggregator(
            DataSources.from_clients(eastmoney, eniu),
            interval=config.volatility_interval,
            parallel=config.parallel_fetch,
            max_workers=config.fetch_workers,
        )
        return cls(config=config, eastmoney=eastmoney, eniu=eniu, aggregator=aggregator)

    def close(self) -> None:
        """Release any dependencies that need explicit cleanup."""
        self.eastmoney.close()
        self.eniu.close()
