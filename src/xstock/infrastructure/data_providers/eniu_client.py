"""Historical closing prices from eniu.com."""
from __future__ import annotations

from xstock.domain.errors import TransportError
from xstock.domain.models.stock import PriceSeries
from xstock.infrastructure.data_providers.base import JsonHttpClient

PRICE_URL = "https://eniu.com/chart/pricea/{path_code}/t/all"


def path_code(secucode: str) -> str:
    """Convert ``600000.SH`` into the ``sh600000`` form used in eniu URLs."""
    parts = secucode.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Expected a secucode like 600000.SH, got {secucode!r}")
    return parts[1].lower() + parts[0]


class EniuClient(JsonHttpClient):
    source_name = "eniu"

    def fetch_price_history(self, secucode: str) -> PriceSeries:
        """Full daily price history, oldest first."""
        payload = self._get_json(PRICE_URL.format(path_code=path_code(secucode)))
        if not isinstance(payload, dict) or "date" not in payload or "price" not in payload:
            raise TransportError(f"eniu price payload for {secucode} is missing date/price columns")
        try:
            return PriceSeries.from_columns(payload["date"] or [], payload["price"] or [])
        except (TypeError, ValueError) as exc:
            raise TransportError(f"eniu price payload for {secucode} is malformed: {exc}") from exc
