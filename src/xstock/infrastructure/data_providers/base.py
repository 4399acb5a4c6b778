"""Shared httpx plumbing for the JSON data providers."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from xstock.domain.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
}


class JsonHttpClient:
    """Encapsulate client setup, retries and JSON decoding for one data source."""

    source_name = "http"

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        proxy_url: Optional[str] = None,
        max_retries: int = 3,
        throttle_seconds: float = 0.2,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        client_kwargs: Dict[str, Any] = {
            "timeout": httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            "headers": DEFAULT_HEADERS,
            "follow_redirects": True,
        }
        if proxy_url:
            client_kwargs["proxy"] = proxy_url
        if transport is not None:
            client_kwargs["transport"] = transport
        self._http = httpx.Client(**client_kwargs)
        self._max_retries = max(max_retries, 1)
        self._throttle_seconds = throttle_seconds

    def close(self) -> None:
        """Release the underlying HTTP session."""
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------
    # Internal helpers
    # -----------------
    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``url`` and decode JSON, retrying transport/HTTP failures."""
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{self.source_name} returned invalid JSON from {url}: {exc}") from exc

    def _get_text(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        """GET ``url`` and return the decoded body, for script-wrapped payloads."""
        return self._get(url, params).text

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            started = time.perf_counter()
            try:
                response = self._http.get(url, params=params)
                response.raise_for_status()
                logger.debug(
                    "%s GET %s ok in %.0f ms",
                    self.source_name,
                    url,
                    (time.perf_counter() - started) * 1000,
                )
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                logger.debug("%s GET %s failed (attempt %d/%d): %s", self.source_name, url, attempt, self._max_retries, exc)
                if attempt >= self._max_retries:
                    break
                time.sleep(self._throttle_seconds * attempt)
        raise TransportError(f"{self.source_name} request to {url} failed: {last_exc}") from last_exc
