"""Error taxonomy shared by the aggregation core and its data adapters."""
from __future__ import annotations

import copy
from typing import Optional


class XStockError(Exception):
    """Base error carrying the security and aggregation step it belongs to."""

    def __init__(self, message: str, *, security_code: Optional[str] = None, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.security_code = security_code
        self.step = step

    def with_context(self, security_code: str, step: str) -> "XStockError":
        """Return a copy tagged with the security and step that raised it.

        The original is left untouched so a shared or cached instance is never
        re-labelled by another security.
        """
        tagged = copy.copy(self)
        tagged.security_code = security_code
        tagged.step = step
        return tagged

    def __str__(self) -> str:
        prefix = [part for part in (self.security_code, self.step) if part]
        if not prefix:
            return self.message
        return f"[{'/'.join(prefix)}] {self.message}"


class TransportError(XStockError):
    """A collaborator call could not complete (network, HTTP status or payload shape)."""


class InsufficientDataError(XStockError):
    """A statistical precondition is unmet, e.g. fewer than two prices."""
