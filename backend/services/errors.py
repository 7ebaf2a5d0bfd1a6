"""Exception types raised across the position engine.

Missing evidence (no entry price, no market data) is never an exception; it
is modelled in the returned records. These types cover upstream failures that
a caller may want to tell apart.
"""

from typing import Optional, Sequence


class PortfolioError(Exception):
    """Base class for engine errors."""


class RpcError(PortfolioError):
    """A JSON-RPC call returned an error object or an unusable payload."""

    def __init__(self, message: str, *, endpoint: str = "", code: Optional[int] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.code = code


class AllEndpointsUnavailable(PortfolioError):
    """Every RPC endpoint in the pool failed its health probe in one attempt."""

    def __init__(self, endpoints: Sequence[str], last_error: Optional[BaseException] = None):
        self.endpoints = list(endpoints)
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"All {len(self.endpoints)} RPC endpoints failed{detail}")


class ProviderError(PortfolioError):
    """An external data provider could not be reached or answered with an error."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class LedgerError(PortfolioError):
    """The ledger store could not be read."""


def exception_text(exc: BaseException) -> str:
    """Return a non-empty exception string for structured logging."""
    text = str(exc).strip()
    return text if text else repr(exc)
