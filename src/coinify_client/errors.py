"""Error taxonomy shared by the Coinify client and the account engine."""

from __future__ import annotations

from typing import Any, Mapping


class CoinifyError(Exception):
    """Base exception for every failure raised by this package."""


class PreconditionFailure(CoinifyError, ValueError):
    """Raised when a local check fails before any network call is made.

    ``invariant`` names the violated check so callers can branch on it
    without parsing the message.
    """

    def __init__(self, invariant: str, message: str | None = None) -> None:
        super().__init__(message or invariant)
        self.invariant = invariant


class UpstreamRejection(CoinifyError):
    """Raised when the exchange declines a request."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        error_code: str | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code
        self.payload = dict(payload or {})


class TransportFailure(CoinifyError):
    """Raised for connectivity failures talking to the exchange."""


class AddressCommitFailure(CoinifyError):
    """Raised when the host's commit hook fails after an order was confirmed.

    The order exists on the exchange; ``trade`` carries it so the caller can
    keep tracking it. The address stays held and the hook can be retried.
    """

    def __init__(self, address: str, trade: Any) -> None:
        super().__init__(
            f"Commit hook failed for address {address} of trade {trade.id}"
        )
        self.address = address
        self.trade = trade


def require(condition: Any, invariant: str, message: str | None = None) -> None:
    if not condition:
        raise PreconditionFailure(invariant, message)
