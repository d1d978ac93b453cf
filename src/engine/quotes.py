"""Quote requests and approximate exchange rates."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from coinify_client.async_rest import AsyncRestClient
from coinify_client.constants import CRYPTO_ASSET
from coinify_client.errors import PreconditionFailure, require
from coinify_client.models import Quote

LOGGER = logging.getLogger("coinify.quotes")


def to_decimal(amount: Any) -> Decimal:
    try:
        return Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise PreconditionFailure("INVALID_AMOUNT", f"Invalid amount: {amount!r}") from exc


class QuoteEngine:
    """Requests time-bounded quotes from the exchange.

    Quotes always pivot through the crypto leg: when the base currency is
    fiat the quote currency is forced to the crypto asset.
    """

    def __init__(self, client: AsyncRestClient, crypto_asset: str = CRYPTO_ASSET) -> None:
        self.client = client
        self.crypto_asset = crypto_asset

    def resolve_pair(
        self, base_currency: str | None, quote_currency: str | None
    ) -> tuple[str, str]:
        require(base_currency, "BASE_CURRENCY_REQUIRED", "Specify base currency")
        base = str(base_currency).upper()
        if base == self.crypto_asset:
            require(quote_currency, "QUOTE_CURRENCY_REQUIRED", "Specify quote currency")
            quote = str(quote_currency).upper()
        else:
            quote = self.crypto_asset
        require(base != quote, "SAME_CURRENCY_PAIR", f"Cannot quote {base} against itself")
        return base, quote

    async def get_quote(
        self,
        amount: Any,
        base_currency: str | None,
        quote_currency: str | None = None,
    ) -> Quote:
        """Request a quote for a direction-signed base amount."""
        base_amount = to_decimal(amount)
        require(base_amount != 0, "INVALID_AMOUNT", "Amount must be non-zero")
        base, quote = self.resolve_pair(base_currency, quote_currency)
        result = await self.client.request_quote(base, quote, base_amount)
        LOGGER.info(
            "Quote %s: %s %s -> %s %s (expires %s)",
            result.id,
            result.base_amount,
            result.base_currency,
            result.quote_amount,
            result.quote_currency,
            result.expires_at.isoformat(),
        )
        return result


class ExchangeRate:
    """Approximate rates that do not reserve a price."""

    def __init__(self, client: AsyncRestClient) -> None:
        self.client = client

    async def get(self, base_currency: str, quote_currency: str) -> Decimal:
        require(
            base_currency and quote_currency,
            "CURRENCY_PAIR_REQUIRED",
            "Specify base and quote currency",
        )
        return await self.client.get_approximate_rate(
            base_currency.upper(), quote_currency.upper()
        )
