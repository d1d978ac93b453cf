from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from coinify_client.errors import PreconditionFailure, UpstreamRejection
from coinify_client.models import Quote, utcnow
from engine.quotes import ExchangeRate, QuoteEngine


@pytest.mark.asyncio
async def test_fiat_base_defaults_quote_currency_to_crypto(client) -> None:
    engine = QuoteEngine(client)

    quote = await engine.get_quote(-100, "EUR", "USD")

    assert client.calls[-1] == ("request_quote", ("EUR", "BTC", Decimal("-100")))
    assert quote.quote_currency == "BTC"
    assert quote.base_amount == Decimal("-100")


@pytest.mark.asyncio
async def test_crypto_base_requires_quote_currency(client) -> None:
    engine = QuoteEngine(client)

    with pytest.raises(PreconditionFailure) as excinfo:
        await engine.get_quote(-1, "BTC")

    assert excinfo.value.invariant == "QUOTE_CURRENCY_REQUIRED"
    assert client.calls == []


@pytest.mark.asyncio
async def test_crypto_base_uses_supplied_quote_currency(client) -> None:
    engine = QuoteEngine(client)

    quote = await engine.get_quote(-1, "btc", "eur")

    assert (quote.base_currency, quote.quote_currency) == ("BTC", "EUR")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("amount", "base", "quote", "invariant"),
    [
        (-10, None, None, "BASE_CURRENCY_REQUIRED"),
        (-10, "BTC", "BTC", "SAME_CURRENCY_PAIR"),
        (0, "EUR", None, "INVALID_AMOUNT"),
        ("ten", "EUR", None, "INVALID_AMOUNT"),
    ],
)
async def test_invalid_requests_fail_without_network(
    client, amount, base, quote, invariant
) -> None:
    engine = QuoteEngine(client)

    with pytest.raises(PreconditionFailure) as excinfo:
        await engine.get_quote(amount, base, quote)

    assert excinfo.value.invariant == invariant
    assert client.calls == []


@pytest.mark.asyncio
async def test_upstream_rejection_propagates(client) -> None:
    client.quote_error = UpstreamRejection("HTTP error 400: amount too low", status=400)
    engine = QuoteEngine(client)

    with pytest.raises(UpstreamRejection):
        await engine.get_quote(-1, "EUR")


def test_quote_expiry_is_strict() -> None:
    now = utcnow()
    quote = Quote(
        base_currency="EUR",
        quote_currency="BTC",
        base_amount=Decimal("-100"),
        quote_amount=Decimal("0.005"),
        expires_at=now,
    )

    assert quote.is_expired(now) is True
    assert quote.is_expired(now - timedelta(seconds=1)) is False


@pytest.mark.asyncio
async def test_exchange_rate_uppercases_pair(client) -> None:
    rate = await ExchangeRate(client).get("eur", "btc")

    assert rate == Decimal("0.00005")
    assert client.calls[-1] == ("get_approximate_rate", ("EUR", "BTC"))
