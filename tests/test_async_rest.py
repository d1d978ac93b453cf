"""Tests for async REST client request formation and error mapping."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any

import pytest

from coinify_client.async_rest import (
    AsyncRateLimitError,
    AsyncRestClient,
    AsyncRestRequest,
    AsyncTransientApiError,
)
from coinify_client.errors import TransportFailure, UpstreamRejection
from coinify_client.schemas import TradeState


class FakeResponse:
    def __init__(
        self,
        status: int,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self._payload = payload
        self.headers = headers or {}

    async def text(self) -> str:
        if isinstance(self._payload, str):
            return self._payload
        return json.dumps(self._payload)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.requests: list[dict[str, Any]] = []

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        timeout: Any | None = None,
    ) -> FakeResponse:
        self.requests.append(
            {
                "method": method,
                "url": url,
                "headers": headers or {},
                "data": data,
                "timeout": timeout,
            }
        )
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        return None


def _client(session: Any, **kwargs: Any) -> AsyncRestClient:
    return AsyncRestClient(base_url="https://api.example", session=session, **kwargs)


@pytest.mark.asyncio
async def test_get_request_sends_bearer_token_and_query() -> None:
    session = FakeSession([FakeResponse(200, [])])
    client = _client(session, access_token="access-1")

    await client.send(
        AsyncRestRequest(method="GET", path="/trades", params={"limit": 1})
    )

    request = session.requests[0]
    assert request["url"] == "https://api.example/trades?limit=1"
    assert request["headers"]["Authorization"] == "Bearer access-1"
    assert request["data"] is None


@pytest.mark.asyncio
async def test_unauthenticated_request_omits_authorization() -> None:
    session = FakeSession([FakeResponse(200, {"rate": 0.00005})])
    client = _client(session, access_token="access-1")

    rate = await client.get_approximate_rate("eur", "btc")

    assert rate == Decimal("0.00005")
    assert "Authorization" not in session.requests[0]["headers"]
    assert "baseCurrency=eur" in session.requests[0]["url"]


@pytest.mark.asyncio
async def test_request_quote_posts_exact_amount_and_parses_quote() -> None:
    session = FakeSession(
        [
            FakeResponse(
                200,
                {
                    "id": 77,
                    "baseCurrency": "EUR",
                    "quoteCurrency": "BTC",
                    "baseAmount": -100,
                    "quoteAmount": 0.005,
                    "issueTime": "2024-05-01T10:00:00Z",
                    "expiryTime": "2024-05-01T10:15:00Z",
                },
            )
        ]
    )
    client = _client(session)

    quote = await client.request_quote("EUR", "BTC", Decimal("-100"))

    body = json.loads(session.requests[0]["data"].decode("utf8"))
    assert body == {"baseCurrency": "EUR", "quoteCurrency": "BTC", "baseAmount": "-100"}
    assert quote.id == 77
    assert quote.base_amount == Decimal("-100")
    assert quote.rate == Decimal("0.00005")
    assert quote.expires_at.tzinfo is not None


@pytest.mark.asyncio
async def test_request_quote_keeps_high_precision_amounts_intact() -> None:
    amount = Decimal("-100.12345678901234567890")
    session = FakeSession(
        [
            FakeResponse(
                200,
                {
                    "id": 78,
                    "baseCurrency": "EUR",
                    "quoteCurrency": "BTC",
                    "baseAmount": "-100.12345678901234567890",
                    "quoteAmount": "0.005",
                    "rate": "0.0000499",
                    "expiryTime": "2024-05-01T10:15:00Z",
                },
            )
        ]
    )
    client = _client(session)

    quote = await client.request_quote("EUR", "BTC", amount)

    body = json.loads(session.requests[0]["data"].decode("utf8"))
    assert Decimal(body["baseAmount"]) == amount
    assert quote.base_amount == amount
    assert quote.rate == Decimal("0.0000499")


@pytest.mark.asyncio
async def test_create_trade_body_carries_receive_address() -> None:
    session = FakeSession(
        [
            FakeResponse(
                201,
                {
                    "id": 9,
                    "state": "awaiting_transfer_in",
                    "inCurrency": "EUR",
                    "outCurrency": "BTC",
                    "inAmount": 100,
                    "transferIn": {"medium": "bank"},
                    "transferOut": {"medium": "blockchain", "details": {"account": "1abc"}},
                },
            )
        ]
    )
    client = _client(session)

    payload = await client.create_trade(77, "bank", "1abc")

    body = json.loads(session.requests[0]["data"].decode("utf8"))
    assert body["priceQuoteId"] == 77
    assert body["transferIn"] == {"medium": "bank"}
    assert body["transferOut"]["details"]["account"] == "1abc"
    assert TradeState.from_api(payload["state"]) is TradeState.AWAITING_PAYMENT


@pytest.mark.asyncio
async def test_client_error_maps_to_upstream_rejection_with_code() -> None:
    session = FakeSession(
        [
            FakeResponse(
                400,
                {"error": "kyc_required", "error_description": "Complete KYC first"},
            )
        ]
    )
    client = _client(session)

    with pytest.raises(UpstreamRejection) as excinfo:
        await client.create_kyc()

    assert excinfo.value.status == 400
    assert excinfo.value.error_code == "kyc_required"
    assert "Complete KYC first" in str(excinfo.value)
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_rate_limit_raises_retry_after() -> None:
    session = FakeSession(
        [FakeResponse(429, {"error": "rate"}, headers={"Retry-After": "1.5"})]
    )
    client = _client(session, max_retries=0)

    with pytest.raises(AsyncRateLimitError) as excinfo:
        await client.send(AsyncRestRequest(method="GET", path="/ping"))

    assert excinfo.value.retry_after == 1.5
    assert isinstance(excinfo.value, UpstreamRejection)


@pytest.mark.asyncio
async def test_retries_on_timeout_then_succeeds() -> None:
    session = FakeSession([asyncio.TimeoutError(), FakeResponse(200, {"ok": True})])  # type: ignore[list-item]
    client = _client(session, max_retries=1, backoff_factor=0.0)

    response = await client.send(AsyncRestRequest(method="GET", path="/ping"))

    assert response["ok"] is True
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_server_errors_surface_as_transport_failure_after_retries() -> None:
    session = FakeSession([FakeResponse(503, ""), FakeResponse(502, "")])
    client = _client(session, max_retries=1, backoff_factor=0.0)

    with pytest.raises(AsyncTransientApiError) as excinfo:
        await client.send(AsyncRestRequest(method="GET", path="/trades"))

    assert isinstance(excinfo.value, TransportFailure)
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_payment_methods_passes_currency_filter() -> None:
    session = FakeSession(
        [
            FakeResponse(
                200,
                [
                    {
                        "inMedium": "bank",
                        "outMedium": "blockchain",
                        "name": "Bank transfer",
                        "inCurrencies": ["EUR", "DKK"],
                        "outCurrencies": ["BTC"],
                        "minimumInAmounts": {"EUR": 10},
                    }
                ],
            )
        ]
    )
    client = _client(session)

    methods = await client.get_payment_methods(out_currency="BTC")

    assert session.requests[0]["url"].endswith("/trades/payment-methods?outCurrency=BTC")
    assert methods[0].in_currencies == ("EUR", "DKK")
    assert methods[0].minimum_in_amounts["EUR"] == Decimal("10")
