"""Async REST client implementation for the Coinify trading API."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import ssl
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from urllib.parse import urlencode

import aiohttp

from coinify_client.constants import BLOCKCHAIN_MEDIUM, default_rest_base_url
from coinify_client.errors import TransportFailure, UpstreamRejection
from coinify_client.models import PaymentMethod, Profile, Quote

LOGGER = logging.getLogger("coinify.rest")


@dataclass
class AsyncRestRequest:
    method: str
    path: str
    params: Mapping[str, Any] | None = None
    body: Mapping[str, Any] | None = None
    authenticated: bool = True


class AsyncRateLimitError(UpstreamRejection):
    """Raised when the API indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status=429)
        self.retry_after = retry_after


class AsyncTransientApiError(TransportFailure):
    """Raised for transient REST errors that may succeed on retry."""


class AsyncRestClient:
    """Async REST client with retry and rate-limit handling.

    Authentication is owned by the host application: it supplies the
    bearer ``access_token`` (typically obtained from the offline token).
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        access_token: str | None = None,
        offline_token: str | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: aiohttp.ClientSession | None = None,
        verify_ssl: bool = True,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.base_url = (base_url or default_rest_base_url()).rstrip("/")
        self.access_token = access_token
        self.offline_token = offline_token
        self._ssl_context = ssl_context
        if ssl_context is None and verify_ssl:
            self._ssl_context = ssl.create_default_context()
        elif ssl_context is None and not verify_ssl:
            self._ssl_context = ssl._create_unverified_context()
            LOGGER.warning(
                "SSL certificate verification is DISABLED. "
                "This should NEVER be used in production environments."
            )
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._session = session
        self._owns_session = session is None

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def send(self, request: AsyncRestRequest) -> Any:
        attempts = 0
        while True:
            try:
                return await self._send_once(request)
            except AsyncRateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or self._compute_backoff(attempts)
                LOGGER.info("Rate limited on %s, retrying in %.2fs", request.path, delay)
                await asyncio.sleep(delay)
            except AsyncTransientApiError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                LOGGER.info("Transient error on %s: %s", request.path, exc)
                await asyncio.sleep(self._compute_backoff(attempts))

    async def _send_once(self, request: AsyncRestRequest) -> Any:
        url = self.build_url(request.path)
        method = request.method.upper()
        headers = {"Accept": "application/json"}

        if request.params:
            url = f"{url}?{urlencode(list(request.params.items()), doseq=True)}"

        data_bytes = None
        if method != "GET" and request.body is not None:
            data_bytes = json.dumps(
                request.body, separators=(",", ":"), default=_json_default
            ).encode("utf8")
            headers["Content-Type"] = "application/json"

        if request.authenticated and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=data_bytes,
                timeout=timeout,
            ) as response:
                payload = await response.text()
                if response.status == 429:
                    retry_after = self._parse_retry_after(
                        response.headers.get("Retry-After")
                    )
                    raise AsyncRateLimitError(
                        "Rate limit exceeded", retry_after=retry_after
                    )
                if response.status in {500, 502, 503, 504}:
                    raise AsyncTransientApiError(
                        f"Transient HTTP error {response.status}"
                    )
                if response.status >= 400:
                    raise self._build_rejection(response.status, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise AsyncTransientApiError("Network error while contacting API") from exc

        if not payload:
            return {}
        return json.loads(payload, parse_float=Decimal)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            connector = aiohttp.TCPConnector(ssl=self._ssl_context)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    def _compute_backoff(self, attempt: int) -> float:
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)

    def _parse_retry_after(self, header_value: str | None) -> float | None:
        if header_value is None:
            return None
        try:
            return float(header_value)
        except ValueError:
            return None

    def _build_rejection(self, status_code: int, payload: str) -> UpstreamRejection:
        data: Any = None
        if payload:
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                data = None
        error_code = self._extract_error_code(data)
        error_message = self._extract_error_message(data)
        if error_message:
            message = f"HTTP error {status_code}: {error_message}"
        elif payload:
            message = f"HTTP error {status_code}: {payload}"
        else:
            message = f"HTTP error {status_code}"
        return UpstreamRejection(
            message,
            status=status_code,
            error_code=error_code,
            payload=data if isinstance(data, dict) else None,
        )

    def _extract_error_code(self, payload: Any) -> str | None:
        if isinstance(payload, dict):
            for key in ("error", "code", "errorCode"):
                if payload.get(key) is not None:
                    return str(payload[key])
        return None

    def _extract_error_message(self, payload: Any) -> str | None:
        if isinstance(payload, dict):
            for key in ("error_description", "message", "errorMessage"):
                if payload.get(key) is not None:
                    return str(payload[key])
        return None

    async def signup_trader(self, body: Mapping[str, Any]) -> dict[str, Any]:
        return await self.send(
            AsyncRestRequest(
                method="POST", path="/signup/trader", body=body, authenticated=False
            )
        )

    async def get_trader(self) -> Profile:
        response = await self.send(AsyncRestRequest(method="GET", path="/traders/me"))
        return Profile.from_payload(response)

    async def request_quote(
        self, base_currency: str, quote_currency: str, base_amount: Decimal
    ) -> Quote:
        body = {
            "baseCurrency": base_currency,
            "quoteCurrency": quote_currency,
            "baseAmount": base_amount,
        }
        response = await self.send(
            AsyncRestRequest(method="POST", path="/trades/quote", body=body)
        )
        return Quote.from_payload(response)

    async def create_trade(
        self, quote_id: int | None, medium: str, receive_address: str
    ) -> dict[str, Any]:
        body = {
            "priceQuoteId": quote_id,
            "transferIn": {"medium": medium},
            "transferOut": {
                "medium": BLOCKCHAIN_MEDIUM,
                "details": {"account": receive_address},
            },
        }
        return await self.send(AsyncRestRequest(method="POST", path="/trades", body=body))

    async def get_trade(self, trade_id: int) -> dict[str, Any]:
        return await self.send(AsyncRestRequest(method="GET", path=f"/trades/{trade_id}"))

    async def list_trades(self) -> list[dict[str, Any]]:
        response = await self.send(AsyncRestRequest(method="GET", path="/trades"))
        return list(response or [])

    async def create_kyc(self) -> dict[str, Any]:
        return await self.send(AsyncRestRequest(method="POST", path="/kyc", body={}))

    async def list_kycs(self) -> list[dict[str, Any]]:
        response = await self.send(AsyncRestRequest(method="GET", path="/kyc"))
        return list(response or [])

    async def get_payment_methods(
        self, in_currency: str | None = None, out_currency: str | None = None
    ) -> list[PaymentMethod]:
        params: dict[str, Any] = {}
        if in_currency:
            params["inCurrency"] = in_currency
        if out_currency:
            params["outCurrency"] = out_currency
        response = await self.send(
            AsyncRestRequest(
                method="GET", path="/trades/payment-methods", params=params or None
            )
        )
        return [PaymentMethod.from_payload(item) for item in response or []]

    async def get_approximate_rate(
        self, base_currency: str, quote_currency: str
    ) -> Decimal:
        response = await self.send(
            AsyncRestRequest(
                method="GET",
                path="/rates/approximate",
                params={"baseCurrency": base_currency, "quoteCurrency": quote_currency},
                authenticated=False,
            )
        )
        rate = response.get("rate") if isinstance(response, dict) else None
        if rate is None:
            raise UpstreamRejection("Rate response missing 'rate'", payload=response)
        return Decimal(str(rate))


def _json_default(value: Any) -> Any:
    # Amounts go out as decimal strings so no precision is lost.
    return str(value)
