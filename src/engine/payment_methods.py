"""Payment-method listing and the currencies they accept."""

from __future__ import annotations

from typing import Iterable

from coinify_client.async_rest import AsyncRestClient
from coinify_client.constants import CRYPTO_ASSET
from coinify_client.models import PaymentMethod


async def fetch_buy_methods(
    client: AsyncRestClient, crypto_asset: str = CRYPTO_ASSET
) -> list[PaymentMethod]:
    return await client.get_payment_methods(out_currency=crypto_asset)


async def fetch_sell_methods(
    client: AsyncRestClient, crypto_asset: str = CRYPTO_ASSET
) -> list[PaymentMethod]:
    return await client.get_payment_methods(in_currency=crypto_asset)


def collect_currencies(methods: Iterable[PaymentMethod], *, inbound: bool) -> list[str]:
    """Union of currencies across methods, first-seen order."""
    currencies: list[str] = []
    for method in methods:
        candidates = method.in_currencies if inbound else method.out_currencies
        for currency in candidates:
            if currency not in currencies:
                currencies.append(currency)
    return currencies
