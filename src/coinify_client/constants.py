"""Shared API constants for the Coinify trading API."""

REST_URL = "https://app-api.coinify.com"

CRYPTO_ASSET = "BTC"

# Blockchain payout medium used for the crypto leg of a buy.
BLOCKCHAIN_MEDIUM = "blockchain"


def default_rest_base_url() -> str:
    """Return the default REST base URL."""
    return REST_URL
