from tests.helpers.fakes import (
    FakeCoinifyClient,
    FakeDelegate,
    kyc_payload,
    trade_payload,
)

__all__ = [
    "FakeCoinifyClient",
    "FakeDelegate",
    "kyc_payload",
    "trade_payload",
]
