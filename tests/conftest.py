from __future__ import annotations

import pytest

from engine.account import CoinifyAccount
from tests.helpers import FakeCoinifyClient, FakeDelegate


@pytest.fixture
def client() -> FakeCoinifyClient:
    return FakeCoinifyClient()


@pytest.fixture
def delegate() -> FakeDelegate:
    return FakeDelegate()


@pytest.fixture
def account(client: FakeCoinifyClient, delegate: FakeDelegate) -> CoinifyAccount:
    created = CoinifyAccount(
        {"user": 1, "offline_token": "token", "auto_login": True},
        delegate,
        client=client,  # type: ignore[arg-type]
    )
    delegate.account = created
    return created


@pytest.fixture
def new_account(client: FakeCoinifyClient, delegate: FakeDelegate) -> CoinifyAccount:
    created = CoinifyAccount.new(delegate, client=client)  # type: ignore[arg-type]
    delegate.account = created
    return created
