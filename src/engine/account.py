"""Account facade composing quotes, trades, KYC and payment monitoring.

To use it a host application supplies:

1. a delegate implementing ``engine.delegate.ExchangeDelegate`` (persistence,
   email, address reservation and address monitoring);
2. a Coinify partner identifier, set after construction.

    account = CoinifyAccount({"user": 1, "offline_token": "token"}, delegate)
    account.partner_id = 18
    await delegate.save()  # persists account.to_payload()

Every operation that changes persisted state awaits ``delegate.save()``
before returning.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping

from coinify_client.async_rest import AsyncRestClient
from coinify_client.errors import (
    AddressCommitFailure,
    PreconditionFailure,
    UpstreamRejection,
    require,
)
from coinify_client.models import PaymentMethod, Profile, Quote, utcnow
from coinify_client.schemas import Medium, SignupResponseSchema
from engine.address_pool import ReceiveAddressPool
from engine.delegate import ExchangeDelegate
from engine.kyc import KycRecord, fetch_kycs, trigger_kyc
from engine.payment_methods import collect_currencies, fetch_buy_methods, fetch_sell_methods
from engine.payment_monitor import PaymentMonitor
from engine.quotes import ExchangeRate, QuoteEngine, to_decimal
from engine.reconcile import update_list
from engine.state import AccountState
from engine.trades import Trade, TradeLifecycle
from utils.config_validator import (
    ConfigValidationError,
    validate_country_code,
    validate_currency_code,
)
from utils.logging_config import LogContext
from utils.settings import ClientSettings

LOGGER = logging.getLogger("coinify.account")

TradeFilter = Callable[[list[Trade]], Iterable[Trade]]


class CoinifyAccount:
    """A user's relationship with the exchange and its local state mirror."""

    def __init__(
        self,
        state: AccountState | Mapping[str, Any] | None,
        delegate: ExchangeDelegate,
        *,
        client: AsyncRestClient | None = None,
        settings: ClientSettings | None = None,
        trade_filter: TradeFilter | None = None,
    ) -> None:
        if not isinstance(state, AccountState):
            state = AccountState.from_payload(state)
        self.settings = settings or ClientSettings()
        self.delegate = delegate
        self._user = state.user
        self._offline_token = state.offline_token
        self._auto_login = state.auto_login
        self._partner_id: str | None = self.settings.partner_id
        self._trade_filter = trade_filter

        self.client = client or AsyncRestClient(
            self.settings.base_url,
            offline_token=self._offline_token,
            timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
            backoff_factor=self.settings.backoff_factor,
            verify_ssl=self.settings.verify_ssl,
        )
        self.client.offline_token = self._offline_token

        self.address_pool = ReceiveAddressPool(delegate)
        self.quotes = QuoteEngine(self.client, self.settings.crypto_asset)
        self.exchange_rate = ExchangeRate(self.client)
        self.lifecycle = TradeLifecycle(self.client, delegate, self.address_pool)
        self.payment_monitor = PaymentMonitor(delegate)

        self._profile: Profile | None = None
        self._last_quote: Quote | None = None
        self._buy_currencies: list[str] | None = None
        self._sell_currencies: list[str] | None = None
        self._kycs: list[KycRecord] = []
        self._trades: list[Trade] = []
        for payload in state.trades:
            trade = Trade.from_payload(payload, delegate, account=self)
            if trade.receive_address:
                self.address_pool.adopt(trade.receive_address, trade)
            self._trades.append(trade)

    @classmethod
    def new(cls, delegate: ExchangeDelegate, **kwargs: Any) -> "CoinifyAccount":
        """Create an account that has not signed up yet."""
        if delegate is None:
            raise PreconditionFailure("DELEGATE_REQUIRED", "CoinifyAccount.new requires delegate")
        return cls(AccountState(auto_login=True), delegate, **kwargs)

    @property
    def user(self) -> int | None:
        return self._user

    @property
    def offline_token(self) -> str | None:
        return self._offline_token

    @property
    def auto_login(self) -> bool:
        return self._auto_login

    @property
    def has_account(self) -> bool:
        return bool(self._offline_token)

    @property
    def partner_id(self) -> str | None:
        return self._partner_id

    @partner_id.setter
    def partner_id(self, value: str | None) -> None:
        self._partner_id = value

    @property
    def profile(self) -> Profile | None:
        """The fetched profile, or None until ``fetch_profile`` completes."""
        return self._profile

    @property
    def trades(self) -> list[Trade]:
        return self._trades

    @property
    def kycs(self) -> list[KycRecord]:
        return self._kycs

    @property
    def last_quote(self) -> Quote | None:
        return self._last_quote

    @property
    def buy_currencies(self) -> list[str] | None:
        return self._buy_currencies

    @property
    def sell_currencies(self) -> list[str] | None:
        return self._sell_currencies

    def to_state(self) -> AccountState:
        trades = self._trade_filter(self._trades) if self._trade_filter else self._trades
        return AccountState(
            user=self._user,
            offline_token=self._offline_token,
            auto_login=self._auto_login,
            trades=[trade.to_payload(self.delegate) for trade in trades],
        )

    def to_payload(self) -> dict[str, Any]:
        return self.to_state().to_payload()

    async def _save(self) -> None:
        await self.delegate.save()

    # Signup / profile

    def _check_signup(self, country_code: Any, currency_code: Any) -> tuple[str, str]:
        require(not self._user and not self.has_account, "ALREADY_SIGNED_UP", "Already signed up")
        try:
            country = validate_country_code(country_code)
        except ConfigValidationError as exc:
            raise PreconditionFailure("INVALID_COUNTRY_CODE", str(exc)) from exc
        try:
            currency = validate_currency_code(currency_code)
        except ConfigValidationError as exc:
            raise PreconditionFailure("CURRENCY_REQUIRED", str(exc)) from exc
        require(self.delegate.email(), "EMAIL_REQUIRED", "email required")
        require(
            self.delegate.is_email_verified(),
            "EMAIL_NOT_VERIFIED",
            "email must be verified",
        )
        return country, currency

    async def signup(self, country_code: str, currency_code: str) -> dict[str, Any]:
        """Create the trader account; country and default currency required.

        The delegate's email must be set and verified.
        """
        country, currency = self._check_signup(country_code, currency_code)
        email_token = await self.delegate.get_email_token()
        require(email_token, "EMAIL_TOKEN_MISSING", "email token missing")
        response = await self.client.signup_trader(
            {
                "email": self.delegate.email(),
                "partnerId": self._partner_id,
                "defaultCurrency": currency,
                "profile": {"address": {"country": country}},
                "trustedEmailValidationToken": email_token,
                "generateOfflineToken": True,
            }
        )
        try:
            result = SignupResponseSchema.model_validate(response)
        except ValueError as exc:
            raise UpstreamRejection("Malformed signup response", payload=response) from exc
        self._user = result.trader.id
        self._offline_token = result.offline_token
        self.client.offline_token = self._offline_token
        LOGGER.info("Signed up trader %s", self._user)
        await self._save()
        return response

    async def fetch_profile(self) -> Profile:
        self._profile = await self.client.get_trader()
        return self._profile

    # Quotes / trades

    async def get_buy_quote(
        self, amount: Any, base_currency: str, quote_currency: str | None = None
    ) -> Quote:
        """Quote spending ``amount`` of the base currency; replaces the last quote."""
        quote = await self.quotes.get_quote(
            -to_decimal(amount), base_currency, quote_currency
        )
        self._last_quote = quote
        return quote

    async def get_exchange_rate(self, base_currency: str, quote_currency: str) -> Decimal:
        return await self.exchange_rate.get(base_currency, quote_currency)

    def _check_buy(self, amount: Any, base_currency: str, medium: Any) -> tuple[Quote, Medium]:
        quote = self._last_quote
        if quote is None:
            raise PreconditionFailure("NO_QUOTE", "You must first obtain a quote")
        require(
            quote.base_amount == -to_decimal(amount),
            "LAST_QUOTE_AMOUNT_DOES_NOT_MATCH",
        )
        require(
            str(base_currency or "").upper() == quote.base_currency.upper(),
            "LAST_QUOTE_CURRENCY_DOES_NOT_MATCH",
            "Currency must match last quote",
        )
        require(not quote.is_expired(utcnow()), "LAST_QUOTE_EXPIRED")
        try:
            resolved_medium = Medium(medium)
        except ValueError:
            raise PreconditionFailure("INVALID_MEDIUM", "Specify bank or card") from None
        return quote, resolved_medium

    async def buy(self, amount: Any, base_currency: str, medium: Medium | str) -> Trade:
        """Place an order against the last quote and persist the new trade."""
        quote, resolved_medium = self._check_buy(amount, base_currency, medium)
        try:
            trade = await self.lifecycle.buy(quote, resolved_medium, account=self)
        except AddressCommitFailure as exc:
            # The order is live on the exchange even though the hook failed.
            self._trades.append(exc.trade)
            await self._save()
            raise
        self._trades.append(trade)
        await self._save()
        return trade

    async def retry_address_commits(self) -> int:
        """Re-run commit hooks that failed after their order was placed."""
        return await self.address_pool.retry_commits()

    async def refresh_trade(self, trade: Trade) -> Trade:
        with LogContext(trade_id=trade.id):
            await self.lifecycle.refresh(trade)
        await self._save()
        return trade

    async def get_trades(self) -> list[Trade]:
        """Reconcile local trades against the exchange's full listing."""
        remote = await self.lifecycle.fetch_all()
        update_list(
            self._trades,
            remote,
            lambda payload: Trade.from_api(payload, account=self),
        )
        for trade in self._trades:
            if trade.receive_address:
                self.address_pool.adopt(trade.receive_address, trade)
        await self._save()
        return self._trades

    # KYC

    async def trigger_kyc(self) -> KycRecord:
        record = await trigger_kyc(self.client)
        self._kycs.append(record)
        return record

    async def get_kycs(self) -> list[KycRecord]:
        remote = await fetch_kycs(self.client)
        update_list(self._kycs, remote, KycRecord.from_api)
        await self._save()
        return self._kycs

    # Payment methods

    async def get_buy_methods(self) -> list[PaymentMethod]:
        return await fetch_buy_methods(self.client, self.settings.crypto_asset)

    async def get_sell_methods(self) -> list[PaymentMethod]:
        return await fetch_sell_methods(self.client, self.settings.crypto_asset)

    async def get_buy_currencies(self) -> list[str]:
        currencies = collect_currencies(await self.get_buy_methods(), inbound=True)
        self._buy_currencies = list(currencies)
        return currencies

    async def get_sell_currencies(self) -> list[str]:
        currencies = collect_currencies(await self.get_sell_methods(), inbound=False)
        self._sell_currencies = list(currencies)
        return currencies

    # Payment monitoring

    def monitor_payments(self) -> int:
        """Register address watches for every trade still awaiting payment."""
        return self.payment_monitor.watch_all(self._trades)

    async def check_payments(self) -> int:
        return await self.payment_monitor.check_all(self._trades)
