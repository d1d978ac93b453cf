"""Pydantic schemas for Coinify API payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coinify_client.errors import UpstreamRejection


class Medium(str, Enum):
    """Fiat payment rail used to fund a trade."""

    BANK = "bank"
    CARD = "card"


class TradeState(str, Enum):
    """Local trade lifecycle state."""

    AWAITING_PAYMENT = "awaiting_payment"
    PENDING_REVIEW = "pending_review"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TRADE_STATES

    @classmethod
    def from_api(cls, value: Any) -> "TradeState":
        """Map a server state string (or a local one) onto a TradeState."""
        if isinstance(value, TradeState):
            return value
        raw = str(value or "").strip().lower()
        resolved = _SERVER_TRADE_STATES.get(raw)
        if resolved is None:
            try:
                resolved = cls(raw)
            except ValueError:
                raise UpstreamRejection(f"Unknown trade state: {value!r}") from None
        return resolved


TERMINAL_TRADE_STATES = frozenset(
    {
        TradeState.COMPLETED,
        TradeState.CANCELLED,
        TradeState.REJECTED,
        TradeState.EXPIRED,
    }
)

# Forward progress order; side exits are not ranked.
TRADE_STATE_ORDER = {
    TradeState.AWAITING_PAYMENT: 0,
    TradeState.PENDING_REVIEW: 1,
    TradeState.PROCESSING: 2,
    TradeState.COMPLETED: 3,
}

_SERVER_TRADE_STATES = {
    "awaiting_transfer_in": TradeState.AWAITING_PAYMENT,
    "reviewing": TradeState.PENDING_REVIEW,
    "processing": TradeState.PROCESSING,
    "completed": TradeState.COMPLETED,
    "completed_test": TradeState.COMPLETED,
    "cancelled": TradeState.CANCELLED,
    "rejected": TradeState.REJECTED,
    "expired": TradeState.EXPIRED,
}


class KycState(str, Enum):
    """Identity verification state."""

    PENDING = "pending"
    UPDATE_REQUESTED = "updateRequested"
    REVIEWING = "reviewing"
    DOCUMENTS_REQUESTED = "documentsRequested"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"
    EXPIRED = "expired"


# ============================================================================
# Transfer Schemas
# ============================================================================


class TransferSchema(BaseModel):
    """One leg (in or out) of a trade."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    medium: str
    currency: str | None = None
    send_amount: Decimal | None = Field(None, alias="sendAmount")
    receive_amount: Decimal | None = Field(None, alias="receiveAmount")
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("details", mode="before")
    @classmethod
    def default_details(cls, v: Any) -> dict[str, Any]:
        return dict(v or {})


# ============================================================================
# Trade Schemas
# ============================================================================


class TradeSchema(BaseModel):
    """Trade record as returned by ``GET trades`` and ``POST trades``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    state: TradeState
    in_currency: str = Field(..., alias="inCurrency")
    out_currency: str = Field(..., alias="outCurrency")
    in_amount: Decimal = Field(..., alias="inAmount")
    out_amount: Decimal | None = Field(None, alias="outAmount")
    transfer_in: TransferSchema = Field(..., alias="transferIn")
    transfer_out: TransferSchema = Field(..., alias="transferOut")
    create_time: datetime | None = Field(None, alias="createTime")
    update_time: datetime | None = Field(None, alias="updateTime")
    tx_hash: str | None = Field(None, alias="txHash")

    @field_validator("state", mode="before")
    @classmethod
    def parse_state(cls, v: Any) -> TradeState:
        return TradeState.from_api(v)

    @property
    def receive_address(self) -> str | None:
        account = self.transfer_out.details.get("account")
        return str(account) if account else None


# ============================================================================
# Quote Schemas
# ============================================================================


class QuoteSchema(BaseModel):
    """Price quote as returned by ``POST trades/quote``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | None = None
    base_currency: str = Field(..., alias="baseCurrency")
    quote_currency: str = Field(..., alias="quoteCurrency")
    base_amount: Decimal = Field(..., alias="baseAmount")
    quote_amount: Decimal = Field(..., alias="quoteAmount")
    rate: Decimal | None = None
    issue_time: datetime | None = Field(None, alias="issueTime")
    expiry_time: datetime = Field(..., alias="expiryTime")


# ============================================================================
# KYC Schemas
# ============================================================================


class KycSchema(BaseModel):
    """KYC review record as returned by ``GET kyc``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    state: KycState
    external_id: str | None = Field(None, alias="externalId")
    redirect_url: str | None = Field(None, alias="redirectUrl")
    create_time: datetime | None = Field(None, alias="createTime")
    update_time: datetime | None = Field(None, alias="updateTime")
    trade_ids: list[int] = Field(default_factory=list, alias="tradeIds")


# ============================================================================
# Payment Method Schemas
# ============================================================================


class PaymentMethodSchema(BaseModel):
    """Payment method as returned by ``GET trades/payment-methods``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    in_medium: str = Field(..., alias="inMedium")
    out_medium: str = Field(..., alias="outMedium")
    name: str = ""
    in_currencies: list[str] = Field(default_factory=list, alias="inCurrencies")
    out_currencies: list[str] = Field(default_factory=list, alias="outCurrencies")
    minimum_in_amounts: dict[str, Decimal] = Field(
        default_factory=dict, alias="minimumInAmounts"
    )
    in_fixed_fees: dict[str, Decimal] = Field(default_factory=dict, alias="inFixedFees")
    in_percentage_fee: Decimal = Field(Decimal("0"), alias="inPercentageFee")
    can_trade: bool = Field(True, alias="canTrade")


# ============================================================================
# Trader Schemas
# ============================================================================


class TraderSchema(BaseModel):
    """Trader profile as returned by ``GET traders/me``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    email: str | None = None
    default_currency: str | None = Field(None, alias="defaultCurrency")
    profile: dict[str, Any] = Field(default_factory=dict)
    level: dict[str, Any] = Field(default_factory=dict)


class SignupResponseSchema(BaseModel):
    """Response body of ``POST signup/trader``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    trader: TraderSchema
    offline_token: str = Field(..., alias="offlineToken")
