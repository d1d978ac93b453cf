"""Shared data models for the Coinify client.

Immutable pydantic models built from validated API schemas.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coinify_client.schemas import (
    PaymentMethodSchema,
    QuoteSchema,
    TraderSchema,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Quote(BaseModel):
    """Time-bounded exchange rate for one amount/currency pair."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    base_currency: str
    quote_currency: str
    base_amount: Decimal
    quote_amount: Decimal
    rate: Decimal | None = None
    issued_at: datetime | None = None
    expires_at: datetime

    @field_validator("issued_at", "expires_at", mode="after")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v) if v is not None else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Quote":
        schema = QuoteSchema.model_validate(payload)
        rate = schema.rate
        if rate is None and schema.base_amount:
            rate = abs(schema.quote_amount / schema.base_amount)
        return cls(
            id=schema.id,
            base_currency=schema.base_currency,
            quote_currency=schema.quote_currency,
            base_amount=schema.base_amount,
            quote_amount=schema.quote_amount,
            rate=rate,
            issued_at=schema.issue_time,
            expires_at=schema.expiry_time,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """A quote may only be consumed while ``now`` is strictly before expiry."""
        current = ensure_aware(now) if now is not None else utcnow()
        return current >= self.expires_at


class PaymentMethod(BaseModel):
    """Payment rail offered for a currency direction."""

    model_config = ConfigDict(frozen=True)

    in_medium: str
    out_medium: str
    name: str = ""
    in_currencies: tuple[str, ...] = ()
    out_currencies: tuple[str, ...] = ()
    minimum_in_amounts: Mapping[str, Decimal] = Field(default_factory=dict)
    in_fixed_fees: Mapping[str, Decimal] = Field(default_factory=dict)
    in_percentage_fee: Decimal = Decimal("0")
    can_trade: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PaymentMethod":
        schema = PaymentMethodSchema.model_validate(payload)
        return cls(
            in_medium=schema.in_medium,
            out_medium=schema.out_medium,
            name=schema.name,
            in_currencies=tuple(schema.in_currencies),
            out_currencies=tuple(schema.out_currencies),
            minimum_in_amounts=dict(schema.minimum_in_amounts),
            in_fixed_fees=dict(schema.in_fixed_fees),
            in_percentage_fee=schema.in_percentage_fee,
            can_trade=schema.can_trade,
        )


class Profile(BaseModel):
    """Trader profile and current trading limits."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str | None = None
    name: str | None = None
    country: str | None = None
    default_currency: str | None = None
    level_name: str | None = None
    limits: Mapping[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Profile":
        schema = TraderSchema.model_validate(payload)
        profile = schema.profile or {}
        address = profile.get("address") or {}
        return cls(
            id=schema.id,
            email=schema.email,
            name=profile.get("name"),
            country=address.get("country"),
            default_currency=schema.default_currency,
            level_name=(schema.level or {}).get("name"),
            limits=dict((schema.level or {}).get("limits") or {}),
        )
