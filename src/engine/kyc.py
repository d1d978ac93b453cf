"""KYC review records."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from coinify_client.async_rest import AsyncRestClient
from coinify_client.errors import UpstreamRejection
from coinify_client.schemas import KycSchema, KycState

LOGGER = logging.getLogger("coinify.kyc")


class KycRecord:
    def __init__(
        self,
        *,
        id: int,
        state: KycState,
        external_id: str | None = None,
        redirect_url: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        trade_ids: list[int] | None = None,
    ) -> None:
        self.id = id
        self.state = state
        self.external_id = external_id
        self.redirect_url = redirect_url
        self.created_at = created_at
        self.updated_at = updated_at
        self.trade_ids = list(trade_ids or [])

    def __repr__(self) -> str:
        return f"KycRecord(id={self.id!r}, state={self.state.value!r})"

    @property
    def is_completed(self) -> bool:
        return self.state is KycState.COMPLETED

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "KycRecord":
        schema = KycSchema.model_validate(payload)
        return cls(
            id=schema.id,
            state=schema.state,
            external_id=schema.external_id,
            redirect_url=schema.redirect_url,
            created_at=schema.create_time,
            updated_at=schema.update_time,
            trade_ids=schema.trade_ids,
        )

    def update_from_payload(self, payload: Mapping[str, Any]) -> None:
        schema = KycSchema.model_validate(payload)
        if schema.id != self.id:
            raise UpstreamRejection(
                f"KYC record {schema.id} does not match local record {self.id}"
            )
        if schema.state is not self.state:
            LOGGER.info(
                "KYC %s: %s -> %s",
                self.id,
                self.state.value,
                schema.state.value,
                extra={"kyc_id": self.id},
            )
        self.state = schema.state
        self.external_id = schema.external_id or self.external_id
        self.redirect_url = schema.redirect_url or self.redirect_url
        if schema.create_time is not None and self.created_at is None:
            self.created_at = schema.create_time
        if schema.update_time is not None:
            self.updated_at = schema.update_time
        for trade_id in schema.trade_ids:
            if trade_id not in self.trade_ids:
                self.trade_ids.append(trade_id)


async def trigger_kyc(client: AsyncRestClient) -> KycRecord:
    """Start a new identity review."""
    record = KycRecord.from_api(await client.create_kyc())
    LOGGER.info("Triggered KYC review %s", record.id, extra={"kyc_id": record.id})
    return record


async def fetch_kycs(client: AsyncRestClient) -> list[dict[str, Any]]:
    return await client.list_kycs()
