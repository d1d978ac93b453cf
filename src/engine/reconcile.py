"""Merge remote listings into locally owned records by identity."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, MutableSequence, Protocol, TypeVar


class Reconcilable(Protocol):
    id: int

    def update_from_payload(self, payload: Mapping[str, Any]) -> None:
        """Merge a remote record into this object in place."""


RecordT = TypeVar("RecordT", bound=Reconcilable)


def update_list(
    local: MutableSequence[RecordT],
    remote: Iterable[Mapping[str, Any]],
    factory: Callable[[Mapping[str, Any]], RecordT],
) -> MutableSequence[RecordT]:
    """Update known records in place and append unknown ones.

    Records missing from ``remote`` are kept; object identity of existing
    records is preserved so callers' references stay valid.
    """
    index = {record.id: record for record in local}
    for payload in remote:
        record_id = int(payload["id"])
        existing = index.get(record_id)
        if existing is not None:
            existing.update_from_payload(payload)
            continue
        created = factory(payload)
        local.append(created)
        index[created.id] = created
    return local
