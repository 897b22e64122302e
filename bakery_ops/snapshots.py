"""Receipt content snapshots stored on edit requests and the edit log.

``proposed_data``, ``previous_data`` and ``new_data`` all share this shape::

    {"version": 1, "date": "2026-01-05", "campaignId": 3, "locationId": 7,
     "notes": null, "items": [{"productId": 11, "quantityReceived": 10}]}

Stored blobs are validated when read back, so a row written under a
different schema version fails loudly instead of being applied.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bakery_ops.dates import parse_local_date
from bakery_ops.models import MAX_ID, MAX_QUANTITY

SNAPSHOT_VERSION = 1

RecordId = Annotated[int, Field(le=MAX_ID)]
# JSON integers only; 10.0 and "10" are rejected.
Quantity = Annotated[int, Field(strict=True, ge=0, le=MAX_QUANTITY)]


class SnapshotItem(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True, populate_by_name=True)

    product_id: RecordId = Field(alias='productId')
    quantity_received: Quantity = Field(alias='quantityReceived')


class ReceiptSnapshot(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True, populate_by_name=True)

    version: Literal[1] = SNAPSHOT_VERSION
    date: str
    campaign_id: RecordId | None = Field(alias='campaignId')
    location_id: RecordId = Field(alias='locationId')
    notes: str | None
    items: tuple[SnapshotItem, ...]

    @field_validator('date')
    @classmethod
    def _valid_date(cls, value: str) -> str:
        parse_local_date(value)
        return value

    def to_json(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)

    @classmethod
    def from_json(cls, data: dict) -> ReceiptSnapshot:
        return cls.model_validate(data)
