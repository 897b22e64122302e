from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bakery_ops.dates import parse_local_date
from bakery_ops.services.edit_request_service import ReceiptChanges
from bakery_ops.services.reference_service import ReceiptItemInput
from bakery_ops.snapshots import Quantity, RecordId


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='forbid')


class ReceiptItemPayload(_Payload):
    product_id: RecordId = Field(alias='productId')
    quantity_received: Quantity = Field(alias='quantityReceived')

    def to_input(self) -> ReceiptItemInput:
        return ReceiptItemInput(product_id=self.product_id, quantity_received=self.quantity_received)


def _local_date(value: object) -> object:
    if isinstance(value, str):
        return parse_local_date(value)
    return value


class CreateReceiptPayload(_Payload):
    receipt_date: date = Field(alias='date')
    location_id: RecordId = Field(alias='locationId')
    campaign_id: RecordId | None = Field(default=None, alias='campaignId')
    items: list[ReceiptItemPayload] = Field(min_length=1)
    notes: str | None = None

    @field_validator('receipt_date', mode='before')
    @classmethod
    def parse_date(cls, value: object) -> object:
        return _local_date(value)


class ConfirmReceiptPayload(_Payload):
    confirmed_by_name: str = Field(alias='confirmedByName', min_length=1)


class UpdateReceiptPayload(_Payload):
    receipt_date: date | None = Field(default=None, alias='date')
    campaign_id: RecordId | None = Field(default=None, alias='campaignId')
    location_id: RecordId | None = Field(default=None, alias='locationId')
    notes: str | None = None
    items: list[ReceiptItemPayload] | None = None

    @field_validator('receipt_date', mode='before')
    @classmethod
    def parse_date(cls, value: object) -> object:
        return _local_date(value)

    def to_changes(self) -> ReceiptChanges:
        # Only keys present in the request body take part in the update.
        present = self.model_fields_set
        values: dict = {name: getattr(self, name) for name in present if name != 'items'}
        if 'items' in present:
            values['items'] = None if self.items is None else [item.to_input() for item in self.items]
        return ReceiptChanges(**values)


class ReviewEditRequestPayload(_Payload):
    status: Literal['APPROVED', 'REJECTED']
    rejection_reason: str | None = Field(default=None, alias='rejectionReason')
