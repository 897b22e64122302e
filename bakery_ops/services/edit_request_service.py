from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from bakery_ops.dates import format_date, parse_local_date, utc_now
from bakery_ops.errors import BadRequestError, ForbiddenError, NotFoundError
from bakery_ops.models import (
    EditRequestStatus,
    Location,
    User,
    UserRole,
    WarehouseEditRequest,
    WarehouseReceipt,
)
from bakery_ops.services.notification_service import (
    EditRequestCreated,
    EditRequestReviewed,
    display_name,
    publish,
)
from bakery_ops.services.receipt_edit_log import record_edit
from bakery_ops.services.reference_service import (
    ReceiptItemInput,
    ensure_campaign,
    ensure_products,
    get_active_warehouse,
    resolve_items,
    validate_items,
)
from bakery_ops.services.warehouse_receipt_service import (
    clean_notes,
    load_receipt,
    replace_items,
    take_snapshot,
)
from bakery_ops.snapshots import ReceiptSnapshot, SnapshotItem

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return 'UNSET'


UNSET = _Unset()


@dataclass(frozen=True)
class ReceiptChanges:
    """Partial receipt update; only fields that are not ``UNSET`` are applied.

    ``campaign_id`` and ``notes`` accept ``None`` to clear the value.
    ``receipt_date``, ``location_id`` and ``items`` cannot be cleared.
    """

    receipt_date: date | _Unset = UNSET
    campaign_id: int | None | _Unset = UNSET
    location_id: int | _Unset = UNSET
    notes: str | None | _Unset = UNSET
    items: list[ReceiptItemInput] | _Unset = UNSET

    def __post_init__(self) -> None:
        for field in ('receipt_date', 'location_id', 'items'):
            if getattr(self, field) is None:
                raise BadRequestError(f'{field} cannot be cleared')

    @classmethod
    def from_snapshot(cls, snapshot: ReceiptSnapshot) -> ReceiptChanges:
        return cls(
            receipt_date=parse_local_date(snapshot.date),
            campaign_id=snapshot.campaign_id,
            location_id=snapshot.location_id,
            notes=snapshot.notes,
            items=[
                ReceiptItemInput(product_id=item.product_id, quantity_received=item.quantity_received)
                for item in snapshot.items
            ],
        )


@dataclass(frozen=True)
class Applied:
    receipt: WarehouseReceipt


@dataclass(frozen=True)
class Requested:
    edit_request: WarehouseEditRequest


def _is_set(value) -> bool:
    return value is not UNSET


def overlay(current: ReceiptSnapshot, changes: ReceiptChanges) -> ReceiptSnapshot:
    items = current.items
    if _is_set(changes.items):
        items = tuple(
            SnapshotItem(product_id=item.product_id, quantity_received=item.quantity_received)
            for item in changes.items
        )
    return ReceiptSnapshot(
        date=format_date(changes.receipt_date) if _is_set(changes.receipt_date) else current.date,
        campaign_id=changes.campaign_id if _is_set(changes.campaign_id) else current.campaign_id,
        location_id=changes.location_id if _is_set(changes.location_id) else current.location_id,
        notes=clean_notes(changes.notes) if _is_set(changes.notes) else current.notes,
        items=items,
    )


def _validate_references(
    db: Session, *, receipt: WarehouseReceipt, changes: ReceiptChanges, check_items: bool = True
) -> None:
    if _is_set(changes.location_id) and changes.location_id != receipt.location_id:
        get_active_warehouse(db, company_id=receipt.company_id, location_id=changes.location_id)
    if _is_set(changes.campaign_id):
        ensure_campaign(db, company_id=receipt.company_id, campaign_id=changes.campaign_id)
    if check_items and _is_set(changes.items):
        validate_items(changes.items)
        ensure_products(
            db,
            company_id=receipt.company_id,
            product_ids=[item.product_id for item in changes.items],
        )


def apply_receipt_update(
    db: Session,
    *,
    receipt: WarehouseReceipt,
    changes: ReceiptChanges,
    edited_by_id: int,
) -> WarehouseReceipt:
    previous = take_snapshot(db, receipt)
    _validate_references(db, receipt=receipt, changes=changes, check_items=False)
    resolved = None
    if _is_set(changes.items):
        resolved = resolve_items(db, company_id=receipt.company_id, items=changes.items)

    if _is_set(changes.receipt_date):
        receipt.receipt_date = changes.receipt_date
    if _is_set(changes.location_id):
        receipt.location_id = changes.location_id
    if _is_set(changes.campaign_id):
        receipt.campaign_id = changes.campaign_id
    if _is_set(changes.notes):
        receipt.notes = clean_notes(changes.notes)
    receipt.updated_at = utc_now()

    try:
        with db.begin_nested():
            db.flush()
    except IntegrityError as exc:
        raise BadRequestError('Another draft already exists for that location and date') from exc

    if resolved is not None:
        replace_items(db, receipt_id=receipt.id, items=resolved)

    new = take_snapshot(db, receipt)
    record_edit(db, receipt_id=receipt.id, edited_by_id=edited_by_id, previous=previous, new=new)
    logger.info('Warehouse receipt edited', extra={'receipt_id': receipt.id, 'edited_by_id': edited_by_id})
    return receipt


def update_receipt(
    db: Session,
    *,
    receipt_id: int,
    company_id: int,
    user_id: int,
    role: UserRole,
    changes: ReceiptChanges,
) -> Applied | Requested:
    """Edit a receipt directly (ADMIN) or file a pending edit request (WAREHOUSE)."""
    receipt = load_receipt(db, receipt_id=receipt_id, company_id=company_id)

    if role == UserRole.ADMIN:
        return Applied(apply_receipt_update(db, receipt=receipt, changes=changes, edited_by_id=user_id))
    if role != UserRole.WAREHOUSE:
        raise ForbiddenError('Only warehouse or admin users can edit receipts')

    _validate_references(db, receipt=receipt, changes=changes)
    proposed = overlay(take_snapshot(db, receipt), changes)
    edit_request = WarehouseEditRequest(
        warehouse_receipt_id=receipt.id,
        requester_id=user_id,
        proposed_data=proposed.to_json(),
        status=EditRequestStatus.PENDING,
    )
    db.add(edit_request)
    db.flush()
    logger.info(
        'Edit request created',
        extra={'edit_request_id': edit_request.id, 'receipt_id': receipt.id, 'requester_id': user_id},
    )

    requester = db.get(User, user_id)
    location = db.get(Location, receipt.location_id)
    publish(
        db,
        EditRequestCreated(
            company_id=company_id,
            edit_request_id=edit_request.id,
            receipt_id=receipt.id,
            date=format_date(receipt.receipt_date),
            location=location.name,
            requested_by=display_name(requester),
        ),
    )
    return Requested(edit_request)


def _load_edit_request(
    db: Session, *, request_id: int, company_id: int
) -> tuple[WarehouseEditRequest, WarehouseReceipt]:
    row = db.execute(
        select(WarehouseEditRequest, WarehouseReceipt)
        .join(WarehouseReceipt, WarehouseReceipt.id == WarehouseEditRequest.warehouse_receipt_id)
        .where(WarehouseEditRequest.id == request_id, WarehouseReceipt.company_id == company_id)
    ).one_or_none()
    if not row:
        raise NotFoundError('Edit request not found')
    return row[0], row[1]


def review_edit_request(
    db: Session,
    *,
    request_id: int,
    company_id: int,
    approver_id: int,
    status: EditRequestStatus,
    rejection_reason: str | None = None,
) -> WarehouseEditRequest:
    if status not in (EditRequestStatus.APPROVED, EditRequestStatus.REJECTED):
        raise BadRequestError('Status must be APPROVED or REJECTED')

    edit_request, receipt = _load_edit_request(db, request_id=request_id, company_id=company_id)
    reason = clean_notes(rejection_reason) if status == EditRequestStatus.REJECTED else None

    # Only one reviewer can move the row out of PENDING.
    result = db.execute(
        update(WarehouseEditRequest)
        .where(
            WarehouseEditRequest.id == edit_request.id,
            WarehouseEditRequest.status == EditRequestStatus.PENDING,
        )
        .values(status=status, approver_id=approver_id, reviewed_at=utc_now(), rejection_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise BadRequestError('Edit request already processed')
    db.refresh(edit_request)

    if status == EditRequestStatus.APPROVED:
        proposed = ReceiptSnapshot.from_json(edit_request.proposed_data)
        # Attributed to whoever asked for the change, not the approver.
        apply_receipt_update(
            db,
            receipt=receipt,
            changes=ReceiptChanges.from_snapshot(proposed),
            edited_by_id=edit_request.requester_id,
        )
    logger.info(
        'Edit request reviewed',
        extra={'edit_request_id': edit_request.id, 'status': status.value, 'approver_id': approver_id},
    )

    approver = db.get(User, approver_id)
    location = db.get(Location, receipt.location_id)
    publish(
        db,
        EditRequestReviewed(
            company_id=company_id,
            requester_id=edit_request.requester_id,
            edit_request_id=edit_request.id,
            receipt_id=receipt.id,
            status=status.value,
            date=format_date(receipt.receipt_date),
            location=location.name,
            rejection_reason=reason,
            reviewed_by=display_name(approver),
        ),
    )
    return edit_request


def serialize_edit_request(
    edit_request: WarehouseEditRequest,
    *,
    receipt: WarehouseReceipt,
    location: Location,
    requester: User,
    approver: User | None,
) -> dict:
    def _user(user: User | None) -> dict | None:
        if user is None:
            return None
        return {'id': user.id, 'username': user.username, 'name': display_name(user)}

    return {
        'id': edit_request.id,
        'warehouseReceiptId': edit_request.warehouse_receipt_id,
        'status': edit_request.status.value,
        'proposedData': ReceiptSnapshot.from_json(edit_request.proposed_data).to_json(),
        'rejectionReason': edit_request.rejection_reason,
        'reviewedAt': edit_request.reviewed_at,
        'createdAt': edit_request.created_at,
        'requester': _user(requester),
        'approver': _user(approver),
        'warehouseReceipt': {
            'id': receipt.id,
            'receiptDate': format_date(receipt.receipt_date),
            'confirmed': receipt.confirmed,
            'location': {'id': location.id, 'name': location.name},
        },
    }


def _edit_request_query(company_id: int):
    approver = aliased(User)
    return (
        select(WarehouseEditRequest, WarehouseReceipt, Location, User, approver)
        .join(WarehouseReceipt, WarehouseReceipt.id == WarehouseEditRequest.warehouse_receipt_id)
        .join(Location, Location.id == WarehouseReceipt.location_id)
        .join(User, User.id == WarehouseEditRequest.requester_id)
        .outerjoin(approver, approver.id == WarehouseEditRequest.approver_id)
        .where(WarehouseReceipt.company_id == company_id)
    )


def list_edit_requests(db: Session, *, company_id: int, status: EditRequestStatus | None = None) -> list[dict]:
    query = _edit_request_query(company_id)
    if status:
        query = query.where(WarehouseEditRequest.status == status)
    rows = db.execute(
        query.order_by(WarehouseEditRequest.created_at.desc(), WarehouseEditRequest.id.desc())
    ).all()
    return [
        serialize_edit_request(edit_request, receipt=receipt, location=location, requester=requester, approver=approver)
        for edit_request, receipt, location, requester, approver in rows
    ]


def get_edit_request(db: Session, *, request_id: int, company_id: int) -> dict:
    row = db.execute(_edit_request_query(company_id).where(WarehouseEditRequest.id == request_id)).one_or_none()
    if not row:
        raise NotFoundError('Edit request not found')
    edit_request, receipt, location, requester, approver = row
    return serialize_edit_request(edit_request, receipt=receipt, location=location, requester=requester, approver=approver)
