from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bakery_ops.dates import day_bounds, format_date, format_local_date, utc_now
from bakery_ops.errors import BadRequestError, ForbiddenError, NotFoundError
from bakery_ops.models import (
    Location,
    Product,
    ProductionBatch,
    ProductionBatchItem,
    ProductVariant,
    User,
    UserRole,
    WarehouseReceipt,
    WarehouseReceiptItem,
)
from bakery_ops.services.notification_service import ReceiptConfirmed, display_name, publish
from bakery_ops.services.reference_service import (
    ReceiptItemInput,
    ResolvedItem,
    ensure_campaign,
    get_active_warehouse,
    resolve_items,
)
from bakery_ops.snapshots import ReceiptSnapshot, SnapshotItem

logger = logging.getLogger(__name__)


def clean_notes(notes: str | None) -> str | None:
    return notes.strip() if notes and notes.strip() else None


def load_receipt(db: Session, *, receipt_id: int, company_id: int) -> WarehouseReceipt:
    receipt = db.execute(
        select(WarehouseReceipt).where(WarehouseReceipt.id == receipt_id, WarehouseReceipt.company_id == company_id)
    ).scalar_one_or_none()
    if not receipt:
        raise NotFoundError('Receipt not found')
    return receipt


def find_draft(db: Session, *, company_id: int, location_id: int, receipt_date: date) -> WarehouseReceipt | None:
    return db.execute(
        select(WarehouseReceipt).where(
            WarehouseReceipt.company_id == company_id,
            WarehouseReceipt.location_id == location_id,
            WarehouseReceipt.receipt_date == receipt_date,
            WarehouseReceipt.confirmed.is_(False),
        )
    ).scalar_one_or_none()


def replace_items(db: Session, *, receipt_id: int, items: list[ResolvedItem]) -> None:
    # Runs in the caller's transaction, so readers never see the empty set.
    db.execute(delete(WarehouseReceiptItem).where(WarehouseReceiptItem.warehouse_receipt_id == receipt_id))
    db.add_all(
        [
            WarehouseReceiptItem(
                warehouse_receipt_id=receipt_id,
                product_variant_id=item.product_variant_id,
                quantity_received=item.quantity_received,
            )
            for item in items
        ]
    )
    db.flush()


def _item_rows(db: Session, receipt_ids: list[int]):
    if not receipt_ids:
        return []
    return db.execute(
        select(WarehouseReceiptItem, ProductVariant, Product)
        .join(ProductVariant, ProductVariant.id == WarehouseReceiptItem.product_variant_id)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(WarehouseReceiptItem.warehouse_receipt_id.in_(receipt_ids))
        .order_by(WarehouseReceiptItem.id.asc())
    ).all()


def take_snapshot(db: Session, receipt: WarehouseReceipt) -> ReceiptSnapshot:
    return ReceiptSnapshot(
        date=format_date(receipt.receipt_date),
        campaign_id=receipt.campaign_id,
        location_id=receipt.location_id,
        notes=receipt.notes,
        items=tuple(
            SnapshotItem(product_id=product.id, quantity_received=item.quantity_received)
            for item, _variant, product in _item_rows(db, [receipt.id])
        ),
    )


def _serialize(receipt: WarehouseReceipt, *, location: Location, user: User, item_rows: list) -> dict:
    items = [
        {
            'id': item.id,
            'productVariantId': variant.id,
            'productId': product.id,
            'productName': product.name,
            'variantName': variant.name,
            'quantityReceived': item.quantity_received,
        }
        for item, variant, product in item_rows
    ]
    return {
        'id': receipt.id,
        'companyId': receipt.company_id,
        'campaignId': receipt.campaign_id,
        'locationId': receipt.location_id,
        'userId': receipt.user_id,
        'receiptDate': format_date(receipt.receipt_date),
        'notes': receipt.notes,
        'confirmed': receipt.confirmed,
        'confirmedAt': receipt.confirmed_at,
        'confirmedByName': receipt.confirmed_by_name,
        'createdAt': receipt.created_at,
        'updatedAt': receipt.updated_at,
        'items': items,
        'totalUnits': sum(entry['quantityReceived'] for entry in items),
        'location': {'id': location.id, 'name': location.name, 'type': location.type.value},
        'user': {
            'id': user.id,
            'username': user.username,
            'firstName': user.first_name,
            'lastName': user.last_name,
        },
    }


def serialize_receipt(db: Session, receipt: WarehouseReceipt) -> dict:
    location = db.get(Location, receipt.location_id)
    user = db.get(User, receipt.user_id)
    return _serialize(receipt, location=location, user=user, item_rows=_item_rows(db, [receipt.id]))


def create_or_merge_draft(
    db: Session,
    *,
    company_id: int,
    user_id: int,
    receipt_date: date,
    location_id: int,
    campaign_id: int | None,
    notes: str | None,
    items: list[ReceiptItemInput],
) -> WarehouseReceipt:
    """Record the day's receipt for a warehouse, replacing any unconfirmed draft.

    A second submission for the same company, location and day overwrites
    the draft's items instead of appending to them. Two requests racing to
    create the first draft meet on the one-draft-per-day index; the loser
    merges into the winner's row.
    """
    get_active_warehouse(db, company_id=company_id, location_id=location_id)
    ensure_campaign(db, company_id=company_id, campaign_id=campaign_id)
    resolved = resolve_items(db, company_id=company_id, items=items)

    draft = find_draft(db, company_id=company_id, location_id=location_id, receipt_date=receipt_date)
    created = False
    if draft is None:
        try:
            with db.begin_nested():
                draft = WarehouseReceipt(
                    company_id=company_id,
                    campaign_id=campaign_id,
                    location_id=location_id,
                    user_id=user_id,
                    receipt_date=receipt_date,
                    notes=clean_notes(notes),
                    confirmed=False,
                )
                db.add(draft)
                db.flush()
            created = True
        except IntegrityError:
            draft = find_draft(db, company_id=company_id, location_id=location_id, receipt_date=receipt_date)
            if draft is None:
                raise

    if not created:
        draft.campaign_id = campaign_id
        draft.notes = clean_notes(notes)
        draft.updated_at = utc_now()

    replace_items(db, receipt_id=draft.id, items=resolved)
    logger.info(
        'Warehouse draft %s',
        'created' if created else 'merged',
        extra={'receipt_id': draft.id, 'company_id': company_id, 'location_id': location_id, 'items': len(resolved)},
    )
    return draft


def confirm_receipt(
    db: Session,
    *,
    receipt_id: int,
    company_id: int,
    role: UserRole,
    confirmed_by_name: str,
) -> WarehouseReceipt:
    receipt = load_receipt(db, receipt_id=receipt_id, company_id=company_id)
    if receipt.confirmed and role != UserRole.ADMIN:
        raise ForbiddenError('This receipt is already confirmed and cannot be modified')

    signature = (confirmed_by_name or '').strip()
    if not signature:
        raise BadRequestError('Confirmation name is required')

    now = utc_now()
    receipt.confirmed = True
    receipt.confirmed_at = now
    receipt.confirmed_by_name = signature
    receipt.updated_at = now
    db.flush()
    logger.info('Warehouse receipt confirmed', extra={'receipt_id': receipt.id, 'company_id': company_id})

    location = db.get(Location, receipt.location_id)
    creator = db.get(User, receipt.user_id)
    publish(
        db,
        ReceiptConfirmed(
            company_id=company_id,
            receipt_id=receipt.id,
            date=format_date(receipt.receipt_date),
            confirmed_at=format_local_date(now),
            location=location.name,
            confirmed_by_name=signature,
            created_by=display_name(creator),
        ),
    )
    return receipt


def get_receipt(db: Session, *, receipt_id: int, company_id: int) -> dict:
    receipt = load_receipt(db, receipt_id=receipt_id, company_id=company_id)
    return serialize_receipt(db, receipt)


def list_history(
    db: Session,
    *,
    company_id: int,
    user_id: int | None = None,
    location_id: int | None = None,
) -> list[dict]:
    query = (
        select(WarehouseReceipt, Location, User)
        .join(Location, Location.id == WarehouseReceipt.location_id)
        .join(User, User.id == WarehouseReceipt.user_id)
        .where(WarehouseReceipt.company_id == company_id)
        .order_by(WarehouseReceipt.receipt_date.desc(), WarehouseReceipt.id.desc())
    )
    if user_id:
        query = query.where(WarehouseReceipt.user_id == user_id)
    if location_id:
        query = query.where(WarehouseReceipt.location_id == location_id)

    rows = db.execute(query).all()
    items_by_receipt: dict[int, list] = {}
    for row in _item_rows(db, [receipt.id for receipt, _location, _user in rows]):
        items_by_receipt.setdefault(row[0].warehouse_receipt_id, []).append(row)

    return [
        _serialize(receipt, location=location, user=user, item_rows=items_by_receipt.get(receipt.id, []))
        for receipt, location, user in rows
    ]


def build_comparison(
    db: Session,
    *,
    company_id: int,
    day: date,
    location_id: int | None = None,
    campaign_id: int | None = None,
) -> list[dict]:
    """Compare what production recorded against confirmed warehouse receipts for one day."""
    start, end = day_bounds(day)
    produced_query = (
        select(Product.id, Product.name, func.sum(ProductionBatchItem.quantity))
        .select_from(ProductionBatch)
        .join(ProductionBatchItem, ProductionBatchItem.production_batch_id == ProductionBatch.id)
        .join(ProductVariant, ProductVariant.id == ProductionBatchItem.product_variant_id)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(
            ProductionBatch.company_id == company_id,
            ProductionBatch.production_date >= start,
            ProductionBatch.production_date <= end,
        )
        .group_by(Product.id, Product.name)
    )
    received_query = (
        select(Product.id, Product.name, func.sum(WarehouseReceiptItem.quantity_received))
        .select_from(WarehouseReceipt)
        .join(WarehouseReceiptItem, WarehouseReceiptItem.warehouse_receipt_id == WarehouseReceipt.id)
        .join(ProductVariant, ProductVariant.id == WarehouseReceiptItem.product_variant_id)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(
            WarehouseReceipt.company_id == company_id,
            WarehouseReceipt.receipt_date == day,
            WarehouseReceipt.confirmed.is_(True),
        )
        .group_by(Product.id, Product.name)
    )
    if campaign_id:
        produced_query = produced_query.where(ProductionBatch.campaign_id == campaign_id)
        received_query = received_query.where(WarehouseReceipt.campaign_id == campaign_id)
    if location_id:
        produced_query = produced_query.where(ProductionBatch.location_id == location_id)
        received_query = received_query.where(WarehouseReceipt.location_id == location_id)

    names: dict[int, str] = {}
    produced: dict[int, int] = {}
    received: dict[int, int] = {}
    for product_id, name, total in db.execute(produced_query).all():
        names[product_id] = name
        produced[product_id] = int(total or 0)
    for product_id, name, total in db.execute(received_query).all():
        names[product_id] = name
        received[product_id] = int(total or 0)

    rows = [
        {
            'productId': product_id,
            'productName': name,
            'producedTotal': produced.get(product_id, 0),
            'receivedTotal': received.get(product_id, 0),
            'difference': received.get(product_id, 0) - produced.get(product_id, 0),
        }
        for product_id, name in names.items()
    ]
    return sorted(rows, key=lambda row: (row['productName'].lower(), row['productId']))
