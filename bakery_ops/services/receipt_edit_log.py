from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from bakery_ops.models import User, WarehouseReceipt, WarehouseReceiptEdit
from bakery_ops.services.notification_service import display_name
from bakery_ops.snapshots import ReceiptSnapshot


def record_edit(
    db: Session,
    *,
    receipt_id: int,
    edited_by_id: int,
    previous: ReceiptSnapshot,
    new: ReceiptSnapshot,
) -> WarehouseReceiptEdit:
    entry = WarehouseReceiptEdit(
        warehouse_receipt_id=receipt_id,
        edited_by_id=edited_by_id,
        previous_data=previous.to_json(),
        new_data=new.to_json(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_edits(db: Session, *, receipt_id: int, company_id: int) -> list[dict]:
    rows = db.execute(
        select(WarehouseReceiptEdit, User)
        .join(WarehouseReceipt, WarehouseReceipt.id == WarehouseReceiptEdit.warehouse_receipt_id)
        .join(User, User.id == WarehouseReceiptEdit.edited_by_id)
        .where(
            WarehouseReceiptEdit.warehouse_receipt_id == receipt_id,
            WarehouseReceipt.company_id == company_id,
        )
        .order_by(WarehouseReceiptEdit.created_at.desc(), WarehouseReceiptEdit.id.desc())
    ).all()
    return [
        {
            'id': edit.id,
            'warehouseReceiptId': edit.warehouse_receipt_id,
            'editedBy': {'id': user.id, 'username': user.username, 'name': display_name(user)},
            'previousData': ReceiptSnapshot.from_json(edit.previous_data).to_json(),
            'newData': ReceiptSnapshot.from_json(edit.new_data).to_json(),
            'createdAt': edit.created_at,
        }
        for edit, user in rows
    ]
