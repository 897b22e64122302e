from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import ClassVar, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bakery_ops.config import settings
from bakery_ops.dates import utc_now
from bakery_ops.errors import NotFoundError
from bakery_ops.models import Notification, NotificationType, User, UserRole

logger = logging.getLogger(__name__)


def display_name(user: User) -> str:
    full_name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    return full_name or user.username


@dataclass(frozen=True)
class ReceiptConfirmed:
    notification_type: ClassVar[NotificationType] = NotificationType.WAREHOUSE_RECEIPT_CONFIRMED

    company_id: int
    receipt_id: int
    date: str
    confirmed_at: str
    location: str
    confirmed_by_name: str
    created_by: str

    def payload(self) -> dict:
        return {
            'receiptId': self.receipt_id,
            'date': self.date,
            'confirmedAt': self.confirmed_at,
            'location': self.location,
            'confirmedByName': self.confirmed_by_name,
            'createdBy': self.created_by,
        }


@dataclass(frozen=True)
class EditRequestCreated:
    notification_type: ClassVar[NotificationType] = NotificationType.WAREHOUSE_EDIT_REQUEST_CREATED

    company_id: int
    edit_request_id: int
    receipt_id: int
    date: str
    location: str
    requested_by: str

    def payload(self) -> dict:
        return {
            'editRequestId': self.edit_request_id,
            'receiptId': self.receipt_id,
            'date': self.date,
            'location': self.location,
            'requestedBy': self.requested_by,
        }


@dataclass(frozen=True)
class EditRequestReviewed:
    notification_type: ClassVar[NotificationType] = NotificationType.WAREHOUSE_EDIT_REQUEST_REVIEWED

    company_id: int
    requester_id: int
    edit_request_id: int
    receipt_id: int
    status: str
    date: str
    location: str
    rejection_reason: str | None
    reviewed_by: str

    @property
    def status_text(self) -> str:
        return 'aprobada' if self.status == 'APPROVED' else 'rechazada'

    def payload(self) -> dict:
        return {
            'editRequestId': self.edit_request_id,
            'receiptId': self.receipt_id,
            'status': self.status,
            'statusText': self.status_text,
            'date': self.date,
            'location': self.location,
            'rejectionReason': self.rejection_reason,
            'reviewedBy': self.reviewed_by,
        }


WarehouseEvent = ReceiptConfirmed | EditRequestCreated | EditRequestReviewed


class NotificationSink(Protocol):
    def publish(self, db: Session, event: WarehouseEvent) -> None: ...


def _recipient_ids(db: Session, event: WarehouseEvent) -> list[int]:
    if isinstance(event, EditRequestReviewed):
        return [event.requester_id]
    return list(
        db.execute(
            select(User.id).where(
                User.company_id == event.company_id,
                User.role == UserRole.ADMIN,
                User.active.is_(True),
            )
        ).scalars()
    )


class DatabaseNotificationSink:
    def publish(self, db: Session, event: WarehouseEvent) -> None:
        payload = event.payload()
        db.add_all(
            [
                Notification(user_id=user_id, type=event.notification_type, payload=payload, read=False)
                for user_id in _recipient_ids(db, event)
            ]
        )
        db.flush()


class LoggingNotificationSink:
    def publish(self, db: Session, event: WarehouseEvent) -> None:
        logger.info('Warehouse event', extra={'event_type': event.notification_type.value, **asdict(event)})


@lru_cache(maxsize=1)
def get_notification_sink() -> NotificationSink:
    sink = settings.notification_sink.strip().lower()
    if sink == 'log':
        return LoggingNotificationSink()
    return DatabaseNotificationSink()


def publish(db: Session, event: WarehouseEvent) -> None:
    """Hand ``event`` to the configured sink without risking the caller's writes.

    The sink runs inside a savepoint; if it fails, only its own rows are
    rolled back and the failure is logged.
    """
    try:
        with db.begin_nested():
            get_notification_sink().publish(db, event)
    except Exception:
        logger.exception(
            'Notification delivery failed',
            extra={'event_type': event.notification_type.value, 'company_id': event.company_id},
        )


def serialize_notification(row: Notification) -> dict:
    return {
        'id': row.id,
        'type': row.type.value,
        'payload': row.payload,
        'read': row.read,
        'readAt': row.read_at,
        'createdAt': row.created_at,
    }


def _user_notifications(*, user_id: int, company_id: int):
    return (
        select(Notification)
        .join(User, User.id == Notification.user_id)
        .where(Notification.user_id == user_id, User.company_id == company_id)
    )


def list_notifications(db: Session, *, user_id: int, company_id: int, unread_only: bool = False) -> list[Notification]:
    query = _user_notifications(user_id=user_id, company_id=company_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    return db.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc())).scalars().all()


def unread_count(db: Session, *, user_id: int, company_id: int) -> int:
    return db.execute(
        select(func.count(Notification.id))
        .join(User, User.id == Notification.user_id)
        .where(
            Notification.user_id == user_id,
            User.company_id == company_id,
            Notification.read.is_(False),
        )
    ).scalar_one()


def mark_as_read(db: Session, *, notification_id: int, user_id: int, company_id: int) -> Notification:
    row = db.execute(
        _user_notifications(user_id=user_id, company_id=company_id).where(Notification.id == notification_id)
    ).scalar_one_or_none()
    if not row:
        raise NotFoundError('Notification not found')
    if not row.read:
        row.read = True
        row.read_at = utc_now()
        db.flush()
    return row
