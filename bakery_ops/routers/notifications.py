from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from bakery_ops.auth import Principal, get_current_principal
from bakery_ops.db import get_db
from bakery_ops.dependencies import DOMAIN_ERRORS, http_error
from bakery_ops.models import MAX_ID
from bakery_ops.services.notification_service import (
    list_notifications,
    mark_as_read,
    serialize_notification,
    unread_count,
)

router = APIRouter(prefix='/notifications', tags=['notifications'])


@router.get('')
def notifications(
    unread_only: bool = Query(default=False, alias='unreadOnly'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    rows = list_notifications(db, user_id=principal.id, company_id=principal.company_id, unread_only=unread_only)
    return [serialize_notification(row) for row in rows]


@router.get('/unread-count')
def notifications_unread_count(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'count': unread_count(db, user_id=principal.id, company_id=principal.company_id)}


@router.patch('/{notification_id}/read')
def notification_mark_read(
    notification_id: Annotated[int, Path(le=MAX_ID)],
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        row = mark_as_read(db, notification_id=notification_id, user_id=principal.id, company_id=principal.company_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    db.commit()
    return serialize_notification(row)
