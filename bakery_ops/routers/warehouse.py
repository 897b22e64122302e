from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from bakery_ops.auth import Principal, Role, require_role
from bakery_ops.db import get_db
from bakery_ops.dates import parse_local_date
from bakery_ops.dependencies import DOMAIN_ERRORS, http_error
from bakery_ops.models import MAX_ID, EditRequestStatus
from bakery_ops.schemas import (
    ConfirmReceiptPayload,
    CreateReceiptPayload,
    ReviewEditRequestPayload,
    UpdateReceiptPayload,
)
from bakery_ops.services.edit_request_service import (
    Applied,
    get_edit_request,
    list_edit_requests,
    review_edit_request,
    update_receipt,
)
from bakery_ops.services.receipt_edit_log import list_edits
from bakery_ops.services.warehouse_receipt_service import (
    build_comparison,
    confirm_receipt,
    create_or_merge_draft,
    get_receipt,
    list_history,
    load_receipt,
    serialize_receipt,
)

router = APIRouter(prefix='/warehouse', tags=['warehouse'])

receipt_roles = require_role(Role.WAREHOUSE, Role.ADMIN)
admin_only = require_role(Role.ADMIN)


@router.post('/receipts', status_code=201)
def create_receipt(
    payload: CreateReceiptPayload,
    principal: Principal = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    try:
        receipt = create_or_merge_draft(
            db,
            company_id=principal.company_id,
            user_id=principal.id,
            receipt_date=payload.receipt_date,
            location_id=payload.location_id,
            campaign_id=payload.campaign_id,
            notes=payload.notes,
            items=[item.to_input() for item in payload.items],
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    db.commit()
    return serialize_receipt(db, receipt)


@router.patch('/receipts/{receipt_id}/confirm')
def confirm(
    receipt_id: Annotated[int, Path(le=MAX_ID)],
    payload: ConfirmReceiptPayload,
    principal: Principal = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    try:
        receipt = confirm_receipt(
            db,
            receipt_id=receipt_id,
            company_id=principal.company_id,
            role=principal.role,
            confirmed_by_name=payload.confirmed_by_name,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    db.commit()
    return serialize_receipt(db, receipt)


@router.get('/receipts')
def history(
    location_id: int | None = Query(default=None, alias='locationId', le=MAX_ID),
    principal: Principal = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    # Warehouse staff only see the receipts they created.
    user_id = principal.id if principal.role == Role.WAREHOUSE else None
    return list_history(db, company_id=principal.company_id, user_id=user_id, location_id=location_id)


@router.get('/receipts/{receipt_id}')
def receipt_detail(
    receipt_id: Annotated[int, Path(le=MAX_ID)],
    principal: Principal = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    try:
        return get_receipt(db, receipt_id=receipt_id, company_id=principal.company_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch('/receipts/{receipt_id}')
def edit_receipt(
    receipt_id: Annotated[int, Path(le=MAX_ID)],
    payload: UpdateReceiptPayload,
    principal: Principal = Depends(receipt_roles),
    db: Session = Depends(get_db),
):
    try:
        outcome = update_receipt(
            db,
            receipt_id=receipt_id,
            company_id=principal.company_id,
            user_id=principal.id,
            role=principal.role,
            changes=payload.to_changes(),
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    db.commit()

    if isinstance(outcome, Applied):
        return {'kind': 'applied', 'receipt': serialize_receipt(db, outcome.receipt)}
    return {
        'kind': 'requested',
        'editRequest': get_edit_request(db, request_id=outcome.edit_request.id, company_id=principal.company_id),
    }


@router.get('/receipts/{receipt_id}/edit-history')
def receipt_edit_history(
    receipt_id: Annotated[int, Path(le=MAX_ID)],
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        load_receipt(db, receipt_id=receipt_id, company_id=principal.company_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return list_edits(db, receipt_id=receipt_id, company_id=principal.company_id)


@router.get('/edit-requests')
def edit_requests(
    status: EditRequestStatus | None = None,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return list_edit_requests(db, company_id=principal.company_id, status=status)


@router.patch('/edit-requests/{request_id}/review')
def review(
    request_id: Annotated[int, Path(le=MAX_ID)],
    payload: ReviewEditRequestPayload,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        edit_request = review_edit_request(
            db,
            request_id=request_id,
            company_id=principal.company_id,
            approver_id=principal.id,
            status=EditRequestStatus(payload.status),
            rejection_reason=payload.rejection_reason,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    db.commit()
    return get_edit_request(db, request_id=edit_request.id, company_id=principal.company_id)


@router.get('/comparison')
def comparison(
    date: str,
    location_id: int | None = Query(default=None, alias='locationId', le=MAX_ID),
    campaign_id: int | None = Query(default=None, alias='campaignId', le=MAX_ID),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        day = parse_local_date(date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    rows = build_comparison(
        db,
        company_id=principal.company_id,
        day=day,
        location_id=location_id,
        campaign_id=campaign_id,
    )
    return {'date': date, 'comparison': rows}
