from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bakery_ops.errors import BadRequestError, NotFoundError
from bakery_ops.models import MAX_QUANTITY, Campaign, Location, LocationType, Product, ProductVariant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptItemInput:
    product_id: int
    quantity_received: int


@dataclass(frozen=True)
class ResolvedItem:
    product_id: int
    product_variant_id: int
    quantity_received: int


def get_active_warehouse(db: Session, *, company_id: int, location_id: int) -> Location:
    location = db.execute(
        select(Location).where(
            Location.id == location_id,
            Location.company_id == company_id,
            Location.type == LocationType.WAREHOUSE,
            Location.active.is_(True),
        )
    ).scalar_one_or_none()
    if not location:
        raise NotFoundError('Warehouse location not found or invalid')
    return location


def ensure_campaign(db: Session, *, company_id: int, campaign_id: int | None) -> None:
    if campaign_id is None:
        return
    exists = db.execute(
        select(Campaign.id).where(Campaign.id == campaign_id, Campaign.company_id == company_id)
    ).scalar_one_or_none()
    if not exists:
        raise NotFoundError('Campaign not found')


def validate_items(items: list[ReceiptItemInput]) -> None:
    duplicates = [product_id for product_id, count in Counter(item.product_id for item in items).items() if count > 1]
    if duplicates:
        raise BadRequestError(f'Product {duplicates[0]} appears more than once')
    for item in items:
        if isinstance(item.quantity_received, bool) or not isinstance(item.quantity_received, int):
            raise BadRequestError(f'Quantity for product {item.product_id} must be a whole number')
        if item.quantity_received < 0:
            raise BadRequestError(f'Quantity cannot be negative for product {item.product_id}')
        if item.quantity_received > MAX_QUANTITY:
            raise BadRequestError(f'Quantity is too large for product {item.product_id}')


def ensure_products(db: Session, *, company_id: int, product_ids: list[int]) -> dict[int, Product]:
    wanted = set(product_ids)
    if not wanted:
        return {}
    products = db.execute(
        select(Product).where(Product.id.in_(wanted), Product.company_id == company_id)
    ).scalars().all()
    if len(products) < len(wanted):
        raise NotFoundError('One or more products were not found')
    return {product.id: product for product in products}


def _first_variant(db: Session, product_id: int) -> ProductVariant | None:
    return db.execute(
        select(ProductVariant).where(ProductVariant.product_id == product_id).order_by(ProductVariant.id.asc())
    ).scalars().first()


def get_or_create_default_variant(db: Session, *, product: Product) -> ProductVariant:
    """Return the variant receipts are booked against, creating one if the product has none.

    Any existing variant wins, active or not. A concurrent creator loses on
    the one-default-per-product index and re-reads the winner's row.
    """
    variant = _first_variant(db, product.id)
    if variant:
        return variant

    try:
        with db.begin_nested():
            variant = ProductVariant(product_id=product.id, name=product.name, active=True, is_default=True)
            db.add(variant)
            db.flush()
    except IntegrityError:
        variant = _first_variant(db, product.id)
        if not variant:
            raise
        return variant

    logger.info('Created default variant', extra={'product_id': product.id, 'product_variant_id': variant.id})
    return variant


def resolve_items(db: Session, *, company_id: int, items: list[ReceiptItemInput]) -> list[ResolvedItem]:
    validate_items(items)
    products = ensure_products(db, company_id=company_id, product_ids=[item.product_id for item in items])
    resolved: list[ResolvedItem] = []
    for item in items:
        variant = get_or_create_default_variant(db, product=products[item.product_id])
        resolved.append(
            ResolvedItem(
                product_id=item.product_id,
                product_variant_id=variant.id,
                quantity_received=item.quantity_received,
            )
        )
    return resolved
