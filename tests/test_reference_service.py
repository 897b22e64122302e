from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import select

from bakery_ops.errors import BadRequestError, NotFoundError
from bakery_ops.models import Product, ProductVariant
from bakery_ops.services import reference_service
from bakery_ops.services.reference_service import (
    ReceiptItemInput,
    ensure_campaign,
    ensure_products,
    get_active_warehouse,
    get_or_create_default_variant,
    resolve_items,
)
from db_support import make_session_factory, seed_world


class ReferenceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.world = seed_world(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_active_warehouse_is_returned(self) -> None:
        location = get_active_warehouse(self.db, company_id=self.world.company_id, location_id=self.world.warehouse_id)
        self.assertEqual(location.name, 'Bodega Norte')

    def test_location_must_be_an_active_warehouse_of_the_company(self) -> None:
        for location_id in (
            self.world.branch_id,
            self.world.production_id,
            self.world.closed_warehouse_id,
            self.world.other_warehouse_id,
            999_999,
        ):
            with self.subTest(location_id=location_id), self.assertRaises(NotFoundError):
                get_active_warehouse(self.db, company_id=self.world.company_id, location_id=location_id)

    def test_missing_or_foreign_products_fail_without_naming_them(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            ensure_products(
                self.db,
                company_id=self.world.company_id,
                product_ids=[self.world.bread_id, self.world.foreign_product_id],
            )
        self.assertEqual(str(ctx.exception), 'One or more products were not found')

    def test_campaign_must_belong_to_company(self) -> None:
        ensure_campaign(self.db, company_id=self.world.company_id, campaign_id=None)
        ensure_campaign(self.db, company_id=self.world.company_id, campaign_id=self.world.campaign_id)
        with self.assertRaises(NotFoundError):
            ensure_campaign(self.db, company_id=self.world.company_id, campaign_id=self.world.other_campaign_id)

    def test_repeated_product_is_rejected(self) -> None:
        with self.assertRaises(BadRequestError):
            resolve_items(
                self.db,
                company_id=self.world.company_id,
                items=[
                    ReceiptItemInput(product_id=self.world.bread_id, quantity_received=1),
                    ReceiptItemInput(product_id=self.world.bread_id, quantity_received=2),
                ],
            )

    def test_negative_or_fractional_quantities_are_rejected_before_writing(self) -> None:
        for quantity in (-1, 2.5, True, 2**31):
            with self.subTest(quantity=quantity), self.assertRaises(BadRequestError):
                resolve_items(
                    self.db,
                    company_id=self.world.company_id,
                    items=[ReceiptItemInput(product_id=self.world.bread_id, quantity_received=quantity)],
                )
        self.assertEqual(self.db.execute(select(ProductVariant)).scalars().all(), [])

    def test_default_variant_is_created_once_per_product(self) -> None:
        items = [ReceiptItemInput(product_id=self.world.bread_id, quantity_received=4)]
        first = resolve_items(self.db, company_id=self.world.company_id, items=items)
        second = resolve_items(self.db, company_id=self.world.company_id, items=items)

        self.assertEqual(first[0].product_variant_id, second[0].product_variant_id)
        variants = self.db.execute(
            select(ProductVariant).where(ProductVariant.product_id == self.world.bread_id)
        ).scalars().all()
        self.assertEqual(len(variants), 1)
        self.assertEqual(variants[0].name, 'Pan Frances')
        self.assertTrue(variants[0].active)
        self.assertTrue(variants[0].is_default)

    def test_existing_variant_is_reused_even_if_inactive(self) -> None:
        existing = ProductVariant(product_id=self.world.cake_id, name='Torta grande', active=False, is_default=False)
        self.db.add(existing)
        self.db.flush()

        product = self.db.get(Product, self.world.cake_id)
        self.assertEqual(get_or_create_default_variant(self.db, product=product).id, existing.id)

    def test_losing_the_create_race_returns_the_winner(self) -> None:
        product = self.db.get(Product, self.world.roll_id)
        winner = get_or_create_default_variant(self.db, product=product)

        real_first_variant = reference_service._first_variant
        calls = []

        def stale_then_real(db, product_id):
            calls.append(product_id)
            if len(calls) == 1:
                return None
            return real_first_variant(db, product_id)

        with patch.object(reference_service, '_first_variant', side_effect=stale_then_real):
            variant = get_or_create_default_variant(self.db, product=product)

        self.assertEqual(variant.id, winner.id)
        count = self.db.execute(
            select(ProductVariant.id).where(ProductVariant.product_id == self.world.roll_id)
        ).all()
        self.assertEqual(len(count), 1)


if __name__ == '__main__':
    unittest.main()
