from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from pydantic import ValidationError

from bakery_ops.dates import day_bounds, format_local_date, parse_local_date
from bakery_ops.snapshots import ReceiptSnapshot


class LocalDateTests(unittest.TestCase):
    def test_parse_keeps_calendar_components(self) -> None:
        self.assertEqual(parse_local_date('2026-01-05'), date(2026, 1, 5))
        self.assertEqual(parse_local_date(' 2026-12-31 '), date(2026, 12, 31))

    def test_parse_rejects_other_shapes(self) -> None:
        for raw in ('2026-1-5', '05/01/2026', '2026-01-05T00:00:00Z', '', '2026-02-30'):
            with self.subTest(raw=raw), self.assertRaises(ValueError):
                parse_local_date(raw)

    def test_day_bounds_cover_whole_local_day(self) -> None:
        start, end = day_bounds(date(2026, 1, 5))
        self.assertEqual(start, datetime(2026, 1, 5, 0, 0, 0))
        self.assertEqual(end, datetime(2026, 1, 5, 23, 59, 59, 999000))
        self.assertIsNone(start.tzinfo)

    def test_confirmation_date_uses_configured_zone(self) -> None:
        late_utc = datetime(2026, 1, 6, 3, 30, tzinfo=timezone.utc)
        with patch('bakery_ops.dates.settings.local_timezone', 'America/Bogota'):
            self.assertEqual(format_local_date(late_utc), '2026-01-05')
        with patch('bakery_ops.dates.settings.local_timezone', 'UTC'):
            self.assertEqual(format_local_date(late_utc.replace(tzinfo=None)), '2026-01-06')


class ReceiptSnapshotTests(unittest.TestCase):
    def _payload(self, **overrides) -> dict:
        payload = {
            'version': 1,
            'date': '2026-01-05',
            'campaignId': None,
            'locationId': 3,
            'notes': None,
            'items': [{'productId': 7, 'quantityReceived': 10}],
        }
        payload.update(overrides)
        return payload

    def test_json_shape_uses_camel_case(self) -> None:
        snapshot = ReceiptSnapshot.from_json(self._payload(notes='primer turno'))
        self.assertEqual(snapshot.to_json(), self._payload(notes='primer turno'))

    def test_unknown_version_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ReceiptSnapshot.from_json(self._payload(version=2))

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ReceiptSnapshot.from_json(self._payload(extra='nope'))

    def test_negative_quantity_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ReceiptSnapshot.from_json(self._payload(items=[{'productId': 7, 'quantityReceived': -1}]))

    def test_quantity_must_be_an_integer_within_column_range(self) -> None:
        for quantity in (2**31, 10.0, '10'):
            with self.subTest(quantity=quantity), self.assertRaises(ValidationError):
                ReceiptSnapshot.from_json(self._payload(items=[{'productId': 7, 'quantityReceived': quantity}]))

    def test_ids_must_fit_bigint_columns(self) -> None:
        for overrides in (
            {'locationId': 2**63},
            {'campaignId': 2**64},
            {'items': [{'productId': 2**63, 'quantityReceived': 1}]},
        ):
            with self.subTest(overrides=overrides), self.assertRaises(ValidationError):
                ReceiptSnapshot.from_json(self._payload(**overrides))

    def test_bad_date_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ReceiptSnapshot.from_json(self._payload(date='05-01-2026'))


if __name__ == '__main__':
    unittest.main()
