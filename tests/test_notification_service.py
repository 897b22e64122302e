from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from sqlalchemy import select

from bakery_ops.errors import NotFoundError
from bakery_ops.models import Notification, NotificationType
from bakery_ops.services import notification_service
from bakery_ops.services.notification_service import (
    DatabaseNotificationSink,
    EditRequestCreated,
    EditRequestReviewed,
    LoggingNotificationSink,
    ReceiptConfirmed,
    get_notification_sink,
    list_notifications,
    mark_as_read,
    publish,
    unread_count,
)
from db_support import make_session_factory, seed_world


class NotificationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.world = seed_world(self.db)

    def tearDown(self) -> None:
        self.db.close()
        get_notification_sink.cache_clear()

    def _confirmed(self, company_id: int | None = None) -> ReceiptConfirmed:
        return ReceiptConfirmed(
            company_id=company_id or self.world.company_id,
            receipt_id=1,
            date='2026-01-05',
            confirmed_at='2026-01-05',
            location='Bodega Norte',
            confirmed_by_name='Juan',
            created_by='Juan Perez',
        )

    def _reviewed(self, status: str) -> EditRequestReviewed:
        return EditRequestReviewed(
            company_id=self.world.company_id,
            requester_id=self.world.warehouse_user_id,
            edit_request_id=4,
            receipt_id=1,
            status=status,
            date='2026-01-05',
            location='Bodega Norte',
            rejection_reason=None,
            reviewed_by='Ana Lopez',
        )

    def _recipients(self) -> list[int]:
        return sorted(self.db.execute(select(Notification.user_id)).scalars())

    def test_admin_events_reach_active_admins_of_the_company_only(self) -> None:
        publish(self.db, self._confirmed())
        self.assertEqual(self._recipients(), sorted([self.world.admin_id, self.world.second_admin_id]))

    def test_edit_request_created_payload(self) -> None:
        publish(
            self.db,
            EditRequestCreated(
                company_id=self.world.company_id,
                edit_request_id=9,
                receipt_id=1,
                date='2026-01-05',
                location='Bodega Norte',
                requested_by='Juan Perez',
            ),
        )
        row = self.db.execute(select(Notification).where(Notification.user_id == self.world.admin_id)).scalar_one()
        self.assertEqual(row.type, NotificationType.WAREHOUSE_EDIT_REQUEST_CREATED)
        self.assertFalse(row.read)
        self.assertEqual(
            row.payload,
            {
                'editRequestId': 9,
                'receiptId': 1,
                'date': '2026-01-05',
                'location': 'Bodega Norte',
                'requestedBy': 'Juan Perez',
            },
        )

    def test_review_outcome_goes_to_requester(self) -> None:
        publish(self.db, self._reviewed('APPROVED'))
        self.assertEqual(self._recipients(), [self.world.warehouse_user_id])
        self.assertEqual(self._reviewed('APPROVED').status_text, 'aprobada')
        self.assertEqual(self._reviewed('REJECTED').status_text, 'rechazada')

    def test_failing_sink_is_logged_and_rolled_back(self) -> None:
        class HalfWrittenSink(DatabaseNotificationSink):
            def publish(self, db, event):
                super().publish(db, event)
                raise RuntimeError('smtp down')

        with patch.object(notification_service, 'get_notification_sink', return_value=HalfWrittenSink()):
            with self.assertLogs('bakery_ops.services.notification_service', level='ERROR') as logs:
                publish(self.db, self._confirmed())

        self.assertIn('Notification delivery failed', logs.output[0])
        self.assertEqual(self._recipients(), [])

    def test_logging_sink_writes_nothing(self) -> None:
        with self.assertLogs('bakery_ops.services.notification_service', level='INFO') as logs:
            LoggingNotificationSink().publish(self.db, self._confirmed())
        self.assertEqual(logs.records[0].event_type, 'WAREHOUSE_RECEIPT_CONFIRMED')
        self.assertEqual(logs.records[0].receipt_id, 1)
        self.assertEqual(self._recipients(), [])

    def test_sink_is_chosen_from_settings(self) -> None:
        with patch.object(notification_service.settings, 'notification_sink', 'log'):
            get_notification_sink.cache_clear()
            self.assertIsInstance(get_notification_sink(), LoggingNotificationSink)
        get_notification_sink.cache_clear()
        self.assertIsInstance(get_notification_sink(), DatabaseNotificationSink)

    def test_publish_uses_configured_sink(self) -> None:
        sink = MagicMock()
        event = self._confirmed()
        with patch.object(notification_service, 'get_notification_sink', return_value=sink):
            publish(self.db, event)
        sink.publish.assert_called_once_with(self.db, event)

    def test_inbox_listing_unread_count_and_mark_read(self) -> None:
        publish(self.db, self._confirmed())
        publish(self.db, self._confirmed())
        rows = list_notifications(self.db, user_id=self.world.admin_id, company_id=self.world.company_id)
        self.assertEqual(len(rows), 2)
        self.assertGreater(rows[0].id, rows[1].id)
        self.assertEqual(unread_count(self.db, user_id=self.world.admin_id, company_id=self.world.company_id), 2)

        marked = mark_as_read(
            self.db, notification_id=rows[0].id, user_id=self.world.admin_id, company_id=self.world.company_id
        )
        self.assertTrue(marked.read)
        self.assertIsNotNone(marked.read_at)
        first_read_at = marked.read_at

        again = mark_as_read(
            self.db, notification_id=rows[0].id, user_id=self.world.admin_id, company_id=self.world.company_id
        )
        self.assertEqual(again.read_at, first_read_at)
        self.assertEqual(unread_count(self.db, user_id=self.world.admin_id, company_id=self.world.company_id), 1)
        unread = list_notifications(
            self.db, user_id=self.world.admin_id, company_id=self.world.company_id, unread_only=True
        )
        self.assertEqual([row.id for row in unread], [rows[1].id])

    def test_notifications_are_private_to_their_user(self) -> None:
        publish(self.db, self._confirmed())
        mine = list_notifications(self.db, user_id=self.world.admin_id, company_id=self.world.company_id)[0]

        for user_id, company_id in (
            (self.world.second_admin_id, self.world.company_id),
            (self.world.other_admin_id, self.world.other_company_id),
            (self.world.admin_id, self.world.other_company_id),
        ):
            with self.subTest(user_id=user_id, company_id=company_id), self.assertRaises(NotFoundError):
                mark_as_read(self.db, notification_id=mine.id, user_id=user_id, company_id=company_id)
        self.assertEqual(list_notifications(self.db, user_id=self.world.admin_id, company_id=self.world.other_company_id), [])


if __name__ == '__main__':
    unittest.main()
