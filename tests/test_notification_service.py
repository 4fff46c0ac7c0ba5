from __future__ import annotations

import os
import tempfile
import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from app.models import Notification, PaymentType, TicketCategory, User
from app.services import notification_service, payment_service, ticket_service
from app.services.table_service import ChangeEvent, insert_into_table
from tests.support import (
    add_admin,
    add_resident,
    add_user,
    make_file_session_factory,
    make_session_factory,
)


class NotificationInboxTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.user = add_user(self.db, 'inbox@example.com')

    def test_unread_count_and_mark_read(self) -> None:
        first = notification_service.create_notification(self.db, user_id=self.user.id, title='One', message='First')
        notification_service.create_notification(self.db, user_id=self.user.id, title='Two', message='Second', data={'amount': Decimal('5')})
        self.assertEqual(notification_service.get_unread_notification_count(self.db, self.user.id), 2)

        notification_service.mark_notification_as_read(self.db, notification_id=first['id'], user_id=self.user.id)
        self.assertEqual(notification_service.get_unread_notification_count(self.db, self.user.id), 1)
        self.assertEqual(notification_service.mark_all_notifications_as_read(self.db, self.user.id), 1)
        self.assertEqual(notification_service.get_unread_notification_count(self.db, self.user.id), 0)

    def test_data_is_stored_json_safe(self) -> None:
        row = notification_service.create_notification(
            self.db, user_id=self.user.id, title='Paid', message='Thanks', data={'amount': Decimal('5.50'), 'due': date(2024, 1, 2)}
        )
        self.assertEqual(row['data'], {'amount': '5.50', 'due': '2024-01-02'})
        self.assertEqual(row['type'], 'system')

    def test_cannot_read_someone_elses_notification(self) -> None:
        other = add_user(self.db, 'other@example.com')
        notification = notification_service.create_notification(self.db, user_id=other.id, title='Private', message='x')
        with self.assertRaises(ValueError):
            notification_service.mark_notification_as_read(self.db, notification_id=notification['id'], user_id=self.user.id)

    def test_list_is_newest_first_and_limited(self) -> None:
        for index in range(3):
            notification_service.create_notification(self.db, user_id=self.user.id, title=f'N{index}', message='m')
        rows = notification_service.list_user_notifications(self.db, self.user.id, limit=2)
        self.assertEqual(len(rows), 2)


class ChangeListenerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.resident = add_resident(self.db)
        self.admin = add_admin(self.db)

    def _titles_for(self, user_id: int) -> list[str]:
        return list(
            self.db.execute(select(Notification.title).where(Notification.user_id == user_id).order_by(Notification.id)).scalars()
        )

    def test_new_invoice_and_status_change_notify_the_resident(self) -> None:
        payment = payment_service.create_payment(
            self.db,
            resident_id=self.resident.id,
            unit_id=None,
            payment_type=PaymentType.UTILITIES,
            amount=Decimal('120000'),
            due_date=date(2024, 8, 1),
        )
        notification_service._on_payment_change(ChangeEvent('payments', 'INSERT', payment, None), self.db)
        paid = dict(payment, status='paid')
        notification_service._on_payment_change(ChangeEvent('payments', 'UPDATE', paid, payment), self.db)
        notification_service._on_payment_change(ChangeEvent('payments', 'UPDATE', paid, paid), self.db)
        self.assertEqual(self._titles_for(self.resident.user_id), ['New invoice', 'Payment update'])

    def test_ticket_updates_skip_internal_notes_and_own_messages(self) -> None:
        ticket = ticket_service.create_ticket(
            self.db, resident_id=self.resident.id, category=TicketCategory.MAINTENANCE, priority=None, subject='Lift', description='Stuck'
        )
        for user_id, is_internal in ((self.admin.id, True), (self.resident.user_id, False), (self.admin.id, False)):
            update = ticket_service.add_ticket_update(
                self.db, ticket_id=ticket['id'], user_id=user_id, message='note', is_internal=is_internal
            )
            notification_service._on_ticket_update(ChangeEvent('ticket_updates', 'INSERT', update, None), self.db)
        self.assertEqual(self._titles_for(self.resident.user_id), ['Ticket update'])

    def test_resident_chat_reaches_every_admin_until_one_replies(self) -> None:
        second_admin = add_admin(self.db, 'second@example.com')
        room = insert_into_table(self.db, 'chat_rooms', {'resident_id': self.resident.id})
        message = {
            'id': 1,
            'room_id': room['id'],
            'sender_user_id': self.resident.user_id,
            'sender_name': 'Rina Resident',
            'sender_role': 'resident',
            'message': 'Hello?',
        }
        notification_service._on_chat_message(ChangeEvent('chat_messages', 'INSERT', message, None), self.db)
        self.assertEqual(self._titles_for(self.admin.id), ['New message from Rina Resident'])
        self.assertEqual(self._titles_for(second_admin.id), ['New message from Rina Resident'])

        reply = dict(message, id=2, sender_user_id=self.admin.id, sender_name='Ari Admin', sender_role='admin')
        notification_service._on_chat_message(ChangeEvent('chat_messages', 'INSERT', reply, None), self.db)
        self.assertEqual(self._titles_for(self.resident.user_id), ['New message from Ari Admin'])

    def test_announcement_notifies_on_first_publish_only(self) -> None:
        draft = {'id': 7, 'title': 'Water shutdown', 'content': 'Tuesday 10:00', 'status': 'draft'}
        published = dict(draft, status='published')
        notification_service._on_announcement_change(ChangeEvent('announcements', 'INSERT', draft, None), self.db)
        notification_service._on_announcement_change(ChangeEvent('announcements', 'UPDATE', published, draft), self.db)
        notification_service._on_announcement_change(ChangeEvent('announcements', 'UPDATE', published, published), self.db)
        self.assertEqual(self._titles_for(self.resident.user_id), ['Water shutdown'])
        self.assertEqual(self._titles_for(self.admin.id), [])


class RegisteredListenerTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        engine, self.session_factory = make_file_session_factory(os.path.join(tmp.name, 'portal.db'))
        self.addCleanup(engine.dispose)
        notification_service.register_change_listeners(self.session_factory)
        self.addCleanup(notification_service.unregister_change_listeners)

    def test_committed_invoice_produces_a_notification(self) -> None:
        with self.session_factory() as db:
            resident = add_resident(db)
            db.commit()
            payment_service.create_payment(
                db,
                resident_id=resident.id,
                unit_id=None,
                payment_type=PaymentType.RENT,
                amount=Decimal('3000000'),
                due_date=date(2024, 9, 1),
            )
            db.commit()

        with self.session_factory() as db:
            user_id = db.execute(select(User.id).where(User.email == 'resident@example.com')).scalar_one()
            self.assertEqual(notification_service.get_unread_notification_count(db, user_id), 1)

    def test_rolled_back_invoice_is_silent(self) -> None:
        with self.session_factory() as db:
            resident = add_resident(db)
            db.commit()
            payment_service.create_payment(
                db,
                resident_id=resident.id,
                unit_id=None,
                payment_type=PaymentType.RENT,
                amount=Decimal('3000000'),
                due_date=date(2024, 9, 1),
            )
            db.rollback()

        with self.session_factory() as db:
            self.assertEqual(db.execute(select(Notification.id)).all(), [])


if __name__ == '__main__':
    unittest.main()
