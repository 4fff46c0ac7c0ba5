from __future__ import annotations

import unittest

from app.models import TicketCategory, TicketPriority, TicketStatus
from app.services import ticket_service
from tests.support import add_admin, add_resident, make_session_factory


class TicketServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.resident = add_resident(self.db)
        self.admin = add_admin(self.db)

    def _ticket(self, **overrides) -> dict:
        values = {
            'resident_id': self.resident.id,
            'category': TicketCategory.MAINTENANCE,
            'priority': TicketPriority.HIGH,
            'subject': 'Leaking tap',
            'description': 'Kitchen tap drips all night.',
        }
        values.update(overrides)
        return ticket_service.create_ticket(self.db, **values)

    def test_create_ticket_opens_with_number_and_attachment(self) -> None:
        ticket = self._ticket(attachment_url='https://files.example.com/photos/tap.jpg')
        self.assertTrue(ticket['ticket_number'].startswith('TKT-'))
        self.assertEqual(ticket['status'], 'open')
        self.assertEqual(ticket['priority'], 'high')
        _, _, attachments = ticket_service.get_ticket_with_updates(self.db, ticket['id'], include_internal=True)
        self.assertEqual(attachments[0]['file_name'], 'tap.jpg')

    def test_create_ticket_requires_subject_and_description(self) -> None:
        with self.assertRaises(ValueError):
            self._ticket(subject=' ')
        with self.assertRaises(ValueError):
            self._ticket(description='')

    def test_status_change_records_an_update(self) -> None:
        ticket = self._ticket()
        updated = ticket_service.change_ticket_status(
            self.db, ticket_id=ticket['id'], user_id=self.admin.id, status=TicketStatus.RESOLVED, note='Washer replaced'
        )
        self.assertEqual(updated['status'], 'resolved')
        self.assertEqual(updated['resolution_notes'], 'Washer replaced')
        self.assertIsNotNone(updated['resolved_at'])

        _, updates, _ = ticket_service.get_ticket_with_updates(self.db, ticket['id'], include_internal=False)
        self.assertEqual([(u['message'], u['status_change']) for u in updates], [('Washer replaced', 'resolved')])

        with self.assertRaises(ValueError):
            ticket_service.change_ticket_status(
                self.db, ticket_id=ticket['id'], user_id=self.admin.id, status=TicketStatus.RESOLVED
            )

    def test_internal_updates_are_hidden_from_residents(self) -> None:
        ticket = self._ticket()
        ticket_service.add_ticket_update(self.db, ticket_id=ticket['id'], user_id=self.admin.id, message='Call plumber', is_internal=True)
        ticket_service.add_ticket_update(self.db, ticket_id=ticket['id'], user_id=self.admin.id, message='Plumber booked')

        _, public_updates, _ = ticket_service.get_ticket_with_updates(self.db, ticket['id'], include_internal=False)
        _, all_updates, _ = ticket_service.get_ticket_with_updates(self.db, ticket['id'], include_internal=True)
        self.assertEqual([u['message'] for u in public_updates], ['Plumber booked'])
        self.assertEqual(len(all_updates), 2)
        self.assertEqual(public_updates[0]['author_name'], 'Ari Admin')

    def test_resident_cancel_and_rating_rules(self) -> None:
        ticket = self._ticket()
        with self.assertRaises(ValueError):
            ticket_service.rate_ticket(self.db, ticket_id=ticket['id'], resident_id=self.resident.id, rating=5)

        other = add_resident(self.db, 'other@example.com')
        with self.assertRaises(PermissionError):
            ticket_service.cancel_resident_ticket(self.db, ticket_id=ticket['id'], resident_id=other.id, user_id=other.user_id)

        cancelled = ticket_service.cancel_resident_ticket(
            self.db, ticket_id=ticket['id'], resident_id=self.resident.id, user_id=self.resident.user_id
        )
        self.assertEqual(cancelled['status'], 'cancelled')

        resolved = self._ticket(subject='Door')
        ticket_service.change_ticket_status(self.db, ticket_id=resolved['id'], user_id=self.admin.id, status=TicketStatus.RESOLVED)
        with self.assertRaises(ValueError):
            ticket_service.rate_ticket(self.db, ticket_id=resolved['id'], resident_id=self.resident.id, rating=6)
        rated = ticket_service.rate_ticket(self.db, ticket_id=resolved['id'], resident_id=self.resident.id, rating=4)
        self.assertEqual(rated['rating'], 4)

    def test_assignment_is_limited_to_staff(self) -> None:
        ticket = self._ticket()
        with self.assertRaises(ValueError):
            ticket_service.assign_ticket(self.db, ticket['id'], self.resident.user_id)
        self.assertEqual(ticket_service.assign_ticket(self.db, ticket['id'], self.admin.id)['assigned_to'], self.admin.id)
        self.assertIsNone(ticket_service.assign_ticket(self.db, ticket['id'], None)['assigned_to'])
        self.assertEqual([member['id'] for member in ticket_service.list_staff(self.db)], [self.admin.id])

    def test_listings_filter_by_status_and_priority(self) -> None:
        self._ticket()
        self._ticket(subject='Noise', category=TicketCategory.COMPLAINT, priority=TicketPriority.LOW)
        self.assertEqual(len(ticket_service.list_resident_tickets(self.db, self.resident.id)), 2)
        low = ticket_service.list_all_tickets(self.db, priority=TicketPriority.LOW)
        self.assertEqual([row['subject'] for row in low], ['Noise'])
        self.assertEqual(low[0]['resident_name'], 'Rina Resident')
        self.assertEqual(ticket_service.list_all_tickets(self.db, status=TicketStatus.CLOSED), [])


if __name__ == '__main__':
    unittest.main()
