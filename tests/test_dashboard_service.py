from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from app.models import PaymentType, TicketCategory, TicketPriority, UnitStatus
from app.services import dashboard_service, payment_service, ticket_service
from tests.support import add_resident, add_unit, make_session_factory

TODAY = date(2024, 5, 10)


class DashboardSummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.unit = add_unit(self.db, status=UnitStatus.OCCUPIED)
        add_unit(self.db, 'B-202')
        self.resident = add_resident(self.db, unit=self.unit)

    def _invoice(self, amount: str, due_date: date) -> dict:
        return payment_service.create_payment(
            self.db,
            resident_id=self.resident.id,
            unit_id=self.unit.id,
            payment_type=PaymentType.RENT,
            amount=Decimal(amount),
            due_date=due_date,
        )

    def test_admin_summary_counts_late_pending_invoices_as_overdue(self) -> None:
        self._invoice('300000', date(2024, 5, 1))
        self._invoice('200000', date(2024, 6, 1))
        ticket_service.create_ticket(
            self.db,
            resident_id=self.resident.id,
            category=TicketCategory.MAINTENANCE,
            priority=TicketPriority.HIGH,
            subject='Leaking tap',
            description='Kitchen tap drips all night.',
        )

        summary = dashboard_service.admin_summary(self.db, TODAY)

        self.assertEqual(summary['units_by_status']['occupied'], 1)
        self.assertEqual(summary['units_by_status']['available'], 1)
        self.assertEqual(summary['active_residents'], 1)
        self.assertEqual(summary['pending_invoices'], 1)
        self.assertEqual(summary['pending_amount'], Decimal('200000'))
        self.assertEqual(summary['overdue_invoices'], 1)
        self.assertEqual(summary['overdue_amount'], Decimal('300000'))
        self.assertEqual(summary['open_tickets'], 1)
        self.assertEqual(len(summary['recent_payments']), 2)

    def test_resident_summary_lists_outstanding_and_overdue(self) -> None:
        self._invoice('300000', date(2024, 5, 1))
        self._invoice('200000', date(2024, 6, 1))

        summary = dashboard_service.resident_summary(self.db, self.resident.id, self.resident.user_id, TODAY)

        self.assertEqual(summary['unit']['unit_number'], 'A-101')
        self.assertEqual(len(summary['outstanding_invoices']), 2)
        self.assertEqual(summary['outstanding_total'], Decimal('500000'))
        self.assertEqual([p['due_date'] for p in summary['overdue_invoices']], [date(2024, 5, 1)])
        self.assertEqual(summary['open_tickets'], 0)
        self.assertEqual(summary['upcoming_bookings'], [])
        self.assertEqual(summary['unread_notifications'], 0)


if __name__ == '__main__':
    unittest.main()
