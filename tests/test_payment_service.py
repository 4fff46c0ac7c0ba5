from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from app.models import BookingDurationType, PaymentMethod, PaymentStatus, PaymentType
from app.services import payment_service, unit_booking_service
from app.services.mock_payment_gateway import MockPaymentGateway
from app.services.table_service import fetch_from_table
from tests.support import add_resident, add_unit, add_user, make_session_factory


class CalculateTotalTests(unittest.TestCase):
    def test_total_adds_fees_and_penalty_and_subtracts_discount(self) -> None:
        total = payment_service.calculate_total(
            Decimal('1000000'), admin_fee=Decimal('2500'), discount=Decimal('100000'), penalty=Decimal('50000')
        )
        self.assertEqual(total, Decimal('952500'))

    def test_negative_parts_and_totals_are_refused(self) -> None:
        with self.assertRaises(ValueError):
            payment_service.calculate_total(Decimal('-1'))
        with self.assertRaises(ValueError):
            payment_service.calculate_total(Decimal('100'), discount=Decimal('200'))

    def test_is_overdue_only_for_pending_past_due(self) -> None:
        today = date(2024, 5, 10)
        self.assertTrue(payment_service.is_overdue(date(2024, 5, 9), 'pending', today))
        self.assertFalse(payment_service.is_overdue(date(2024, 5, 10), 'pending', today))
        self.assertFalse(payment_service.is_overdue(date(2024, 5, 1), PaymentStatus.PAID, today))


class PaymentServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.resident = add_resident(self.db)

    def _invoice(self, **overrides) -> dict:
        values = {
            'resident_id': self.resident.id,
            'unit_id': None,
            'payment_type': PaymentType.UTILITIES,
            'amount': Decimal('250000'),
            'due_date': date(2024, 5, 1),
        }
        values.update(overrides)
        return payment_service.create_payment(self.db, **values)

    def test_create_payment_assigns_invoice_number_and_total(self) -> None:
        payment = self._invoice(admin_fee=Decimal('2500'))
        self.assertTrue(payment['invoice_number'].startswith('INV-'))
        self.assertEqual(payment['total_amount'], Decimal('252500'))
        self.assertEqual(payment['status'], 'pending')

    def test_create_payment_for_unknown_resident_fails(self) -> None:
        with self.assertRaises(ValueError):
            self._invoice(resident_id=404)

    def test_mark_overdue_only_touches_pending_past_due(self) -> None:
        late = self._invoice(due_date=date(2024, 4, 1))
        current = self._invoice(due_date=date(2024, 6, 1))
        paid = self._invoice(due_date=date(2024, 4, 1))
        payment_service.update_payment_status(self.db, paid['id'], PaymentStatus.PAID)

        self.assertEqual(payment_service.mark_overdue_payments(self.db, date(2024, 5, 1)), 1)
        statuses = {row['id']: row['status'] for row in fetch_from_table(self.db, 'payments')}
        self.assertEqual(statuses, {late['id']: 'overdue', current['id']: 'pending', paid['id']: 'paid'})

    def test_paid_status_sets_payment_date(self) -> None:
        payment = self._invoice()
        updated = payment_service.update_payment_status(self.db, payment['id'], PaymentStatus.PAID)
        self.assertIsNotNone(updated['payment_date'])
        with self.assertRaises(ValueError):
            payment_service.update_payment_status(self.db, 404, PaymentStatus.PAID)

    def test_list_resident_payments_filters_by_status(self) -> None:
        self._invoice()
        paid = self._invoice()
        payment_service.update_payment_status(self.db, paid['id'], PaymentStatus.PAID)
        rows = payment_service.list_resident_payments(self.db, self.resident.id, status=PaymentStatus.PAID)
        self.assertEqual([row['id'] for row in rows], [paid['id']])


class GatewayFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.resident = add_resident(self.db)
        self.payment = payment_service.create_payment(
            self.db,
            resident_id=self.resident.id,
            unit_id=None,
            payment_type=PaymentType.RENT,
            amount=Decimal('3500000'),
            due_date=date(2024, 5, 1),
        )

    def _start(self, outcome: str = 'success') -> tuple[MockPaymentGateway, str, str]:
        gateway = MockPaymentGateway(outcome)
        redirect_url = payment_service.start_payment(
            self.db,
            payment=self.payment,
            resident_id=self.resident.id,
            payment_method=PaymentMethod.MIDTRANS,
            gateway=gateway,
            customer={'full_name': 'Rina Resident', 'email': 'resident@example.com'},
        )
        transaction = payment_service.list_payment_transactions(self.db, self.payment['id'])[0]
        return gateway, transaction['gateway_order_id'], redirect_url

    def test_start_payment_records_processing_transaction(self) -> None:
        gateway, order_id, redirect_url = self._start()
        self.assertTrue(order_id.startswith('TRX-'))
        self.assertEqual(redirect_url, f'/payment/finish?order_id={order_id}')
        transaction = payment_service.get_transaction_by_order_id(self.db, order_id)
        self.assertEqual(transaction['status'], 'processing')
        self.assertEqual(transaction['amount'], Decimal('3500000'))
        self.assertEqual(transaction['gateway_response']['customer_name'], 'Rina Resident')

    def test_start_payment_checks_owner_and_status(self) -> None:
        other = add_resident(self.db, 'other@example.com')
        with self.assertRaises(PermissionError):
            payment_service.start_payment(
                self.db, payment=self.payment, resident_id=other.id, payment_method=PaymentMethod.MIDTRANS, gateway=MockPaymentGateway('success')
            )
        paid = payment_service.update_payment_status(self.db, self.payment['id'], PaymentStatus.PAID)
        with self.assertRaises(ValueError):
            payment_service.start_payment(
                self.db, payment=paid, resident_id=self.resident.id, payment_method=PaymentMethod.MIDTRANS, gateway=MockPaymentGateway('success')
            )

    def test_settlement_marks_invoice_paid(self) -> None:
        gateway, order_id, _ = self._start('success')
        status = gateway.get_status(order_id)
        result = payment_service.apply_gateway_status(
            self.db, order_id=order_id, gateway_status=status.transaction_status, raw=status.raw
        )
        self.assertEqual(result, 'success')
        self.assertEqual(payment_service.get_payment(self.db, self.payment['id'])['status'], 'paid')
        transaction = payment_service.get_transaction_by_order_id(self.db, order_id)
        self.assertEqual(transaction['status'], 'success')
        self.assertIsNotNone(transaction['paid_at'])

    def test_pending_and_failed_results_leave_invoice_payable(self) -> None:
        _, order_id, _ = self._start()
        self.assertEqual(payment_service.apply_gateway_status(self.db, order_id=order_id, gateway_status='pending'), 'pending')
        self.assertEqual(payment_service.apply_gateway_status(self.db, order_id=order_id, gateway_status='deny'), 'failed')
        self.assertEqual(payment_service.get_payment(self.db, self.payment['id'])['status'], 'pending')

    def test_late_failure_does_not_undo_success(self) -> None:
        _, order_id, _ = self._start()
        payment_service.apply_gateway_status(self.db, order_id=order_id, gateway_status='settlement')
        result = payment_service.apply_gateway_status(self.db, order_id=order_id, gateway_status='expire')
        self.assertEqual(result, 'success')
        self.assertEqual(payment_service.get_transaction_by_order_id(self.db, order_id)['status'], 'success')

    def test_unknown_order_and_status_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            payment_service.apply_gateway_status(self.db, order_id='TRX-missing', gateway_status='settlement')
        _, order_id, _ = self._start()
        with self.assertRaises(ValueError):
            payment_service.apply_gateway_status(self.db, order_id=order_id, gateway_status='refund-ish')


class UnitBookingPaymentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.unit = add_unit(self.db, 'B-310')
        self.guest = add_user(self.db, 'guest@example.com')
        self.booking, self.payment = unit_booking_service.create_unit_booking(
            self.db, user_id=self.guest.id, unit_id=self.unit.id, duration=BookingDurationType.MONTHLY, today=date(2024, 3, 1)
        )

    def _unit_status(self) -> str:
        return fetch_from_table(self.db, 'units', columns=['status'], filters={'id': self.unit.id})[0]['status']

    def test_paid_invoice_confirms_booking_and_moves_resident_in(self) -> None:
        payment_service.update_payment_status(self.db, self.payment['id'], PaymentStatus.PAID)
        booking = fetch_from_table(self.db, 'unit_bookings', filters={'id': self.booking['id']})[0]
        self.assertEqual((booking['status'], booking['payment_status']), ('confirmed', 'paid'))
        self.assertEqual(self._unit_status(), 'occupied')
        resident = fetch_from_table(self.db, 'residents', filters={'id': self.booking['resident_id']})[0]
        self.assertEqual(resident['status'], 'active')
        self.assertEqual(resident['unit_id'], self.unit.id)
        self.assertEqual(resident['contract_end'], date(2024, 4, 1))

    def test_cancelled_invoice_releases_reserved_unit(self) -> None:
        payment_service.update_payment_status(self.db, self.payment['id'], PaymentStatus.CANCELLED)
        booking = fetch_from_table(self.db, 'unit_bookings', filters={'id': self.booking['id']})[0]
        self.assertEqual((booking['status'], booking['payment_status']), ('cancelled', 'failed'))
        self.assertEqual(self._unit_status(), 'available')


if __name__ == '__main__':
    unittest.main()
