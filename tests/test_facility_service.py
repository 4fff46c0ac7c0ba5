from __future__ import annotations

import unittest
from datetime import date, time
from decimal import Decimal

from app.models import BookingStatus, FacilityStatus, PaymentStatus
from app.services import facility_service, payment_service
from tests.support import add_facility, add_resident, make_session_factory

TODAY = date(2024, 7, 1)


class EndTimeTests(unittest.TestCase):
    def test_end_time_adds_hours(self) -> None:
        self.assertEqual(facility_service.calculate_end_time(time(9, 30), 2), time(11, 30))

    def test_bookings_cannot_reach_midnight(self) -> None:
        self.assertEqual(facility_service.calculate_end_time(time(21, 0), 2), time(23, 0))
        with self.assertRaises(ValueError):
            facility_service.calculate_end_time(time(22, 0), 2)
        with self.assertRaises(ValueError):
            facility_service.calculate_end_time(time(23, 0), 2)


class ParseFacilityFormTests(unittest.TestCase):
    def test_parses_a_complete_form(self) -> None:
        data = facility_service.parse_facility_form(
            {
                'name': ' Rooftop Garden ',
                'category': 'social',
                'capacity': '25',
                'operational_start': '07:00',
                'operational_end': '19:00',
                'booking_fee': '75,000',
                'max_booking_duration_hours': '3',
            }
        )
        self.assertEqual(data['name'], 'Rooftop Garden')
        self.assertEqual(data['capacity'], 25)
        self.assertEqual(data['booking_fee'], Decimal('75000'))
        self.assertEqual(data['operational_end'], time(19, 0))
        self.assertEqual(data['status'], FacilityStatus.ACTIVE)

    def test_hours_must_be_paired_and_ordered(self) -> None:
        base = {'name': 'Gym', 'category': 'sports'}
        with self.assertRaises(ValueError):
            facility_service.parse_facility_form(dict(base, operational_start='08:00'))
        with self.assertRaises(ValueError):
            facility_service.parse_facility_form(dict(base, operational_start='20:00', operational_end='08:00'))
        with self.assertRaises(ValueError):
            facility_service.parse_facility_form({'name': 'Gym'})


class FacilityBookingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.resident = add_resident(self.db)
        self.facility = add_facility(self.db)

    def _book(self, **overrides) -> dict:
        values = {
            'resident_id': self.resident.id,
            'facility_id': self.facility.id,
            'booking_date': date(2024, 7, 2),
            'start_time': time(10, 0),
            'duration_hours': 2,
            'number_of_guests': 4,
            'today': TODAY,
        }
        values.update(overrides)
        return facility_service.create_facility_booking(self.db, **values)

    def test_paid_facility_booking_raises_an_invoice(self) -> None:
        booking = self._book()
        self.assertTrue(booking['booking_number'].startswith('BK-'))
        self.assertEqual(booking['end_time'], time(12, 0))
        self.assertEqual(booking['booking_fee'], Decimal('100000'))
        self.assertEqual(booking['status'], 'pending')

        payment = payment_service.get_payment(self.db, booking['payment_id'])
        self.assertEqual(payment['payment_type'], 'facility_booking')
        self.assertEqual(payment['total_amount'], Decimal('100000'))
        self.assertEqual(payment['due_date'], date(2024, 7, 2))

    def test_paying_the_invoice_confirms_the_booking(self) -> None:
        booking = self._book()
        payment_service.update_payment_status(self.db, booking['payment_id'], PaymentStatus.PAID)
        self.assertEqual(facility_service.get_facility_booking(self.db, booking['id'])['status'], 'confirmed')

    def test_free_facility_has_no_invoice(self) -> None:
        pool = add_facility(self.db, 'Pool', booking_fee=Decimal('0'))
        booking = self._book(facility_id=pool.id)
        self.assertIsNone(booking['payment_id'])

    def test_booking_rules(self) -> None:
        cases = {
            'past date': {'booking_date': date(2024, 6, 30)},
            'too long': {'duration_hours': 5},
            'zero hours': {'duration_hours': 0},
            'too many guests': {'number_of_guests': 11},
            'no guests': {'number_of_guests': 0},
            'before opening': {'start_time': time(7, 0)},
            'after closing': {'start_time': time(19, 0)},
            'missing facility': {'facility_id': None},
        }
        for label, overrides in cases.items():
            with self.subTest(label):
                with self.assertRaises(ValueError):
                    self._book(**overrides)

    def test_inactive_facility_cannot_be_booked(self) -> None:
        closed = add_facility(self.db, 'Sauna', status=FacilityStatus.MAINTENANCE)
        with self.assertRaises(ValueError):
            self._book(facility_id=closed.id)

    def test_resident_can_cancel_only_own_open_booking(self) -> None:
        booking = self._book()
        other = add_resident(self.db, 'other@example.com')
        with self.assertRaises(PermissionError):
            facility_service.cancel_facility_booking(self.db, booking_id=booking['id'], resident_id=other.id)

        cancelled = facility_service.cancel_facility_booking(self.db, booking_id=booking['id'], resident_id=self.resident.id)
        self.assertEqual(cancelled['status'], 'cancelled')
        self.assertIsNotNone(cancelled['cancelled_at'])
        with self.assertRaises(ValueError):
            facility_service.cancel_facility_booking(self.db, booking_id=booking['id'], resident_id=self.resident.id)

    def test_listing_joins_names(self) -> None:
        booking = self._book()
        facility_service.set_booking_status(self.db, booking['id'], BookingStatus.CONFIRMED)
        rows = facility_service.list_all_bookings(self.db, status=BookingStatus.CONFIRMED)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['facility_name'], 'Meeting Room')
        self.assertEqual(rows[0]['resident_name'], 'Rina Resident')
        self.assertEqual(facility_service.list_resident_bookings(self.db, self.resident.id, BookingStatus.PENDING), [])


if __name__ == '__main__':
    unittest.main()
