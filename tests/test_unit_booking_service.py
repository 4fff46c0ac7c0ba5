from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from app.config import settings
from app.models import BookingDurationType, UnitStatus
from app.services import unit_booking_service
from app.services.settings_service import UNIT_BOOKING_ADMIN_FEE_KEY, set_setting
from app.services.table_service import fetch_from_table
from tests.support import add_resident, add_unit, add_user, make_session_factory

UNIT = {
    'monthly_rent': Decimal('4000000'),
    'weekly_rent': None,
    'yearly_rent': None,
    'deposit_required': Decimal('1000000'),
}


class BookingPriceTests(unittest.TestCase):
    def test_monthly_price_adds_deposit_and_fee(self) -> None:
        price = unit_booking_service.calculate_booking_price(UNIT, BookingDurationType.MONTHLY, Decimal('2500'))
        self.assertEqual(price.rent, Decimal('4000000.00'))
        self.assertEqual(price.deposit, Decimal('1000000'))
        self.assertEqual(price.total, Decimal('5002500.00'))

    def test_weekly_and_yearly_derive_from_monthly_when_unset(self) -> None:
        weekly = unit_booking_service.calculate_booking_price(UNIT, BookingDurationType.WEEKLY, Decimal('0'))
        yearly = unit_booking_service.calculate_booking_price(UNIT, BookingDurationType.YEARLY, Decimal('0'))
        self.assertEqual(weekly.rent, Decimal('1000000.00'))
        self.assertEqual(yearly.rent, Decimal('48000000.00'))

    def test_explicit_rates_win(self) -> None:
        unit = dict(UNIT, weekly_rent=Decimal('1200000'), yearly_rent=Decimal('44000000'))
        weekly = unit_booking_service.calculate_booking_price(unit, BookingDurationType.WEEKLY, Decimal('0'))
        yearly = unit_booking_service.calculate_booking_price(unit, BookingDurationType.YEARLY, Decimal('0'))
        self.assertEqual(weekly.rent, Decimal('1200000.00'))
        self.assertEqual(yearly.rent, Decimal('44000000.00'))

    def test_end_dates(self) -> None:
        start = date(2024, 3, 10)
        self.assertEqual(unit_booking_service.calculate_end_date(start, BookingDurationType.WEEKLY), date(2024, 3, 17))
        self.assertEqual(unit_booking_service.calculate_end_date(start, BookingDurationType.MONTHLY), date(2024, 4, 10))
        self.assertEqual(unit_booking_service.calculate_end_date(start, BookingDurationType.YEARLY), date(2025, 3, 10))

    def test_month_end_is_clamped(self) -> None:
        self.assertEqual(
            unit_booking_service.calculate_end_date(date(2024, 1, 31), BookingDurationType.MONTHLY), date(2024, 2, 29)
        )
        self.assertEqual(
            unit_booking_service.calculate_end_date(date(2024, 2, 29), BookingDurationType.YEARLY), date(2025, 2, 28)
        )
        self.assertEqual(
            unit_booking_service.calculate_end_date(date(2024, 12, 31), BookingDurationType.MONTHLY), date(2025, 1, 31)
        )


class CreateUnitBookingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)

    def test_guest_booking_creates_pending_resident_invoice_and_reserves_unit(self) -> None:
        unit = add_unit(self.db, 'A-101')
        guest = add_user(self.db, 'guest@example.com')
        with patch.object(settings, 'unit_booking_admin_fee', Decimal('2500')):
            booking, payment = unit_booking_service.create_unit_booking(
                self.db, user_id=guest.id, unit_id=unit.id, duration=BookingDurationType.MONTHLY, today=date(2024, 1, 31)
            )

        self.assertTrue(booking['booking_number'].startswith('UB-'))
        self.assertEqual(booking['end_date'], date(2024, 2, 29))
        self.assertEqual(booking['status'], 'pending')
        self.assertEqual(booking['payment_id'], payment['id'])
        self.assertEqual(payment['total_amount'], Decimal('5002500.00'))
        self.assertEqual(payment['admin_fee'], Decimal('2500.00'))

        resident = fetch_from_table(self.db, 'residents', filters={'user_id': guest.id})[0]
        self.assertEqual(resident['status'], 'pending')
        self.assertEqual(payment['resident_id'], resident['id'])
        self.assertEqual(fetch_from_table(self.db, 'units', filters={'id': unit.id})[0]['status'], 'reserved')

    def test_admin_fee_setting_overrides_default(self) -> None:
        unit = add_unit(self.db, 'A-101')
        resident = add_resident(self.db)
        set_setting(self.db, UNIT_BOOKING_ADMIN_FEE_KEY, '10000')
        booking, payment = unit_booking_service.create_unit_booking(
            self.db, user_id=resident.user_id, unit_id=unit.id, duration=BookingDurationType.WEEKLY, today=date(2024, 1, 1)
        )
        self.assertEqual(booking['admin_fee'], Decimal('10000.00'))
        self.assertEqual(payment['total_amount'], Decimal('2010000.00'))
        self.assertEqual(payment['resident_id'], resident.id)

    def test_unavailable_or_missing_unit_is_refused(self) -> None:
        unit = add_unit(self.db, 'A-101', status=UnitStatus.OCCUPIED)
        guest = add_user(self.db, 'guest@example.com')
        with self.assertRaises(ValueError):
            unit_booking_service.create_unit_booking(
                self.db, user_id=guest.id, unit_id=unit.id, duration=BookingDurationType.MONTHLY
            )
        with self.assertRaises(ValueError):
            unit_booking_service.create_unit_booking(
                self.db, user_id=guest.id, unit_id=404, duration=BookingDurationType.MONTHLY
            )


if __name__ == '__main__':
    unittest.main()
