from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    BookingDurationType,
    PaymentType,
    ResidentStatus,
    UnitBookingPaymentStatus,
    UnitBookingStatus,
    UnitStatus,
)
from app.services import payment_service, resident_service
from app.services.reference_numbers import UNIT_BOOKING_PREFIX, generate_reference_number
from app.services.settings_service import UNIT_BOOKING_ADMIN_FEE_KEY, get_decimal_setting
from app.services.table_service import fetch_from_table, insert_into_table, update_in_table

WEEKS_PER_MONTH = Decimal('4')
MONTHS_PER_YEAR = Decimal('12')


@dataclass(frozen=True)
class BookingPrice:
    rent: Decimal
    deposit: Decimal
    admin_fee: Decimal
    total: Decimal


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    return value if isinstance(value, Decimal) else Decimal(str(value))


def calculate_booking_price(unit: dict, duration: BookingDurationType, admin_fee: Decimal) -> BookingPrice:
    monthly = _decimal(unit.get('monthly_rent'))
    if duration == BookingDurationType.WEEKLY:
        rent = _decimal(unit.get('weekly_rent')) if unit.get('weekly_rent') else monthly / WEEKS_PER_MONTH
    elif duration == BookingDurationType.MONTHLY:
        rent = monthly
    elif duration == BookingDurationType.YEARLY:
        rent = _decimal(unit.get('yearly_rent')) if unit.get('yearly_rent') else monthly * MONTHS_PER_YEAR
    else:
        raise ValueError(f'Unknown booking duration: {duration}')

    rent = rent.quantize(Decimal('0.01'))
    deposit = _decimal(unit.get('deposit_required'))
    return BookingPrice(rent=rent, deposit=deposit, admin_fee=admin_fee, total=rent + deposit + admin_fee)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_end_date(start: date, duration: BookingDurationType) -> date:
    if duration == BookingDurationType.WEEKLY:
        return start + timedelta(days=7)
    if duration == BookingDurationType.MONTHLY:
        return _add_months(start, 1)
    if duration == BookingDurationType.YEARLY:
        return _add_months(start, 12)
    raise ValueError(f'Unknown booking duration: {duration}')


def current_admin_fee(db: Session) -> Decimal:
    return get_decimal_setting(db, UNIT_BOOKING_ADMIN_FEE_KEY, settings.unit_booking_admin_fee)


def create_unit_booking(
    db: Session,
    *,
    user_id: int,
    unit_id: int,
    duration: BookingDurationType,
    today: date | None = None,
) -> tuple[dict, dict]:
    today = today or date.today()
    units = fetch_from_table(db, 'units', filters={'id': unit_id})
    if not units:
        raise ValueError('Unit not found')
    unit = units[0]
    if unit['status'] != UnitStatus.AVAILABLE.value:
        raise ValueError(f'Unit {unit["unit_number"]} is not available for booking')

    resident_id = resident_service.get_resident_id(db, user_id)
    if resident_id is None:
        resident_id = resident_service.create_resident(db, user_id=user_id, status=ResidentStatus.PENDING)['id']

    price = calculate_booking_price(unit, duration, current_admin_fee(db))
    booking = insert_into_table(
        db,
        'unit_bookings',
        {
            'booking_number': generate_reference_number(UNIT_BOOKING_PREFIX),
            'resident_id': resident_id,
            'unit_id': unit_id,
            'booking_duration_type': duration,
            'start_date': today,
            'end_date': calculate_end_date(today, duration),
            'rent_amount': price.rent,
            'deposit_amount': price.deposit,
            'admin_fee': price.admin_fee,
            'total_amount': price.total,
            'payment_status': UnitBookingPaymentStatus.PENDING,
            'status': UnitBookingStatus.PENDING,
        },
    )
    payment = payment_service.create_payment(
        db,
        resident_id=resident_id,
        unit_id=unit_id,
        payment_type=PaymentType.RENT,
        amount=price.rent + price.deposit,
        admin_fee=price.admin_fee,
        due_date=today,
        notes=f'Unit booking {booking["booking_number"]} ({duration.value})',
    )
    booking = update_in_table(db, 'unit_bookings', booking['id'], {'payment_id': payment['id']})
    update_in_table(db, 'units', unit_id, {'status': UnitStatus.RESERVED})
    return booking, payment


def list_resident_unit_bookings(db: Session, resident_id: int) -> list[dict]:
    return fetch_from_table(
        db, 'unit_bookings', filters={'resident_id': resident_id}, order_by='created_at', ascending=False
    )
