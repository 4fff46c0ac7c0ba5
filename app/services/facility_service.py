from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.forms import form_str, optional_str, parse_decimal, parse_enum, parse_int, parse_time
from app.models import (
    BookingStatus,
    Facility,
    FacilityBooking,
    FacilityCategory,
    FacilityStatus,
    PaymentType,
    Resident,
    User,
)
from app.services import payment_service
from app.services.reference_numbers import FACILITY_BOOKING_PREFIX, generate_reference_number
from app.services.table_service import fetch_from_table, insert_into_table, row_to_dict, update_in_table

CANCELLABLE_STATUSES = {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_facility(db: Session, facility_id: int) -> dict | None:
    rows = fetch_from_table(db, 'facilities', filters={'id': facility_id})
    return rows[0] if rows else None


def list_active_facilities(db: Session, *, category: FacilityCategory | None = None) -> list[dict]:
    return fetch_from_table(
        db, 'facilities', filters={'status': FacilityStatus.ACTIVE, 'category': category}, order_by='name'
    )


def list_facilities(db: Session, *, status: FacilityStatus | None = None) -> list[dict]:
    return fetch_from_table(db, 'facilities', filters={'status': status}, order_by='name')


def facility_photo_urls(db: Session) -> dict[int, str]:
    urls: dict[int, str] = {}
    for photo in fetch_from_table(db, 'facility_photos', order_by='position'):
        urls.setdefault(photo['facility_id'], photo['photo_url'])
    return urls


def parse_facility_form(form) -> dict:
    name = form_str(form, 'name')
    if not name:
        raise ValueError('Facility name is required')
    category = parse_enum(FacilityCategory, form_str(form, 'category'), field='category')
    if category is None:
        raise ValueError('Category is required')
    operational_start = parse_time(form_str(form, 'operational_start'), field='opening time')
    operational_end = parse_time(form_str(form, 'operational_end'), field='closing time')
    if (operational_start is None) != (operational_end is None):
        raise ValueError('Set both opening and closing times, or neither')
    if operational_start is not None and operational_end <= operational_start:
        raise ValueError('Closing time must be after opening time')

    return {
        'name': name,
        'category': category,
        'description': optional_str(form, 'description'),
        'capacity': parse_int(form_str(form, 'capacity'), field='capacity', default=1, minimum=1),
        'location': optional_str(form, 'location'),
        'operational_start': operational_start,
        'operational_end': operational_end,
        'booking_fee': parse_decimal(form_str(form, 'booking_fee'), field='booking fee', default=Decimal('0')),
        'max_booking_duration_hours': parse_int(
            form_str(form, 'max_booking_duration_hours'), field='maximum duration', minimum=1
        ),
        'status': parse_enum(FacilityStatus, form_str(form, 'status'), field='status', default=FacilityStatus.ACTIVE),
    }


def create_facility(db: Session, data: dict) -> dict:
    return insert_into_table(db, 'facilities', data)


def update_facility(db: Session, facility_id: int, data: dict) -> dict:
    if get_facility(db, facility_id) is None:
        raise ValueError('Facility not found')
    return update_in_table(db, 'facilities', facility_id, data)


def add_facility_photo(db: Session, *, facility_id: int, photo_url: str, caption: str | None = None) -> dict:
    photo_url = (photo_url or '').strip()
    if not photo_url:
        raise ValueError('Photo URL is required')
    existing = fetch_from_table(db, 'facility_photos', columns=['id'], filters={'facility_id': facility_id})
    return insert_into_table(
        db,
        'facility_photos',
        {'facility_id': facility_id, 'photo_url': photo_url, 'caption': caption, 'position': len(existing)},
    )


def calculate_end_time(start_time: time, duration_hours: int) -> time:
    start = datetime.combine(date.min, start_time)
    end = start + timedelta(hours=duration_hours)
    # Ending exactly at 00:00 also counts: end_time would sort before start_time.
    if end.date() != start.date():
        raise ValueError('Bookings cannot run past midnight')
    return end.time()


def create_facility_booking(
    db: Session,
    *,
    resident_id: int,
    facility_id: int,
    booking_date: date,
    start_time: time,
    duration_hours: int,
    number_of_guests: int = 1,
    notes: str | None = None,
    today: date | None = None,
) -> dict:
    today = today or date.today()
    facility = get_facility(db, facility_id) if facility_id is not None else None
    if facility is None:
        raise ValueError('Facility not found')
    if facility['status'] != FacilityStatus.ACTIVE.value:
        raise ValueError(f'{facility["name"]} is not open for booking')
    if booking_date is None or start_time is None:
        raise ValueError('Booking date and start time are required')
    if booking_date < today:
        raise ValueError('Booking date cannot be in the past')
    if duration_hours is None or duration_hours < 1:
        raise ValueError('Duration must be at least one hour')
    max_hours = facility['max_booking_duration_hours']
    if max_hours and duration_hours > max_hours:
        raise ValueError(f'{facility["name"]} can be booked for at most {max_hours} hours')
    if number_of_guests is None or number_of_guests < 1:
        raise ValueError('At least one guest is required')
    if number_of_guests > facility['capacity']:
        raise ValueError(f'{facility["name"]} holds at most {facility["capacity"]} guests')

    end_time = calculate_end_time(start_time, duration_hours)
    opens, closes = facility['operational_start'], facility['operational_end']
    if opens is not None and closes is not None and (start_time < opens or end_time > closes):
        raise ValueError(
            f'{facility["name"]} is open from {opens.strftime("%H:%M")} to {closes.strftime("%H:%M")}'
        )

    fee = Decimal(facility['booking_fee'] or 0) * duration_hours
    booking = insert_into_table(
        db,
        'facility_bookings',
        {
            'booking_number': generate_reference_number(FACILITY_BOOKING_PREFIX),
            'resident_id': resident_id,
            'facility_id': facility_id,
            'booking_date': booking_date,
            'start_time': start_time,
            'end_time': end_time,
            'duration_hours': duration_hours,
            'number_of_guests': number_of_guests,
            'booking_fee': fee,
            'status': BookingStatus.PENDING,
            'notes': notes,
        },
    )
    if fee > 0:
        resident_unit = fetch_from_table(db, 'residents', columns=['unit_id'], filters={'id': resident_id})
        payment = payment_service.create_payment(
            db,
            resident_id=resident_id,
            unit_id=resident_unit[0]['unit_id'] if resident_unit else None,
            payment_type=PaymentType.FACILITY_BOOKING,
            amount=fee,
            due_date=booking_date,
            notes=f'{facility["name"]} booking {booking["booking_number"]}',
        )
        booking = update_in_table(db, 'facility_bookings', booking['id'], {'payment_id': payment['id']})
    return booking


def get_facility_booking(db: Session, booking_id: int) -> dict | None:
    rows = fetch_from_table(db, 'facility_bookings', filters={'id': booking_id})
    return rows[0] if rows else None


def cancel_facility_booking(db: Session, *, booking_id: int, resident_id: int) -> dict:
    booking = get_facility_booking(db, booking_id)
    if booking is None:
        raise ValueError('Booking not found')
    if booking['resident_id'] != resident_id:
        raise PermissionError('Booking belongs to another resident')
    if booking['status'] not in CANCELLABLE_STATUSES:
        raise ValueError(f'Booking {booking["booking_number"]} is already {booking["status"]}')
    return update_in_table(
        db, 'facility_bookings', booking_id, {'status': BookingStatus.CANCELLED, 'cancelled_at': _now()}
    )


def set_booking_status(db: Session, booking_id: int, status: BookingStatus) -> dict:
    booking = get_facility_booking(db, booking_id)
    if booking is None:
        raise ValueError('Booking not found')
    updates: dict = {'status': status}
    if status == BookingStatus.CANCELLED:
        updates['cancelled_at'] = _now()
    return update_in_table(db, 'facility_bookings', booking_id, updates)


def _bookings_query():
    bookings = FacilityBooking.__table__
    return (
        select(bookings, Facility.name.label('facility_name'), User.full_name.label('resident_name'))
        .join(Facility, Facility.id == bookings.c.facility_id)
        .join(Resident, Resident.id == bookings.c.resident_id)
        .join(User, User.id == Resident.user_id)
    )


def list_resident_bookings(db: Session, resident_id: int, status: BookingStatus | None = None) -> list[dict]:
    bookings = FacilityBooking.__table__
    query = _bookings_query().where(bookings.c.resident_id == resident_id)
    if status is not None:
        query = query.where(bookings.c.status == status.value)
    rows = db.execute(query.order_by(bookings.c.booking_date.desc(), bookings.c.start_time.desc())).all()
    return [row_to_dict(row) for row in rows]


def list_all_bookings(db: Session, status: BookingStatus | None = None) -> list[dict]:
    bookings = FacilityBooking.__table__
    query = _bookings_query()
    if status is not None:
        query = query.where(bookings.c.status == status.value)
    rows = db.execute(query.order_by(bookings.c.booking_date.desc(), bookings.c.start_time.desc())).all()
    return [row_to_dict(row) for row in rows]
