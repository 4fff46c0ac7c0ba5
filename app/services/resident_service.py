from __future__ import annotations

import secrets
from datetime import date
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.forms import form_str, optional_str, parse_date, parse_decimal, parse_enum, parse_int
from app.models import Resident, ResidentStatus, Unit, UnitBookingStatus, UnitStatus, User, UserRole
from app.services import auth_service
from app.services.table_service import fetch_from_table, insert_into_table, row_to_dict, update_in_table

RESIDENT_UPDATE_FIELDS = (
    'unit_id',
    'emergency_contact_name',
    'emergency_contact_phone',
    'move_in_date',
    'contract_start',
    'contract_end',
    'status',
    'deposit_amount',
)

HELD_BOOKING_STATUSES = {UnitBookingStatus.PENDING.value, UnitBookingStatus.CONFIRMED.value}


def get_resident_id(db: Session, user_id: int) -> int | None:
    rows = fetch_from_table(db, 'residents', columns=['id'], filters={'user_id': user_id}, limit=1)
    return rows[0]['id'] if rows else None


def get_resident(db: Session, resident_id: int) -> dict | None:
    rows = fetch_from_table(db, 'residents', filters={'id': resident_id})
    return rows[0] if rows else None


def get_resident_with_unit(db: Session, resident_id: int) -> dict | None:
    resident = get_resident(db, resident_id)
    if resident is None:
        return None
    user = db.execute(
        select(User.full_name, User.email, User.phone, User.username).where(User.id == resident['user_id'])
    ).one()
    resident.update(row_to_dict(user))
    resident['unit'] = None
    if resident['unit_id'] is not None:
        units = fetch_from_table(db, 'units', filters={'id': resident['unit_id']})
        resident['unit'] = units[0] if units else None
    return resident


def _set_user_role(db: Session, user_id: int, role: UserRole) -> None:
    db.execute(update(User).where(User.id == user_id).values(role=role))


def _holds_unit(db: Session, unit_id: int, resident_id: int | None) -> bool:
    if resident_id is None:
        return False
    if fetch_from_table(db, 'residents', columns=['id'], filters={'id': resident_id, 'unit_id': unit_id}):
        return True
    bookings = fetch_from_table(db, 'unit_bookings', columns=['status'], filters={'resident_id': resident_id, 'unit_id': unit_id})
    return any(booking['status'] in HELD_BOOKING_STATUSES for booking in bookings)


def _check_unit_assignable(db: Session, unit_id: int, resident_id: int | None) -> None:
    units = fetch_from_table(db, 'units', columns=['id', 'status', 'unit_number'], filters={'id': unit_id})
    if not units:
        raise ValueError('Unit not found')
    unit = units[0]
    if unit['status'] != UnitStatus.AVAILABLE.value and not _holds_unit(db, unit_id, resident_id):
        raise ValueError(f'Unit {unit["unit_number"]} is not available')


def _occupy_unit(db: Session, unit_id: int) -> None:
    update_in_table(db, 'units', unit_id, {'status': UnitStatus.OCCUPIED})


def _release_unit(db: Session, unit_id: int, *, resident_id: int) -> None:
    other = db.execute(
        select(Resident.id).where(Resident.unit_id == unit_id, Resident.id != resident_id, Resident.status == ResidentStatus.ACTIVE)
    ).first()
    if other is None:
        update_in_table(db, 'units', unit_id, {'status': UnitStatus.AVAILABLE})


def create_resident(
    db: Session,
    *,
    user_id: int,
    unit_id: int | None = None,
    status: ResidentStatus = ResidentStatus.PENDING,
    emergency_contact_name: str | None = None,
    emergency_contact_phone: str | None = None,
    move_in_date: date | None = None,
    contract_start: date | None = None,
    contract_end: date | None = None,
    deposit_amount: Decimal = Decimal('0'),
) -> dict:
    if get_resident_id(db, user_id) is not None:
        raise ValueError('User is already a resident')
    resident = insert_into_table(
        db,
        'residents',
        {
            'user_id': user_id,
            'unit_id': unit_id,
            'status': status,
            'emergency_contact_name': emergency_contact_name,
            'emergency_contact_phone': emergency_contact_phone,
            'move_in_date': move_in_date,
            'contract_start': contract_start,
            'contract_end': contract_end,
            'deposit_amount': deposit_amount,
        },
    )
    _set_user_role(db, user_id, UserRole.RESIDENT)
    return resident


def list_residents(db: Session, *, status: ResidentStatus | None = None, search: str | None = None) -> list[dict]:
    query = (
        select(
            Resident.id,
            Resident.user_id,
            Resident.unit_id,
            Resident.status,
            Resident.move_in_date,
            Resident.contract_start,
            Resident.contract_end,
            Resident.deposit_amount,
            Resident.emergency_contact_name,
            Resident.emergency_contact_phone,
            User.full_name,
            User.email,
            User.phone,
            Unit.unit_number,
        )
        .join(User, User.id == Resident.user_id)
        .outerjoin(Unit, Unit.id == Resident.unit_id)
    )
    if status is not None:
        query = query.where(Resident.status == status)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.where(or_(User.full_name.ilike(pattern), User.email.ilike(pattern), Unit.unit_number.ilike(pattern)))
    rows = db.execute(query.order_by(User.full_name.asc(), Resident.id.asc())).all()
    return [row_to_dict(row) for row in rows]


def parse_resident_form(form) -> dict:
    return {
        'unit_id': parse_int(form_str(form, 'unit_id'), field='unit'),
        'emergency_contact_name': optional_str(form, 'emergency_contact_name'),
        'emergency_contact_phone': optional_str(form, 'emergency_contact_phone'),
        'move_in_date': parse_date(form_str(form, 'move_in_date'), field='move-in date'),
        'contract_start': parse_date(form_str(form, 'contract_start'), field='contract start'),
        'contract_end': parse_date(form_str(form, 'contract_end'), field='contract end'),
        'deposit_amount': parse_decimal(form_str(form, 'deposit_amount'), field='deposit', default=Decimal('0')),
        'status': parse_enum(ResidentStatus, form_str(form, 'status'), field='status', default=ResidentStatus.ACTIVE),
    }


def _check_contract_dates(data: dict) -> None:
    start, end = data.get('contract_start'), data.get('contract_end')
    if start and end and end < start:
        raise ValueError('Contract end cannot be before contract start')


def admin_create_resident(db: Session, form) -> dict:
    email = form_str(form, 'email')
    full_name = form_str(form, 'full_name')
    if not full_name:
        raise ValueError('Full name is required')
    password = form_str(form, 'password') or secrets.token_urlsafe(12)
    data = parse_resident_form(form)
    _check_contract_dates(data)

    user = auth_service.get_user_by_email(db, email)
    resident_id = get_resident_id(db, user.id) if user is not None else None
    if data['unit_id'] is not None:
        _check_unit_assignable(db, data['unit_id'], resident_id)

    if user is None:
        try:
            user = auth_service.sign_up(
                db,
                email=email,
                password=password,
                full_name=full_name,
                phone=optional_str(form, 'phone'),
                id_number=optional_str(form, 'id_number'),
                verified=True,
            )
        except auth_service.AuthError as exc:
            raise ValueError(exc.message) from exc

    data['status'] = ResidentStatus.ACTIVE
    if resident_id is None:
        resident = insert_into_table(db, 'residents', {'user_id': user.id, **data})
    else:
        resident = update_in_table(db, 'residents', resident_id, data)
    _set_user_role(db, user.id, UserRole.RESIDENT)
    if data['unit_id'] is not None:
        _occupy_unit(db, data['unit_id'])
    return resident


def update_resident(db: Session, resident_id: int, updates: dict) -> dict:
    current = get_resident(db, resident_id)
    if current is None:
        raise ValueError('Resident not found')
    values = {key: value for key, value in updates.items() if key in RESIDENT_UPDATE_FIELDS}
    merged = {**current, **values}
    _check_contract_dates(merged)
    unit_changed = 'unit_id' in values and values['unit_id'] != current['unit_id']
    if unit_changed and values['unit_id'] is not None:
        _check_unit_assignable(db, values['unit_id'], resident_id)

    resident = update_in_table(db, 'residents', resident_id, values)
    if unit_changed:
        if current['unit_id'] is not None:
            _release_unit(db, current['unit_id'], resident_id=resident_id)
        if values['unit_id'] is not None:
            _occupy_unit(db, values['unit_id'])
    return resident


def set_resident_status(db: Session, resident_id: int, status: ResidentStatus) -> dict:
    current = get_resident(db, resident_id)
    if current is None:
        raise ValueError('Resident not found')
    resident = update_in_table(db, 'residents', resident_id, {'status': status})
    if status == ResidentStatus.TERMINATED and current['unit_id'] is not None:
        _release_unit(db, current['unit_id'], resident_id=resident_id)
    return resident


def count_active_residents(db: Session) -> int:
    return len(fetch_from_table(db, 'residents', columns=['id'], filters={'status': ResidentStatus.ACTIVE}))
