from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from app.services.table_service import fetch_from_table, insert_into_table, update_in_table

UNIT_BOOKING_ADMIN_FEE_KEY = 'unit_booking_admin_fee'
CONTACT_SETTING_KEYS = ('contact_phone', 'contact_email', 'contact_address', 'office_hours')


def get_setting(db: Session, key: str, default: str | None = None) -> str | None:
    rows = fetch_from_table(db, 'system_settings', columns=['value'], filters={'key': key}, limit=1)
    if not rows or rows[0]['value'] is None:
        return default
    return rows[0]['value']


def get_decimal_setting(db: Session, key: str, default: Decimal) -> Decimal:
    raw = get_setting(db, key)
    if raw is None or raw.strip() == '':
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f'System setting {key} is not a number: {raw!r}') from exc


def set_setting(db: Session, key: str, value: str | None, description: str | None = None) -> dict:
    key = key.strip()
    if not key:
        raise ValueError('Setting key is required')
    rows = fetch_from_table(db, 'system_settings', columns=['id', 'description'], filters={'key': key}, limit=1)
    if rows:
        updates = {'value': value}
        if description is not None:
            updates['description'] = description
        return update_in_table(db, 'system_settings', rows[0]['id'], updates)
    return insert_into_table(db, 'system_settings', {'key': key, 'value': value, 'description': description})


def get_contact_settings(db: Session) -> dict[str, str | None]:
    return {key: get_setting(db, key) for key in CONTACT_SETTING_KEYS}
