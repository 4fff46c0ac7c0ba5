from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.forms import form_str, optional_str, parse_decimal, parse_enum, parse_int
from app.models import Unit, UnitOrientation, UnitPhoto, UnitStatus, UnitType
from app.services.table_service import (
    delete_from_table,
    fetch_from_table,
    insert_into_table,
    row_to_dict,
    update_in_table,
)

LOW_PRICE_CEILING = Decimal('5000000')
HIGH_PRICE_FLOOR = Decimal('7000000')
PRICE_RANGES = ('low', 'mid', 'high')


def list_units(
    db: Session,
    *,
    unit_type: UnitType | None = None,
    status: UnitStatus | None = None,
    floor: int | None = None,
    price_range: str | None = None,
) -> list[dict]:
    table = Unit.__table__
    query = select(table)
    if unit_type is not None:
        query = query.where(table.c.unit_type == unit_type.value)
    if status is not None:
        query = query.where(table.c.status == status.value)
    if floor is not None:
        query = query.where(table.c.floor == floor)

    if price_range == 'low':
        query = query.where(table.c.monthly_rent <= LOW_PRICE_CEILING)
    elif price_range == 'mid':
        query = query.where(table.c.monthly_rent >= LOW_PRICE_CEILING, table.c.monthly_rent <= HIGH_PRICE_FLOOR)
    elif price_range == 'high':
        query = query.where(table.c.monthly_rent >= HIGH_PRICE_FLOOR)
    elif price_range:
        raise ValueError(f'Unknown price range: {price_range}')

    rows = db.execute(query.order_by(table.c.floor.asc(), table.c.unit_number.asc())).all()
    return [row_to_dict(row) for row in rows]


def list_floors(db: Session) -> list[int]:
    return db.execute(select(Unit.floor).distinct().order_by(Unit.floor.asc())).scalars().all()


def get_unit(db: Session, unit_id: int) -> dict | None:
    rows = fetch_from_table(db, 'units', filters={'id': unit_id})
    return rows[0] if rows else None


def list_unit_photos(db: Session, unit_id: int) -> list[dict]:
    photos = fetch_from_table(db, 'unit_photos', filters={'unit_id': unit_id}, order_by='position')
    return sorted(photos, key=lambda photo: (not photo['is_primary'], photo['position'], photo['id']))


def get_unit_with_photos(db: Session, unit_id: int) -> tuple[dict, list[dict]]:
    unit = get_unit(db, unit_id)
    if unit is None:
        raise ValueError('Unit not found')
    return unit, list_unit_photos(db, unit_id)


def primary_photo_urls(db: Session, unit_ids: list[int]) -> dict[int, str]:
    if not unit_ids:
        return {}
    rows = db.execute(
        select(UnitPhoto.unit_id, UnitPhoto.photo_url, UnitPhoto.is_primary, UnitPhoto.position)
        .where(UnitPhoto.unit_id.in_(unit_ids))
        .order_by(UnitPhoto.unit_id.asc(), UnitPhoto.is_primary.desc(), UnitPhoto.position.asc())
    ).all()
    urls: dict[int, str] = {}
    for row in rows:
        urls.setdefault(row.unit_id, row.photo_url)
    return urls


def _parse_features(raw: str) -> list[str]:
    features: list[str] = []
    for chunk in raw.replace('\n', ',').split(','):
        feature = chunk.strip()
        if feature and feature not in features:
            features.append(feature)
    return features


def parse_unit_form(form) -> dict:
    unit_number = form_str(form, 'unit_number')
    if not unit_number:
        raise ValueError('Unit number is required')
    unit_type = parse_enum(UnitType, form_str(form, 'unit_type'), field='unit type')
    if unit_type is None:
        raise ValueError('Unit type is required')
    floor = parse_int(form_str(form, 'floor'), field='floor')
    if floor is None:
        raise ValueError('Floor is required')
    size_sqm = parse_decimal(form_str(form, 'size_sqm'), field='size')
    if not size_sqm:
        raise ValueError('Size must be greater than zero')
    monthly_rent = parse_decimal(form_str(form, 'monthly_rent'), field='monthly rent')
    if not monthly_rent:
        raise ValueError('Monthly rent must be greater than zero')

    return {
        'unit_number': unit_number,
        'unit_type': unit_type,
        'floor': floor,
        'size_sqm': size_sqm,
        'bedrooms': parse_int(form_str(form, 'bedrooms'), field='bedrooms', default=0, minimum=0),
        'bathrooms': parse_int(form_str(form, 'bathrooms'), field='bathrooms', default=1, minimum=0),
        'orientation': parse_enum(UnitOrientation, form_str(form, 'orientation'), field='orientation'),
        'monthly_rent': monthly_rent,
        'weekly_rent': parse_decimal(form_str(form, 'weekly_rent'), field='weekly rent'),
        'yearly_rent': parse_decimal(form_str(form, 'yearly_rent'), field='yearly rent'),
        'deposit_required': parse_decimal(form_str(form, 'deposit_required'), field='deposit', default=Decimal('0')),
        'features': _parse_features(form_str(form, 'features')),
        'floor_plan_url': optional_str(form, 'floor_plan_url'),
        'description': optional_str(form, 'description'),
        'status': parse_enum(UnitStatus, form_str(form, 'status'), field='status', default=UnitStatus.AVAILABLE),
    }


def _assert_unit_number_free(db: Session, unit_number: str, *, exclude_id: int | None = None) -> None:
    rows = fetch_from_table(db, 'units', columns=['id'], filters={'unit_number': unit_number})
    if any(row['id'] != exclude_id for row in rows):
        raise ValueError(f'Unit number {unit_number} already exists')


def create_unit(db: Session, data: dict) -> dict:
    _assert_unit_number_free(db, data['unit_number'])
    return insert_into_table(db, 'units', data)


def update_unit(db: Session, unit_id: int, data: dict) -> dict:
    if get_unit(db, unit_id) is None:
        raise ValueError('Unit not found')
    if 'unit_number' in data:
        _assert_unit_number_free(db, data['unit_number'], exclude_id=unit_id)
    return update_in_table(db, 'units', unit_id, data)


def set_unit_status(db: Session, unit_id: int, status: UnitStatus) -> dict:
    return update_in_table(db, 'units', unit_id, {'status': status})


def delete_unit(db: Session, unit_id: int) -> dict:
    unit = get_unit(db, unit_id)
    if unit is None:
        raise ValueError('Unit not found')
    if unit['status'] == UnitStatus.OCCUPIED.value:
        raise ValueError('Occupied units cannot be deleted')
    if fetch_from_table(db, 'unit_bookings', columns=['id'], filters={'unit_id': unit_id}, limit=1):
        raise ValueError('Units with booking history cannot be deleted; set them to maintenance instead')
    delete_from_table(db, 'units', unit_id)
    return unit


def add_unit_photo(db: Session, *, unit_id: int, photo_url: str, caption: str | None = None, is_primary: bool = False) -> dict:
    photo_url = (photo_url or '').strip()
    if not photo_url:
        raise ValueError('Photo URL is required')
    if get_unit(db, unit_id) is None:
        raise ValueError('Unit not found')

    max_position = db.execute(
        select(func.max(UnitPhoto.position)).where(UnitPhoto.unit_id == unit_id)
    ).scalar_one_or_none()
    first_photo = max_position is None
    if is_primary and not first_photo:
        db.execute(update(UnitPhoto).where(UnitPhoto.unit_id == unit_id).values(is_primary=False))
    return insert_into_table(
        db,
        'unit_photos',
        {
            'unit_id': unit_id,
            'photo_url': photo_url,
            'caption': caption,
            'position': 0 if first_photo else max_position + 1,
            'is_primary': is_primary or first_photo,
        },
    )


def _get_photo(db: Session, unit_id: int, photo_id: int) -> dict:
    rows = fetch_from_table(db, 'unit_photos', filters={'id': photo_id, 'unit_id': unit_id})
    if not rows:
        raise ValueError('Photo not found')
    return rows[0]


def set_primary_photo(db: Session, *, unit_id: int, photo_id: int) -> dict:
    _get_photo(db, unit_id, photo_id)
    db.execute(update(UnitPhoto).where(UnitPhoto.unit_id == unit_id).values(is_primary=False))
    return update_in_table(db, 'unit_photos', photo_id, {'is_primary': True})


def delete_unit_photo(db: Session, *, unit_id: int, photo_id: int) -> None:
    photo = _get_photo(db, unit_id, photo_id)
    delete_from_table(db, 'unit_photos', photo_id)
    if photo['is_primary']:
        remaining = list_unit_photos(db, unit_id)
        if remaining:
            update_in_table(db, 'unit_photos', remaining[0]['id'], {'is_primary': True})


def count_units_by_status(db: Session) -> dict[str, int]:
    counts = {status.value: 0 for status in UnitStatus}
    rows = db.execute(select(Unit.status, func.count(Unit.id)).group_by(Unit.status)).all()
    for status, count in rows:
        counts[status.value] = count
    return counts
