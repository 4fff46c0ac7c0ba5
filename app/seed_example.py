from datetime import date, time
from decimal import Decimal

from sqlalchemy import select

from app.db import SessionLocal, init_db
from app.models import (
    Admin,
    AdminRole,
    Announcement,
    AnnouncementCategory,
    AnnouncementStatus,
    Facility,
    FacilityCategory,
    FacilityPhoto,
    GalleryPhoto,
    Resident,
    ResidentStatus,
    SystemSetting,
    Unit,
    UnitOrientation,
    UnitPhoto,
    UnitStatus,
    UnitType,
    User,
    UserRole,
)
from app.security.passwords import hash_password

DEMO_UNITS = (
    ('A-101', UnitType.STUDIO, 1, Decimal('24'), 0, 1, UnitOrientation.EAST, Decimal('3500000')),
    ('A-205', UnitType.ONE_BR, 2, Decimal('36'), 1, 1, UnitOrientation.NORTH, Decimal('5500000')),
    ('B-310', UnitType.TWO_BR, 3, Decimal('54'), 2, 1, UnitOrientation.SOUTHEAST, Decimal('7500000')),
    ('B-1201', UnitType.PENTHOUSE, 12, Decimal('140'), 3, 3, UnitOrientation.WEST, Decimal('25000000')),
)

DEMO_FACILITIES = (
    ('Swimming Pool', FacilityCategory.RECREATION, 30, 'Level 5', time(6, 0), time(21, 0), Decimal('0'), 2),
    ('Fitness Center', FacilityCategory.SPORTS, 15, 'Level 5', time(5, 0), time(22, 0), Decimal('0'), 2),
    ('Meeting Room', FacilityCategory.BUSINESS, 12, 'Lobby', time(8, 0), time(20, 0), Decimal('50000'), 4),
    ('Function Hall', FacilityCategory.SOCIAL, 80, 'Level 2', time(9, 0), time(22, 0), Decimal('250000'), 6),
)

DEMO_SETTINGS = {
    'unit_booking_admin_fee': ('2500', 'Admin fee added to unit bookings'),
    'contact_phone': ('+62 21 555 0100', None),
    'contact_email': ('office@apartment.example', None),
    'contact_address': ('Jl. Contoh No. 1, Jakarta', None),
    'office_hours': ('Mon-Sat 08:00-17:00', None),
}


def _ensure_user(db, *, email: str, username: str, password: str, full_name: str, role: UserRole) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
            is_active=True,
            is_verified=True,
        )
        db.add(user)
        db.flush()
    return user


def seed() -> None:
    init_db()
    with SessionLocal() as db:
        for key, (value, description) in DEMO_SETTINGS.items():
            if not db.execute(select(SystemSetting).where(SystemSetting.key == key)).scalar_one_or_none():
                db.add(SystemSetting(key=key, value=value, description=description))

        units = {}
        for number, unit_type, floor, size, bedrooms, bathrooms, orientation, rent in DEMO_UNITS:
            unit = db.execute(select(Unit).where(Unit.unit_number == number)).scalar_one_or_none()
            if not unit:
                unit = Unit(
                    unit_number=number,
                    unit_type=unit_type,
                    floor=floor,
                    size_sqm=size,
                    bedrooms=bedrooms,
                    bathrooms=bathrooms,
                    orientation=orientation,
                    monthly_rent=rent,
                    yearly_rent=rent * 11,
                    deposit_required=rent,
                    features=['Air conditioning', 'Water heater', 'Wi-Fi ready'],
                    description=f'{unit_type.value} unit on floor {floor}',
                    status=UnitStatus.AVAILABLE,
                )
                db.add(unit)
                db.flush()
                db.add(UnitPhoto(unit_id=unit.id, photo_url=f'https://placehold.co/800x600?text={number}', position=0, is_primary=True))
            units[number] = unit

        for name, category, capacity, location, opens, closes, fee, max_hours in DEMO_FACILITIES:
            facility = db.execute(select(Facility).where(Facility.name == name)).scalar_one_or_none()
            if not facility:
                facility = Facility(
                    name=name,
                    category=category,
                    capacity=capacity,
                    location=location,
                    operational_start=opens,
                    operational_end=closes,
                    booking_fee=fee,
                    max_booking_duration_hours=max_hours,
                )
                db.add(facility)
                db.flush()
                slug = name.lower().replace(' ', '-')
                db.add(FacilityPhoto(facility_id=facility.id, photo_url=f'https://placehold.co/800x600?text={slug}', position=0))

        admin_user = _ensure_user(
            db,
            email='admin@apartment.example',
            username='admin',
            password='adminpass',
            full_name='Building Manager',
            role=UserRole.ADMIN,
        )
        if not db.execute(select(Admin).where(Admin.user_id == admin_user.id)).scalar_one_or_none():
            db.add(Admin(user_id=admin_user.id, admin_role=AdminRole.SUPER_ADMIN))

        resident_user = _ensure_user(
            db,
            email='resident@apartment.example',
            username='resident',
            password='residentpass',
            full_name='Demo Resident',
            role=UserRole.RESIDENT,
        )
        resident = db.execute(select(Resident).where(Resident.user_id == resident_user.id)).scalar_one_or_none()
        if not resident:
            home = units['A-205']
            db.add(
                Resident(
                    user_id=resident_user.id,
                    unit_id=home.id,
                    status=ResidentStatus.ACTIVE,
                    move_in_date=date.today(),
                    contract_start=date.today(),
                    deposit_amount=home.deposit_required,
                )
            )
            home.status = UnitStatus.OCCUPIED

        if not db.execute(select(Announcement).limit(1)).scalar_one_or_none():
            db.add(
                Announcement(
                    created_by=admin_user.id,
                    title='Welcome to the resident portal',
                    content='Pay invoices, book facilities and report issues from your dashboard.',
                    category=AnnouncementCategory.GENERAL,
                    status=AnnouncementStatus.PUBLISHED,
                    is_important=True,
                )
            )

        if not db.execute(select(GalleryPhoto).limit(1)).scalar_one_or_none():
            db.add(
                GalleryPhoto(
                    uploaded_by=admin_user.id,
                    photo_url='https://placehold.co/1200x800?text=lobby',
                    caption='Main lobby',
                    category='building',
                    tags=['lobby', 'building'],
                    is_featured=True,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
