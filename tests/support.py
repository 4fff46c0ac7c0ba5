from __future__ import annotations

from datetime import date, time
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import Principal, Role
from app.models import (
    Admin,
    AdminRole,
    Base,
    Facility,
    FacilityCategory,
    Resident,
    ResidentStatus,
    Unit,
    UnitStatus,
    UnitType,
    User,
    UserRole,
)

# Fixtures skip the argon2 hash; tests that sign in set a real one.
PLACEHOLDER_HASH = 'not-a-real-hash'


def make_session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_user(db, email: str, *, full_name: str = 'Test User', role: UserRole = UserRole.GUEST, password_hash: str = PLACEHOLDER_HASH) -> User:
    user = User(
        email=email,
        username=email.split('@', 1)[0],
        password_hash=password_hash,
        full_name=full_name,
        role=role,
        is_active=True,
        is_verified=True,
    )
    db.add(user)
    db.flush()
    return user


def add_unit(
    db,
    number: str = 'A-101',
    *,
    monthly_rent: Decimal = Decimal('4000000'),
    deposit: Decimal = Decimal('1000000'),
    status: UnitStatus = UnitStatus.AVAILABLE,
    weekly_rent: Decimal | None = None,
    yearly_rent: Decimal | None = None,
) -> Unit:
    unit = Unit(
        unit_number=number,
        unit_type=UnitType.ONE_BR,
        floor=1,
        size_sqm=Decimal('36'),
        monthly_rent=monthly_rent,
        weekly_rent=weekly_rent,
        yearly_rent=yearly_rent,
        deposit_required=deposit,
        features=[],
        status=status,
    )
    db.add(unit)
    db.flush()
    return unit


def add_resident(db, email: str = 'resident@example.com', *, unit: Unit | None = None) -> Resident:
    user = add_user(db, email, full_name='Rina Resident', role=UserRole.RESIDENT)
    resident = Resident(
        user_id=user.id,
        unit_id=unit.id if unit else None,
        status=ResidentStatus.ACTIVE,
        move_in_date=date(2024, 1, 1),
        deposit_amount=Decimal('0'),
    )
    db.add(resident)
    db.flush()
    return resident


def add_admin(db, email: str = 'admin@example.com') -> User:
    user = add_user(db, email, full_name='Ari Admin', role=UserRole.ADMIN)
    db.add(Admin(user_id=user.id, admin_role=AdminRole.ADMIN))
    db.flush()
    return user


def add_facility(db, name: str = 'Meeting Room', **overrides) -> Facility:
    values = {
        'name': name,
        'category': FacilityCategory.BUSINESS,
        'capacity': 10,
        'operational_start': time(8, 0),
        'operational_end': time(20, 0),
        'booking_fee': Decimal('50000'),
        'max_booking_duration_hours': 4,
    }
    values.update(overrides)
    facility = Facility(**values)
    db.add(facility)
    db.flush()
    return facility


def make_file_session_factory(path: str):
    engine = create_engine(f'sqlite:///{path}')
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def principal_for(user: User, *, role: Role, resident_id: int | None = None, unit_id: int | None = None) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        role=role,
        resident_id=resident_id,
        unit_id=unit_id,
        active=True,
    )
