from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import CITEXT, INET
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only aliases rowid for INTEGER PRIMARY KEY; the test suite runs on it.
PrimaryKey = BigInteger().with_variant(Integer(), 'sqlite')
CaseInsensitiveText = CITEXT().with_variant(Text(), 'sqlite')
IpAddress = INET().with_variant(String(64), 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


class UserRole(str, Enum):
    RESIDENT = 'resident'
    ADMIN = 'admin'
    GUEST = 'guest'


class ResidentStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    PENDING = 'pending'
    TERMINATED = 'terminated'


class AdminRole(str, Enum):
    SUPER_ADMIN = 'super_admin'
    ADMIN = 'admin'
    MANAGER = 'manager'
    STAFF = 'staff'


class UnitType(str, Enum):
    STUDIO = 'studio'
    ONE_BR = '1br'
    TWO_BR = '2br'
    THREE_BR = '3br'
    FOUR_BR = '4br'
    PENTHOUSE = 'penthouse'


class UnitOrientation(str, Enum):
    NORTH = 'north'
    SOUTH = 'south'
    EAST = 'east'
    WEST = 'west'
    NORTHEAST = 'northeast'
    NORTHWEST = 'northwest'
    SOUTHEAST = 'southeast'
    SOUTHWEST = 'southwest'


class UnitStatus(str, Enum):
    AVAILABLE = 'available'
    OCCUPIED = 'occupied'
    MAINTENANCE = 'maintenance'
    RESERVED = 'reserved'


class BookingDurationType(str, Enum):
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'


class UnitBookingPaymentStatus(str, Enum):
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'


class UnitBookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


class PaymentType(str, Enum):
    RENT = 'rent'
    UTILITIES = 'utilities'
    MAINTENANCE = 'maintenance'
    DEPOSIT = 'deposit'
    PENALTY = 'penalty'
    FACILITY_BOOKING = 'facility_booking'
    OTHER = 'other'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    PAID = 'paid'
    OVERDUE = 'overdue'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class PaymentMethod(str, Enum):
    BANK_TRANSFER = 'bank_transfer'
    CREDIT_CARD = 'credit_card'
    DEBIT_CARD = 'debit_card'
    E_WALLET = 'e_wallet'
    CASH = 'cash'
    MIDTRANS = 'midtrans'


class TransactionStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


class FacilityCategory(str, Enum):
    RECREATION = 'recreation'
    SPORTS = 'sports'
    BUSINESS = 'business'
    SOCIAL = 'social'
    WELLNESS = 'wellness'
    OTHER = 'other'


class FacilityStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    MAINTENANCE = 'maintenance'


class BookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'
    NO_SHOW = 'no_show'


class TicketCategory(str, Enum):
    MAINTENANCE = 'maintenance'
    COMPLAINT = 'complaint'
    REQUEST = 'request'
    EMERGENCY = 'emergency'
    OTHER = 'other'


class TicketPriority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'


class TicketStatus(str, Enum):
    OPEN = 'open'
    IN_PROGRESS = 'in_progress'
    RESOLVED = 'resolved'
    CLOSED = 'closed'
    CANCELLED = 'cancelled'


class StatusChange(str, Enum):
    OPENED = 'opened'
    IN_PROGRESS = 'in_progress'
    RESOLVED = 'resolved'
    CLOSED = 'closed'
    CANCELLED = 'cancelled'


class AnnouncementCategory(str, Enum):
    GENERAL = 'general'
    MAINTENANCE = 'maintenance'
    EVENT = 'event'
    PAYMENT = 'payment'
    IMPORTANT = 'important'
    OTHER = 'other'


class AnnouncementStatus(str, Enum):
    DRAFT = 'draft'
    PUBLISHED = 'published'
    ARCHIVED = 'archived'


class ActionType(str, Enum):
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'
    LOGIN = 'login'
    LOGOUT = 'logout'
    VIEW = 'view'
    DOWNLOAD = 'download'
    UPLOAD = 'upload'


class NotificationType(str, Enum):
    PAYMENT = 'payment'
    ANNOUNCEMENT = 'announcement'
    TICKET = 'ticket'
    BOOKING = 'booking'
    CHAT = 'chat'
    SYSTEM = 'system'
    OTHER = 'other'


class OtpPurpose(str, Enum):
    EMAIL_VERIFICATION = 'email_verification'
    PASSWORD_RESET = 'password_reset'
    LOGIN = 'login'
    TRANSACTION = 'transaction'


class ChatSenderRole(str, Enum):
    RESIDENT = 'resident'
    ADMIN = 'admin'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    username: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text)
    full_name: Mapped[str | None] = mapped_column(Text)
    id_number: Mapped[str | None] = mapped_column(Text)
    birth_date: Mapped[date | None] = mapped_column(Date)
    profile_picture: Mapped[str | None] = mapped_column(Text)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, 'user_role'), nullable=False, default=UserRole.GUEST, server_default='guest'
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Unit(Base):
    __tablename__ = 'units'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    unit_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    unit_type: Mapped[UnitType] = mapped_column(_enum(UnitType, 'unit_type'), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False)
    size_sqm: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    orientation: Mapped[UnitOrientation | None] = mapped_column(_enum(UnitOrientation, 'unit_orientation'))
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    weekly_rent: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    yearly_rent: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    deposit_required: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0'
    )
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list, server_default='[]')
    floor_plan_url: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[UnitStatus] = mapped_column(
        _enum(UnitStatus, 'unit_status'), nullable=False, default=UnitStatus.AVAILABLE, server_default='available'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UnitPhoto(Base):
    __tablename__ = 'unit_photos'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    unit_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    photo_url: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Resident(Base):
    __tablename__ = 'residents'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    unit_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('units.id', ondelete='SET NULL'))
    emergency_contact_name: Mapped[str | None] = mapped_column(Text)
    emergency_contact_phone: Mapped[str | None] = mapped_column(Text)
    move_in_date: Mapped[date | None] = mapped_column(Date)
    contract_start: Mapped[date | None] = mapped_column(Date)
    contract_end: Mapped[date | None] = mapped_column(Date)
    status: Mapped[ResidentStatus] = mapped_column(
        _enum(ResidentStatus, 'resident_status'), nullable=False, default=ResidentStatus.PENDING, server_default='pending'
    )
    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Admin(Base):
    __tablename__ = 'admins'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    admin_role: Mapped[AdminRole] = mapped_column(
        _enum(AdminRole, 'admin_role'), nullable=False, default=AdminRole.ADMIN, server_default='admin'
    )
    permissions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Payment(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='payments_total_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    resident_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('residents.id', ondelete='CASCADE'), nullable=False)
    unit_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('units.id', ondelete='SET NULL'))
    payment_type: Mapped[PaymentType] = mapped_column(_enum(PaymentType, 'payment_type'), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    admin_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    penalty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, 'payment_status'), nullable=False, default=PaymentStatus.PENDING, server_default='pending'
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentTransaction(Base):
    __tablename__ = 'payment_transactions'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    payment_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    gateway_order_id: Mapped[str | None] = mapped_column(String(64))
    gateway_transaction_id: Mapped[str | None] = mapped_column(Text)
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, 'payment_method'), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum(TransactionStatus, 'transaction_status'),
        nullable=False,
        default=TransactionStatus.PENDING,
        server_default='pending',
    )
    gateway_response: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    payment_proof_url: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UnitBooking(Base):
    __tablename__ = 'unit_bookings'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    resident_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('residents.id', ondelete='CASCADE'), nullable=False)
    unit_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('units.id'), nullable=False)
    booking_duration_type: Mapped[BookingDurationType] = mapped_column(
        _enum(BookingDurationType, 'booking_duration_type'), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    admin_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_status: Mapped[UnitBookingPaymentStatus] = mapped_column(
        _enum(UnitBookingPaymentStatus, 'unit_booking_payment_status'),
        nullable=False,
        default=UnitBookingPaymentStatus.PENDING,
        server_default='pending',
    )
    status: Mapped[UnitBookingStatus] = mapped_column(
        _enum(UnitBookingStatus, 'unit_booking_status'),
        nullable=False,
        default=UnitBookingStatus.PENDING,
        server_default='pending',
    )
    payment_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('payments.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Facility(Base):
    __tablename__ = 'facilities'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[FacilityCategory] = mapped_column(_enum(FacilityCategory, 'facility_category'), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    location: Mapped[str | None] = mapped_column(Text)
    operational_start: Mapped[time | None] = mapped_column(Time)
    operational_end: Mapped[time | None] = mapped_column(Time)
    booking_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    max_booking_duration_hours: Mapped[int | None] = mapped_column(Integer)
    rules: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    status: Mapped[FacilityStatus] = mapped_column(
        _enum(FacilityStatus, 'facility_status'), nullable=False, default=FacilityStatus.ACTIVE, server_default='active'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FacilityPhoto(Base):
    __tablename__ = 'facility_photos'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    facility_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('facilities.id', ondelete='CASCADE'), nullable=False)
    photo_url: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FacilityBooking(Base):
    __tablename__ = 'facility_bookings'
    __table_args__ = (
        CheckConstraint('duration_hours > 0', name='facility_bookings_duration_positive_ck'),
        CheckConstraint('number_of_guests > 0', name='facility_bookings_guests_positive_ck'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    resident_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('residents.id', ondelete='CASCADE'), nullable=False)
    facility_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('facilities.id'), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    booking_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus, 'booking_status'), nullable=False, default=BookingStatus.PENDING, server_default='pending'
    )
    notes: Mapped[str | None] = mapped_column(Text)
    payment_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('payments.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Ticket(Base):
    __tablename__ = 'tickets'
    __table_args__ = (
        CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='tickets_rating_range_ck'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    resident_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('residents.id', ondelete='CASCADE'), nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    category: Mapped[TicketCategory] = mapped_column(_enum(TicketCategory, 'ticket_category'), nullable=False)
    priority: Mapped[TicketPriority] = mapped_column(
        _enum(TicketPriority, 'ticket_priority'), nullable=False, default=TicketPriority.MEDIUM, server_default='medium'
    )
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        _enum(TicketStatus, 'ticket_status'), nullable=False, default=TicketStatus.OPEN, server_default='open'
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rating: Mapped[int | None] = mapped_column(Integer)
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TicketUpdate(Base):
    __tablename__ = 'ticket_updates'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    status_change: Mapped[StatusChange | None] = mapped_column(_enum(StatusChange, 'status_change'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TicketAttachment(Base):
    __tablename__ = 'ticket_attachments'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str | None] = mapped_column(Text)
    file_name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Announcement(Base):
    __tablename__ = 'announcements'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    created_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[AnnouncementCategory] = mapped_column(
        _enum(AnnouncementCategory, 'announcement_category'),
        nullable=False,
        default=AnnouncementCategory.GENERAL,
        server_default='general',
    )
    publish_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_important: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    target_audience: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    status: Mapped[AnnouncementStatus] = mapped_column(
        _enum(AnnouncementStatus, 'announcement_status'),
        nullable=False,
        default=AnnouncementStatus.DRAFT,
        server_default='draft',
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AnnouncementRead(Base):
    __tablename__ = 'announcement_reads'
    __table_args__ = (
        UniqueConstraint('announcement_id', 'user_id', name='announcement_reads_announcement_user_key'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    announcement_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('announcements.id', ondelete='CASCADE'), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GalleryPhoto(Base):
    __tablename__ = 'gallery_photos'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    uploaded_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    photo_url: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(Text)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list, server_default='[]')
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ActivityLog(Base):
    __tablename__ = 'activity_logs'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    action_type: Mapped[ActionType] = mapped_column(_enum(ActionType, 'action_type'), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(Text)
    entity_id: Mapped[str | None] = mapped_column(Text)
    old_values: Mapped[dict | None] = mapped_column(JSON)
    new_values: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(IpAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    ip_address: Mapped[str | None] = mapped_column(IpAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        _enum(NotificationType, 'notification_type'), nullable=False, default=NotificationType.SYSTEM, server_default='system'
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SystemSetting(Base):
    __tablename__ = 'system_settings'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    value: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OtpVerification(Base):
    __tablename__ = 'otp_verifications'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    email: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False)
    otp_code: Mapped[str] = mapped_column(String(16), nullable=False)
    purpose: Mapped[OtpPurpose] = mapped_column(_enum(OtpPurpose, 'otp_purpose'), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(IpAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    device_info: Mapped[str | None] = mapped_column(Text)
    last_activity: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ChatRoom(Base):
    __tablename__ = 'chat_rooms'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    resident_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('residents.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    admin_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'))
    last_message: Mapped[str | None] = mapped_column(Text)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ChatMessage(Base):
    __tablename__ = 'chat_messages'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    room_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('chat_rooms.id', ondelete='CASCADE'), nullable=False)
    sender_user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    sender_name: Mapped[str] = mapped_column(Text, nullable=False)
    sender_role: Mapped[ChatSenderRole] = mapped_column(_enum(ChatSenderRole, 'chat_sender_role'), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ContactMessage(Base):
    __tablename__ = 'contact_messages'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str | None] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    handled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
