from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    Resident,
    ResidentStatus,
    TransactionStatus,
    Unit,
    UnitBookingPaymentStatus,
    UnitBookingStatus,
    UnitStatus,
    User,
)
from app.services.audit_service import json_safe
from app.services.payment_gateway import ChargeRequest, PaymentGateway, map_gateway_status
from app.services.reference_numbers import INVOICE_PREFIX, TRANSACTION_PREFIX, generate_reference_number
from app.services.table_service import fetch_from_table, insert_into_table, row_to_dict, update_in_table

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = {PaymentStatus.PENDING.value, PaymentStatus.OVERDUE.value}
_RESULT_BY_TRANSACTION_STATUS = {
    TransactionStatus.SUCCESS: 'success',
    TransactionStatus.PENDING: 'pending',
    TransactionStatus.PROCESSING: 'pending',
    TransactionStatus.FAILED: 'failed',
    TransactionStatus.CANCELLED: 'failed',
    TransactionStatus.EXPIRED: 'failed',
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def calculate_total(
    amount: Decimal,
    admin_fee: Decimal = Decimal('0'),
    discount: Decimal = Decimal('0'),
    penalty: Decimal = Decimal('0'),
) -> Decimal:
    for label, value in (('Amount', amount), ('Admin fee', admin_fee), ('Discount', discount), ('Penalty', penalty)):
        if value < 0:
            raise ValueError(f'{label} cannot be negative')
    total = amount + admin_fee - discount + penalty
    if total < 0:
        raise ValueError('Discount cannot exceed the amount due')
    return total


def get_payment(db: Session, payment_id: int) -> dict | None:
    rows = fetch_from_table(db, 'payments', filters={'id': payment_id})
    return rows[0] if rows else None


def create_payment(
    db: Session,
    *,
    resident_id: int,
    unit_id: int | None,
    payment_type: PaymentType,
    amount: Decimal,
    due_date: date,
    admin_fee: Decimal = Decimal('0'),
    discount: Decimal = Decimal('0'),
    penalty: Decimal = Decimal('0'),
    notes: str | None = None,
) -> dict:
    if not fetch_from_table(db, 'residents', columns=['id'], filters={'id': resident_id}):
        raise ValueError('Resident not found')
    if due_date is None:
        raise ValueError('Due date is required')
    total = calculate_total(amount, admin_fee, discount, penalty)
    return insert_into_table(
        db,
        'payments',
        {
            'invoice_number': generate_reference_number(INVOICE_PREFIX),
            'resident_id': resident_id,
            'unit_id': unit_id,
            'payment_type': payment_type,
            'amount': amount,
            'admin_fee': admin_fee,
            'discount': discount,
            'penalty': penalty,
            'total_amount': total,
            'due_date': due_date,
            'status': PaymentStatus.PENDING,
            'notes': notes,
        },
    )


def list_payments(
    db: Session,
    *,
    status: PaymentStatus | None = None,
    payment_type: PaymentType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
) -> list[dict]:
    payments = Payment.__table__
    query = (
        select(payments, User.full_name.label('resident_name'), Unit.unit_number)
        .join(Resident, Resident.id == payments.c.resident_id)
        .join(User, User.id == Resident.user_id)
        .outerjoin(Unit, Unit.id == payments.c.unit_id)
    )
    if status is not None:
        query = query.where(payments.c.status == status.value)
    if payment_type is not None:
        query = query.where(payments.c.payment_type == payment_type.value)
    if date_from is not None:
        query = query.where(payments.c.due_date >= date_from)
    if date_to is not None:
        query = query.where(payments.c.due_date <= date_to)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.where(or_(payments.c.invoice_number.ilike(pattern), User.full_name.ilike(pattern)))
    rows = db.execute(query.order_by(payments.c.created_at.desc(), payments.c.id.desc())).all()
    return [row_to_dict(row) for row in rows]


def list_resident_payments(db: Session, resident_id: int, *, status: PaymentStatus | None = None) -> list[dict]:
    return fetch_from_table(
        db,
        'payments',
        filters={'resident_id': resident_id, 'status': status},
        order_by='due_date',
        ascending=False,
    )


def is_overdue(due_date: date, status: str | PaymentStatus, today: date) -> bool:
    status_value = status.value if isinstance(status, PaymentStatus) else status
    return status_value == PaymentStatus.PENDING.value and due_date < today


def mark_overdue_payments(db: Session, today: date) -> int:
    # Bulk update outside the change feed; residents are not notified.
    result = db.execute(
        update(Payment)
        .where(Payment.status == PaymentStatus.PENDING, Payment.due_date < today)
        .values(status=PaymentStatus.OVERDUE, updated_at=_now())
    )
    return result.rowcount


def _linked_unit_booking(db: Session, payment_id: int) -> dict | None:
    rows = fetch_from_table(db, 'unit_bookings', filters={'payment_id': payment_id}, limit=1)
    return rows[0] if rows else None


def _confirm_unit_booking(db: Session, booking: dict) -> None:
    update_in_table(
        db,
        'unit_bookings',
        booking['id'],
        {'payment_status': UnitBookingPaymentStatus.PAID, 'status': UnitBookingStatus.CONFIRMED},
    )
    update_in_table(db, 'units', booking['unit_id'], {'status': UnitStatus.OCCUPIED})
    update_in_table(
        db,
        'residents',
        booking['resident_id'],
        {
            'unit_id': booking['unit_id'],
            'status': ResidentStatus.ACTIVE,
            'contract_start': booking['start_date'],
            'contract_end': booking['end_date'],
            'move_in_date': booking['start_date'],
        },
    )


def _release_unit_booking(db: Session, booking: dict) -> None:
    update_in_table(
        db,
        'unit_bookings',
        booking['id'],
        {'payment_status': UnitBookingPaymentStatus.FAILED, 'status': UnitBookingStatus.CANCELLED},
    )
    units = fetch_from_table(db, 'units', columns=['status'], filters={'id': booking['unit_id']})
    if units and units[0]['status'] == UnitStatus.RESERVED.value:
        update_in_table(db, 'units', booking['unit_id'], {'status': UnitStatus.AVAILABLE})


def update_payment_status(
    db: Session,
    payment_id: int,
    status: PaymentStatus,
    payment_date: datetime | None = None,
) -> dict:
    current = get_payment(db, payment_id)
    if current is None:
        raise ValueError('Payment not found')

    updates: dict = {'status': status}
    if status == PaymentStatus.PAID:
        updates['payment_date'] = payment_date or _now()
    payment = update_in_table(db, 'payments', payment_id, updates)

    booking = _linked_unit_booking(db, payment_id)
    if booking is not None and booking['status'] == UnitBookingStatus.PENDING.value:
        if status == PaymentStatus.PAID:
            _confirm_unit_booking(db, booking)
        elif status == PaymentStatus.CANCELLED:
            _release_unit_booking(db, booking)

    if current['payment_type'] == PaymentType.FACILITY_BOOKING.value and status == PaymentStatus.PAID:
        for facility_booking in fetch_from_table(db, 'facility_bookings', filters={'payment_id': payment_id}):
            if facility_booking['status'] == 'pending':
                update_in_table(db, 'facility_bookings', facility_booking['id'], {'status': 'confirmed'})
    return payment


def get_transaction_by_order_id(db: Session, order_id: str) -> dict | None:
    rows = fetch_from_table(db, 'payment_transactions', filters={'gateway_order_id': order_id}, limit=1)
    return rows[0] if rows else None


def start_payment(
    db: Session,
    *,
    payment: dict,
    resident_id: int,
    payment_method: PaymentMethod,
    gateway: PaymentGateway,
    customer: dict | None = None,
) -> str:
    if payment['resident_id'] != resident_id:
        raise PermissionError('Payment belongs to another resident')
    if payment['status'] not in PAYABLE_STATUSES:
        raise ValueError(f'Invoice {payment["invoice_number"]} is already {payment["status"]}')

    transaction_id = generate_reference_number(TRANSACTION_PREFIX)
    transaction = insert_into_table(
        db,
        'payment_transactions',
        {
            'payment_id': payment['id'],
            'transaction_id': transaction_id,
            'gateway_order_id': transaction_id,
            'payment_method': payment_method,
            'amount': payment['total_amount'],
            'status': TransactionStatus.PENDING,
        },
    )

    customer = customer or {}
    charge = gateway.create_charge(
        ChargeRequest(
            order_id=transaction_id,
            gross_amount=Decimal(payment['total_amount']),
            item_name=f'{payment["payment_type"]} {payment["invoice_number"]}',
            customer_name=customer.get('full_name'),
            customer_email=customer.get('email'),
            customer_phone=customer.get('phone'),
            finish_url=f'{settings.public_base_url_normalized}/payment/finish',
        )
    )
    update_in_table(
        db,
        'payment_transactions',
        transaction['id'],
        {'status': TransactionStatus.PROCESSING, 'gateway_response': json_safe(charge.raw)},
    )
    logger.info('Started payment %s as transaction %s', payment['invoice_number'], transaction_id)
    return charge.redirect_url


def apply_gateway_status(db: Session, *, order_id: str, gateway_status: str, raw: dict | None = None) -> str:
    transaction = get_transaction_by_order_id(db, order_id)
    if transaction is None:
        raise ValueError(f'Unknown payment order: {order_id}')

    status = map_gateway_status(gateway_status)
    updates: dict = {'status': status, 'gateway_response': json_safe(raw or {})}
    if raw and raw.get('transaction_id'):
        updates['gateway_transaction_id'] = str(raw['transaction_id'])
    if status == TransactionStatus.SUCCESS:
        updates['paid_at'] = transaction['paid_at'] or _now()
    if transaction['status'] != TransactionStatus.SUCCESS.value:
        update_in_table(db, 'payment_transactions', transaction['id'], updates)

    payment = get_payment(db, transaction['payment_id'])
    if status == TransactionStatus.SUCCESS and payment['status'] != PaymentStatus.PAID.value:
        update_payment_status(db, payment['id'], PaymentStatus.PAID)
    elif transaction['status'] == TransactionStatus.SUCCESS.value:
        status = TransactionStatus.SUCCESS
    return _RESULT_BY_TRANSACTION_STATUS[status]


def list_payment_transactions(db: Session, payment_id: int) -> list[dict]:
    return fetch_from_table(
        db, 'payment_transactions', filters={'payment_id': payment_id}, order_by='created_at', ascending=False
    )
