from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import (
    BookingStatus,
    FacilityBooking,
    Payment,
    PaymentStatus,
    Resident,
    ResidentStatus,
    Ticket,
    TicketStatus,
)
from app.services import announcement_service, facility_service, notification_service, payment_service, resident_service
from app.services.unit_service import count_units_by_status

OPEN_TICKET_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)
RECENT_PAYMENTS_LIMIT = 5


def _invoice_totals(db: Session, status: PaymentStatus, *, resident_id: int | None = None) -> tuple[int, Decimal]:
    query = select(func.count(Payment.id), func.coalesce(func.sum(Payment.total_amount), 0)).where(Payment.status == status)
    if resident_id is not None:
        query = query.where(Payment.resident_id == resident_id)
    count, total = db.execute(query).one()
    return count, Decimal(str(total))


def _overdue_pending(db: Session, today: date, *, resident_id: int | None = None) -> tuple[int, Decimal]:
    query = select(func.count(Payment.id), func.coalesce(func.sum(Payment.total_amount), 0)).where(
        Payment.status == PaymentStatus.PENDING, Payment.due_date < today
    )
    if resident_id is not None:
        query = query.where(Payment.resident_id == resident_id)
    count, total = db.execute(query).one()
    return count, Decimal(str(total))


def admin_summary(db: Session, today: date) -> dict:
    pending_count, pending_amount = _invoice_totals(db, PaymentStatus.PENDING)
    overdue_count, overdue_amount = _invoice_totals(db, PaymentStatus.OVERDUE)
    # Past-due invoices still marked pending count as overdue until the bulk flip runs.
    late_count, late_amount = _overdue_pending(db, today)

    active_residents = db.execute(
        select(func.count(Resident.id)).where(Resident.status == ResidentStatus.ACTIVE)
    ).scalar_one()
    open_tickets = db.execute(
        select(func.count(Ticket.id)).where(Ticket.status.in_(OPEN_TICKET_STATUSES))
    ).scalar_one()
    pending_bookings = db.execute(
        select(func.count(FacilityBooking.id)).where(FacilityBooking.status == BookingStatus.PENDING)
    ).scalar_one()

    return {
        'units_by_status': count_units_by_status(db),
        'active_residents': active_residents,
        'pending_invoices': pending_count - late_count,
        'pending_amount': pending_amount - late_amount,
        'overdue_invoices': overdue_count + late_count,
        'overdue_amount': overdue_amount + late_amount,
        'open_tickets': open_tickets,
        'pending_facility_bookings': pending_bookings,
        'recent_payments': payment_service.list_payments(db)[:RECENT_PAYMENTS_LIMIT],
    }


def resident_summary(db: Session, resident_id: int, user_id: int, today: date) -> dict:
    resident = resident_service.get_resident_with_unit(db, resident_id)
    outstanding = [
        payment
        for payment in payment_service.list_resident_payments(db, resident_id)
        if payment['status'] in payment_service.PAYABLE_STATUSES
    ]
    upcoming = [
        booking
        for booking in facility_service.list_resident_bookings(db, resident_id)
        if booking['booking_date'] >= today and booking['status'] in facility_service.CANCELLABLE_STATUSES
    ]
    open_tickets = db.execute(
        select(func.count(Ticket.id)).where(Ticket.resident_id == resident_id, Ticket.status.in_(OPEN_TICKET_STATUSES))
    ).scalar_one()

    return {
        'resident': resident,
        'unit': resident['unit'] if resident else None,
        'outstanding_invoices': outstanding,
        'outstanding_total': sum((Decimal(payment['total_amount']) for payment in outstanding), Decimal('0')),
        'overdue_invoices': [
            payment for payment in outstanding if payment_service.is_overdue(payment['due_date'], payment['status'], today)
            or payment['status'] == PaymentStatus.OVERDUE.value
        ],
        'open_tickets': open_tickets,
        'upcoming_bookings': sorted(upcoming, key=lambda booking: (booking['booking_date'], booking['start_time'])),
        'unread_announcements': announcement_service.count_unread(db, user_id),
        'unread_notifications': notification_service.get_unread_notification_count(db, user_id),
    }
