from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import (
    Admin,
    Resident,
    StatusChange,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
    User,
)
from app.services.reference_numbers import TICKET_PREFIX, generate_reference_number
from app.services.table_service import fetch_from_table, insert_into_table, row_to_dict, update_in_table

RATEABLE_STATUSES = {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}
_STATUS_CHANGE_BY_STATUS = {
    TicketStatus.OPEN: StatusChange.OPENED,
    TicketStatus.IN_PROGRESS: StatusChange.IN_PROGRESS,
    TicketStatus.RESOLVED: StatusChange.RESOLVED,
    TicketStatus.CLOSED: StatusChange.CLOSED,
    TicketStatus.CANCELLED: StatusChange.CANCELLED,
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_ticket(db: Session, ticket_id: int) -> dict | None:
    rows = fetch_from_table(db, 'tickets', filters={'id': ticket_id})
    return rows[0] if rows else None


def create_ticket(
    db: Session,
    *,
    resident_id: int,
    category: TicketCategory,
    priority: TicketPriority,
    subject: str,
    description: str,
    attachment_url: str | None = None,
) -> dict:
    subject = (subject or '').strip()
    description = (description or '').strip()
    if not subject:
        raise ValueError('Subject is required')
    if not description:
        raise ValueError('Description is required')
    if category is None:
        raise ValueError('Category is required')

    ticket = insert_into_table(
        db,
        'tickets',
        {
            'ticket_number': generate_reference_number(TICKET_PREFIX),
            'resident_id': resident_id,
            'category': category,
            'priority': priority or TicketPriority.MEDIUM,
            'subject': subject,
            'description': description,
            'status': TicketStatus.OPEN,
        },
    )
    if attachment_url:
        insert_into_table(
            db,
            'ticket_attachments',
            {
                'ticket_id': ticket['id'],
                'file_url': attachment_url.strip(),
                'file_name': attachment_url.strip().rsplit('/', 1)[-1] or None,
            },
        )
    return ticket


def list_resident_tickets(
    db: Session,
    resident_id: int,
    status: TicketStatus | None = None,
    category: TicketCategory | None = None,
) -> list[dict]:
    return fetch_from_table(
        db,
        'tickets',
        filters={'resident_id': resident_id, 'status': status, 'category': category},
        order_by='created_at',
        ascending=False,
    )


def list_all_tickets(
    db: Session,
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
) -> list[dict]:
    tickets = Ticket.__table__
    query = (
        select(tickets, User.full_name.label('resident_name'))
        .join(Resident, Resident.id == tickets.c.resident_id)
        .join(User, User.id == Resident.user_id)
    )
    if status is not None:
        query = query.where(tickets.c.status == status.value)
    if priority is not None:
        query = query.where(tickets.c.priority == priority.value)
    rows = db.execute(query.order_by(tickets.c.created_at.desc(), tickets.c.id.desc())).all()
    return [row_to_dict(row) for row in rows]


def get_ticket_with_updates(db: Session, ticket_id: int, *, include_internal: bool) -> tuple[dict, list[dict], list[dict]]:
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        raise ValueError('Ticket not found')

    updates_table = TicketUpdate.__table__
    query = (
        select(updates_table, User.full_name.label('author_name'), User.username.label('author_username'))
        .join(User, User.id == updates_table.c.user_id)
        .where(updates_table.c.ticket_id == ticket_id)
    )
    if not include_internal:
        query = query.where(updates_table.c.is_internal.is_(False))
    updates = [row_to_dict(row) for row in db.execute(query.order_by(updates_table.c.created_at.asc(), updates_table.c.id.asc())).all()]
    attachments = fetch_from_table(db, 'ticket_attachments', filters={'ticket_id': ticket_id}, order_by='created_at')
    return ticket, updates, attachments


def add_ticket_update(
    db: Session,
    *,
    ticket_id: int,
    user_id: int,
    message: str,
    is_internal: bool = False,
    status_change: StatusChange | None = None,
) -> dict:
    message = (message or '').strip()
    if not message:
        raise ValueError('Message is required')
    if get_ticket(db, ticket_id) is None:
        raise ValueError('Ticket not found')
    return insert_into_table(
        db,
        'ticket_updates',
        {
            'ticket_id': ticket_id,
            'user_id': user_id,
            'message': message,
            'is_internal': is_internal,
            'status_change': status_change,
        },
    )


def change_ticket_status(
    db: Session,
    *,
    ticket_id: int,
    user_id: int,
    status: TicketStatus,
    note: str | None = None,
) -> dict:
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        raise ValueError('Ticket not found')
    if ticket['status'] == status.value:
        raise ValueError(f'Ticket is already {status.value}')

    values: dict = {'status': status}
    note = (note or '').strip() or None
    if status == TicketStatus.RESOLVED:
        values['resolved_at'] = _now()
        if note:
            values['resolution_notes'] = note
    updated = update_in_table(db, 'tickets', ticket_id, values)

    label = status.value.replace('_', ' ')
    insert_into_table(
        db,
        'ticket_updates',
        {
            'ticket_id': ticket_id,
            'user_id': user_id,
            'message': note or f'Status changed to {label}',
            'is_internal': False,
            'status_change': _STATUS_CHANGE_BY_STATUS[status],
        },
    )
    return updated


def cancel_resident_ticket(db: Session, *, ticket_id: int, resident_id: int, user_id: int) -> dict:
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        raise ValueError('Ticket not found')
    if ticket['resident_id'] != resident_id:
        raise PermissionError('Ticket belongs to another resident')
    if ticket['status'] != TicketStatus.OPEN.value:
        raise ValueError('Only open tickets can be cancelled')
    return change_ticket_status(db, ticket_id=ticket_id, user_id=user_id, status=TicketStatus.CANCELLED)


def assign_ticket(db: Session, ticket_id: int, user_id: int | None) -> dict:
    if get_ticket(db, ticket_id) is None:
        raise ValueError('Ticket not found')
    if user_id is not None:
        is_admin = db.execute(select(Admin.id).where(Admin.user_id == user_id)).scalar_one_or_none()
        if is_admin is None:
            raise ValueError('Tickets can only be assigned to staff accounts')
    return update_in_table(db, 'tickets', ticket_id, {'assigned_to': user_id})


def rate_ticket(db: Session, *, ticket_id: int, resident_id: int, rating: int) -> dict:
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        raise ValueError('Ticket not found')
    if ticket['resident_id'] != resident_id:
        raise PermissionError('Ticket belongs to another resident')
    if ticket['status'] not in RATEABLE_STATUSES:
        raise ValueError('Only resolved or closed tickets can be rated')
    if rating is None or not 1 <= rating <= 5:
        raise ValueError('Rating must be between 1 and 5')
    return update_in_table(db, 'tickets', ticket_id, {'rating': rating})


def list_staff(db: Session) -> list[dict]:
    rows = db.execute(
        select(User.id, User.full_name, User.username).join(Admin, Admin.user_id == User.id).order_by(User.full_name.asc())
    ).all()
    return [row_to_dict(row) for row in rows]
