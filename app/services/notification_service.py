from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.models import ActionType, Admin, ChatRoom, Notification, NotificationType, Resident, ResidentStatus
from app.services.audit_service import json_safe, log_audit
from app.services.table_service import ChangeEvent, fetch_from_table, insert_into_table, subscribe_to_table

logger = logging.getLogger(__name__)

_unsubscribers: list = []


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def create_notification(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    data: dict | None = None,
) -> dict:
    return insert_into_table(
        db,
        'notifications',
        {
            'user_id': user_id,
            'title': title,
            'message': message,
            'type': type,
            'data': json_safe(data or {}),
        },
    )


def list_user_notifications(db: Session, user_id: int, *, limit: int = 20) -> list[dict]:
    return fetch_from_table(
        db,
        'notifications',
        filters={'user_id': user_id},
        order_by='created_at',
        ascending=False,
        limit=limit,
    )


def get_unread_notification_count(db: Session, user_id: int) -> int:
    return db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.is_read.is_(False))
    ).scalar_one()


def mark_notification_as_read(db: Session, *, notification_id: int, user_id: int) -> None:
    result = db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True, read_at=_now())
    )
    if result.rowcount == 0:
        raise ValueError('Notification not found')


def mark_all_notifications_as_read(db: Session, user_id: int) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=_now())
    )
    return result.rowcount


def send_email_stub(
    db: Session,
    *,
    to: str,
    subject: str,
    purpose: str,
    body: str | None = None,
    actor_user_id: int | None = None,
    ip: str | None = None,
) -> None:
    logger.info('Email stub to=%s purpose=%s subject=%r', to, purpose, subject)
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=ActionType.CREATE,
        entity_type='email',
        entity_id=None,
        ip=ip,
        new_values={'to': to, 'subject': subject, 'purpose': purpose, 'body': body, 'status': 'STUB_SENT'},
    )


def _resident_user_id(db: Session, resident_id: int | None) -> int | None:
    if resident_id is None:
        return None
    return db.execute(select(Resident.user_id).where(Resident.id == resident_id)).scalar_one_or_none()


def _status_changed(change: ChangeEvent, column: str = 'status') -> bool:
    if change.event_type != 'UPDATE' or not change.old or not change.new:
        return False
    return change.old.get(column) != change.new.get(column)


def _on_payment_change(change: ChangeEvent, db: Session) -> None:
    payment = change.new
    if change.event_type == 'INSERT':
        title = 'New invoice'
        message = f'Invoice {payment["invoice_number"]} of {payment["total_amount"]} is due {payment["due_date"]}.'
    elif _status_changed(change):
        title = 'Payment update'
        message = f'Invoice {payment["invoice_number"]} is now {payment["status"]}.'
    else:
        return
    user_id = _resident_user_id(db, payment['resident_id'])
    if user_id is None:
        return
    create_notification(
        db,
        user_id=user_id,
        title=title,
        message=message,
        type=NotificationType.PAYMENT,
        data={'payment_id': payment['id'], 'status': payment['status']},
    )


def _on_facility_booking_change(change: ChangeEvent, db: Session) -> None:
    if not _status_changed(change):
        return
    booking = change.new
    user_id = _resident_user_id(db, booking['resident_id'])
    if user_id is None:
        return
    create_notification(
        db,
        user_id=user_id,
        title='Facility booking update',
        message=f'Booking {booking["booking_number"]} is now {booking["status"]}.',
        type=NotificationType.BOOKING,
        data={'booking_id': booking['id'], 'status': booking['status']},
    )


def _on_ticket_update(change: ChangeEvent, db: Session) -> None:
    if change.event_type != 'INSERT' or change.new.get('is_internal'):
        return
    ticket_update = change.new
    tickets = fetch_from_table(
        db, 'tickets', columns=['id', 'ticket_number', 'resident_id'], filters={'id': ticket_update['ticket_id']}
    )
    if not tickets:
        return
    ticket = tickets[0]
    user_id = _resident_user_id(db, ticket['resident_id'])
    if user_id is None or user_id == ticket_update['user_id']:
        return
    create_notification(
        db,
        user_id=user_id,
        title='Ticket update',
        message=f'Ticket {ticket["ticket_number"]} has a new update.',
        type=NotificationType.TICKET,
        data={'ticket_id': ticket['id'], 'status_change': ticket_update.get('status_change')},
    )


def _on_chat_message(change: ChangeEvent, db: Session) -> None:
    if change.event_type != 'INSERT':
        return
    chat_message = change.new
    room = db.execute(
        select(ChatRoom.id, ChatRoom.resident_id, ChatRoom.admin_user_id).where(ChatRoom.id == chat_message['room_id'])
    ).one_or_none()
    if room is None:
        return

    if chat_message['sender_role'] == 'admin':
        recipients = [_resident_user_id(db, room.resident_id)]
    elif room.admin_user_id is not None:
        recipients = [room.admin_user_id]
    else:
        recipients = db.execute(select(Admin.user_id)).scalars().all()

    for user_id in recipients:
        if user_id is None or user_id == chat_message['sender_user_id']:
            continue
        create_notification(
            db,
            user_id=user_id,
            title=f'New message from {chat_message["sender_name"]}',
            message=chat_message['message'][:140],
            type=NotificationType.CHAT,
            data={'room_id': room.id, 'message_id': chat_message['id']},
        )


def _on_announcement_change(change: ChangeEvent, db: Session) -> None:
    announcement = change.new
    if announcement is None or announcement.get('status') != 'published':
        return
    if change.event_type == 'UPDATE' and change.old.get('status') == 'published':
        return
    user_ids = db.execute(
        select(Resident.user_id).where(Resident.status == ResidentStatus.ACTIVE)
    ).scalars().all()
    for user_id in user_ids:
        create_notification(
            db,
            user_id=user_id,
            title=announcement['title'],
            message=(announcement['content'] or '')[:140],
            type=NotificationType.ANNOUNCEMENT,
            data={'announcement_id': announcement['id']},
        )


def _in_own_session(handler, session_factory):
    def _callback(change: ChangeEvent) -> None:
        with session_factory() as db:
            handler(change, db)
            db.commit()

    return _callback


def register_change_listeners(session_factory=SessionLocal) -> None:
    if _unsubscribers:
        return
    handlers = {
        'payments': _on_payment_change,
        'facility_bookings': _on_facility_booking_change,
        'ticket_updates': _on_ticket_update,
        'chat_messages': _on_chat_message,
        'announcements': _on_announcement_change,
    }
    for table_name, handler in handlers.items():
        _unsubscribers.append(subscribe_to_table(table_name, _in_own_session(handler, session_factory)))


def unregister_change_listeners() -> None:
    while _unsubscribers:
        _unsubscribers.pop()()
