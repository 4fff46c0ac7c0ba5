from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.auth import Principal, Role
from app.models import ChatMessage, ChatRoom, ChatSenderRole, Resident, Unit, User
from app.services.table_service import fetch_from_table, insert_into_table, row_to_dict, update_in_table

MAX_MESSAGE_LENGTH = 2000
LAST_MESSAGE_PREVIEW_LENGTH = 120


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_chat_room(db: Session, room_id: int) -> dict | None:
    rows = fetch_from_table(db, 'chat_rooms', filters={'id': room_id})
    return rows[0] if rows else None


def get_or_create_chat_room(db: Session, resident_id: int) -> dict:
    rows = fetch_from_table(db, 'chat_rooms', filters={'resident_id': resident_id})
    if rows:
        return rows[0]
    return insert_into_table(db, 'chat_rooms', {'resident_id': resident_id})


def send_chat_message(db: Session, *, room_id: int, sender: Principal, message: str) -> dict:
    message = (message or '').strip()
    if not message:
        raise ValueError('Message cannot be empty')
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValueError(f'Message cannot be longer than {MAX_MESSAGE_LENGTH} characters')

    room = get_chat_room(db, room_id)
    if room is None:
        raise ValueError('Chat room not found')

    if sender.role == Role.ADMIN:
        sender_role = ChatSenderRole.ADMIN
    elif sender.resident_id is not None and sender.resident_id == room['resident_id']:
        sender_role = ChatSenderRole.RESIDENT
    else:
        raise PermissionError('Chat room belongs to another resident')

    chat_message = insert_into_table(
        db,
        'chat_messages',
        {
            'room_id': room_id,
            'sender_user_id': sender.id,
            'sender_name': sender.display_name,
            'sender_role': sender_role,
            'message': message,
        },
    )
    room_updates = {'last_message': message[:LAST_MESSAGE_PREVIEW_LENGTH], 'last_message_at': _now()}
    if sender_role == ChatSenderRole.ADMIN and room['admin_user_id'] is None:
        room_updates['admin_user_id'] = sender.id
    update_in_table(db, 'chat_rooms', room_id, room_updates)
    return chat_message


def list_chat_messages(db: Session, room_id: int, *, after_id: int | None = None, limit: int = 50) -> list[dict]:
    table = ChatMessage.__table__
    query = select(table).where(table.c.room_id == room_id)
    if after_id is not None:
        rows = db.execute(query.where(table.c.id > after_id).order_by(table.c.id.asc()).limit(limit)).all()
        return [row_to_dict(row) for row in rows]
    rows = db.execute(query.order_by(table.c.id.desc()).limit(limit)).all()
    return [row_to_dict(row) for row in reversed(rows)]


def mark_messages_as_read(db: Session, room_id: int, reader_user_id: int) -> int:
    result = db.execute(
        update(ChatMessage)
        .where(
            ChatMessage.room_id == room_id,
            ChatMessage.sender_user_id != reader_user_id,
            ChatMessage.is_read.is_(False),
        )
        .values(is_read=True, read_at=_now())
    )
    return result.rowcount


def count_unread_for_user(db: Session, room_id: int, user_id: int) -> int:
    return db.execute(
        select(func.count(ChatMessage.id)).where(
            ChatMessage.room_id == room_id,
            ChatMessage.sender_user_id != user_id,
            ChatMessage.is_read.is_(False),
        )
    ).scalar_one()


def list_chat_rooms(db: Session) -> list[dict]:
    unread = (
        select(ChatMessage.room_id, func.count(ChatMessage.id).label('unread_count'))
        .where(ChatMessage.sender_role == ChatSenderRole.RESIDENT, ChatMessage.is_read.is_(False))
        .group_by(ChatMessage.room_id)
        .subquery()
    )
    rows = db.execute(
        select(
            ChatRoom.id,
            ChatRoom.resident_id,
            ChatRoom.admin_user_id,
            ChatRoom.last_message,
            ChatRoom.last_message_at,
            User.full_name.label('resident_name'),
            Unit.unit_number,
            func.coalesce(unread.c.unread_count, 0).label('unread_count'),
        )
        .join(Resident, Resident.id == ChatRoom.resident_id)
        .join(User, User.id == Resident.user_id)
        .outerjoin(Unit, Unit.id == Resident.unit_id)
        .outerjoin(unread, unread.c.room_id == ChatRoom.id)
        .order_by(ChatRoom.last_message_at.desc().nulls_last(), ChatRoom.id.desc())
    ).all()
    return [row_to_dict(row) for row in rows]
