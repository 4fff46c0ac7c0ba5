from __future__ import annotations

from sqlalchemy.orm import Session

from app.forms import form_str, is_valid_email, optional_str
from app.services.table_service import fetch_from_table, insert_into_table, update_in_table

MAX_MESSAGE_LENGTH = 5000


def submit_contact_message(db: Session, form) -> dict:
    name = form_str(form, 'name')
    email = form_str(form, 'email')
    message = form_str(form, 'message')
    errors: list[str] = []
    if not name:
        errors.append('Name is required')
    if not email:
        errors.append('Email is required')
    elif not is_valid_email(email):
        errors.append('Email address is not valid')
    if not message:
        errors.append('Message is required')
    elif len(message) > MAX_MESSAGE_LENGTH:
        errors.append(f'Message cannot be longer than {MAX_MESSAGE_LENGTH} characters')
    if errors:
        raise ValueError('; '.join(errors))

    return insert_into_table(
        db,
        'contact_messages',
        {
            'name': name,
            'email': email.lower(),
            'phone': optional_str(form, 'phone'),
            'subject': optional_str(form, 'subject'),
            'message': message,
        },
    )


def list_contact_messages(db: Session, *, handled: bool | None = None) -> list[dict]:
    return fetch_from_table(
        db, 'contact_messages', filters={'handled': handled}, order_by='created_at', ascending=False
    )


def mark_contact_message_handled(db: Session, message_id: int, handled: bool = True) -> dict:
    return update_in_table(db, 'contact_messages', message_id, {'handled': handled})
