from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.forms import form_bool, form_str, parse_enum
from app.models import Announcement, AnnouncementCategory, AnnouncementRead, AnnouncementStatus
from app.services.table_service import (
    TableAccessError,
    delete_from_table,
    fetch_from_table,
    insert_into_table,
    row_to_dict,
    update_in_table,
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_announcements(
    db: Session,
    *,
    status: AnnouncementStatus | None = None,
    category: AnnouncementCategory | None = None,
    important_first: bool = False,
) -> list[dict]:
    table = Announcement.__table__
    query = select(table)
    if status is not None:
        query = query.where(table.c.status == status.value)
    if category is not None:
        query = query.where(table.c.category == category.value)
    ordering = [table.c.publish_date.desc(), table.c.id.desc()]
    if important_first:
        ordering.insert(0, table.c.is_important.desc())
    return [row_to_dict(row) for row in db.execute(query.order_by(*ordering)).all()]


def list_published_announcements(db: Session, *, category: AnnouncementCategory | None = None) -> list[dict]:
    return list_announcements(db, status=AnnouncementStatus.PUBLISHED, category=category, important_first=True)


def get_announcement(db: Session, announcement_id: int) -> dict | None:
    rows = fetch_from_table(db, 'announcements', filters={'id': announcement_id})
    return rows[0] if rows else None


def parse_announcement_form(form) -> dict:
    title = form_str(form, 'title')
    content = form_str(form, 'content')
    if not title:
        raise ValueError('Title is required')
    if not content:
        raise ValueError('Content is required')
    return {
        'title': title,
        'content': content,
        'category': parse_enum(AnnouncementCategory, form_str(form, 'category'), field='category', default=AnnouncementCategory.GENERAL),
        'is_important': form_bool(form, 'is_important'),
        'status': parse_enum(AnnouncementStatus, form_str(form, 'status'), field='status', default=AnnouncementStatus.DRAFT),
    }


def create_announcement(db: Session, *, created_by: int, data: dict) -> dict:
    values = {**data, 'created_by': created_by}
    values.setdefault('publish_date', _now())
    return insert_into_table(db, 'announcements', values)


def update_announcement(db: Session, announcement_id: int, data: dict) -> dict:
    current = get_announcement(db, announcement_id)
    if current is None:
        raise ValueError('Announcement not found')
    values = dict(data)
    if values.get('status') == AnnouncementStatus.PUBLISHED and current['status'] != AnnouncementStatus.PUBLISHED.value:
        values.setdefault('publish_date', _now())
    return update_in_table(db, 'announcements', announcement_id, values)


def delete_announcement(db: Session, announcement_id: int) -> dict:
    current = get_announcement(db, announcement_id)
    if current is None:
        raise ValueError('Announcement not found')
    delete_from_table(db, 'announcements', announcement_id)
    return current


def mark_announcement_as_read(db: Session, announcement_id: int, user_id: int) -> bool:
    existing = fetch_from_table(
        db, 'announcement_reads', columns=['id'], filters={'announcement_id': announcement_id, 'user_id': user_id}
    )
    if existing:
        return False
    try:
        with db.begin_nested():
            insert_into_table(db, 'announcement_reads', {'announcement_id': announcement_id, 'user_id': user_id})
    except (IntegrityError, TableAccessError) as exc:
        # A concurrent request recorded the read first.
        if isinstance(exc, TableAccessError) and exc.code not in (None, '23505'):
            raise
        return False
    return True


def get_announcement_read_status(db: Session, user_id: int, announcement_ids: list[int]) -> dict[int, bool]:
    if not announcement_ids:
        return {}
    read_ids = set(
        db.execute(
            select(AnnouncementRead.announcement_id).where(
                AnnouncementRead.user_id == user_id,
                AnnouncementRead.announcement_id.in_(announcement_ids),
            )
        ).scalars().all()
    )
    return {announcement_id: announcement_id in read_ids for announcement_id in announcement_ids}


def count_unread(db: Session, user_id: int) -> int:
    read_subquery = select(AnnouncementRead.announcement_id).where(AnnouncementRead.user_id == user_id)
    return db.execute(
        select(func.count(Announcement.id)).where(
            Announcement.status == AnnouncementStatus.PUBLISHED,
            Announcement.id.not_in(read_subquery),
        )
    ).scalar_one()
