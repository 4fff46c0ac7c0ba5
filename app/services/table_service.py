"""Generic single-table access over the mapped schema.

Every function takes a table name and works on plain dicts so callers never
need the ORM class.  Writes made here are also published to in-process
subscribers once the owning session commits.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import Table, delete, event, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Base

logger = logging.getLogger(__name__)

_PENDING_KEY = 'table_service.pending_changes'
_SAVEPOINT_KEY = 'table_service.savepoint_marks'


class TableAccessError(Exception):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class UnknownTableError(TableAccessError):
    pass


class RowNotFoundError(TableAccessError):
    pass


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    new: dict | None
    old: dict | None


@dataclass
class _Subscription:
    table: str
    callback: Callable[[ChangeEvent], None]
    filter: dict[str, Any] | None


_subscriptions: list[_Subscription] = []


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_table(table_name: str) -> Table:
    table = Base.metadata.tables.get(table_name)
    if table is None:
        raise UnknownTableError(f'Unknown table: {table_name}', code='unknown_table')
    return table


def _check_columns(table: Table, names) -> None:
    for name in names:
        if name not in table.c:
            raise TableAccessError(f'Unknown column {name!r} on {table.name}', code='unknown_column')


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def row_to_dict(row) -> dict:
    return {key: _plain(value) for key, value in row._mapping.items()}


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, 'orig', None)
    return getattr(orig, 'sqlstate', None) or getattr(orig, 'pgcode', None)


def _wrap(exc: SQLAlchemyError, table_name: str, operation: str) -> TableAccessError:
    return TableAccessError(f'{operation} on {table_name} failed: {exc}', code=_sqlstate(exc))


def _get_row(db: Session, table: Table, row_id) -> dict | None:
    row = db.execute(select(table).where(table.c.id == row_id)).one_or_none()
    return row_to_dict(row) if row else None


def fetch_from_table(
    db: Session,
    table_name: str,
    *,
    columns: list[str] | None = None,
    filters: dict[str, Any] | None = None,
    order_by: str | None = None,
    ascending: bool = True,
    limit: int | None = None,
) -> list[dict]:
    table = get_table(table_name)
    if columns:
        _check_columns(table, columns)
        query = select(*[table.c[name] for name in columns])
    else:
        query = select(table)

    for key, value in (filters or {}).items():
        if value is None:
            continue
        _check_columns(table, [key])
        query = query.where(table.c[key] == _plain(value))

    if order_by:
        _check_columns(table, [order_by])
        column = table.c[order_by]
        query = query.order_by(column.asc() if ascending else column.desc())

    if limit is not None:
        query = query.limit(limit)

    try:
        rows = db.execute(query).all()
    except SQLAlchemyError as exc:
        raise _wrap(exc, table_name, 'select') from exc
    return [row_to_dict(row) for row in rows]


def insert_into_table(db: Session, table_name: str, data: dict[str, Any]) -> dict:
    table = get_table(table_name)
    _check_columns(table, data.keys())
    values = {key: _plain(value) for key, value in data.items()}

    try:
        result = db.execute(insert(table).values(**values))
        row_id = result.inserted_primary_key[0]
        row = _get_row(db, table, row_id)
    except SQLAlchemyError as exc:
        raise _wrap(exc, table_name, 'insert') from exc

    _queue_change(db, ChangeEvent(table=table_name, event_type='INSERT', new=row, old=None))
    return row


def update_in_table(db: Session, table_name: str, row_id, updates: dict[str, Any]) -> dict:
    table = get_table(table_name)
    _check_columns(table, updates.keys())
    values = {key: _plain(value) for key, value in updates.items()}
    if 'updated_at' in table.c and 'updated_at' not in values:
        values['updated_at'] = _now()

    try:
        old = _get_row(db, table, row_id)
        if old is None:
            raise RowNotFoundError(f'{table_name} row {row_id} not found', code='not_found')
        if not values:
            return old
        db.execute(update(table).where(table.c.id == row_id).values(**values))
        new = _get_row(db, table, row_id)
    except SQLAlchemyError as exc:
        raise _wrap(exc, table_name, 'update') from exc

    _queue_change(db, ChangeEvent(table=table_name, event_type='UPDATE', new=new, old=old))
    return new


def delete_from_table(db: Session, table_name: str, row_id) -> None:
    table = get_table(table_name)
    try:
        old = _get_row(db, table, row_id)
        if old is None:
            raise RowNotFoundError(f'{table_name} row {row_id} not found', code='not_found')
        db.execute(delete(table).where(table.c.id == row_id))
    except SQLAlchemyError as exc:
        raise _wrap(exc, table_name, 'delete') from exc

    _queue_change(db, ChangeEvent(table=table_name, event_type='DELETE', new=None, old=old))


def subscribe_to_table(
    table_name: str,
    callback: Callable[[ChangeEvent], None],
    filter: dict[str, Any] | None = None,
) -> Callable[[], None]:
    get_table(table_name)
    subscription = _Subscription(table=table_name, callback=callback, filter=filter)
    _subscriptions.append(subscription)

    def unsubscribe() -> None:
        if subscription in _subscriptions:
            _subscriptions.remove(subscription)

    return unsubscribe


def _matches(subscription: _Subscription, change: ChangeEvent) -> bool:
    if subscription.table != change.table:
        return False
    if not subscription.filter:
        return True
    row = change.new if change.new is not None else change.old
    if row is None:
        return False
    return all(row.get(key) == _plain(value) for key, value in subscription.filter.items())


def _queue_change(db: Session, change: ChangeEvent) -> None:
    db.info.setdefault(_PENDING_KEY, []).append(change)


def dispatch_changes(changes: list[ChangeEvent]) -> None:
    for change in changes:
        for subscription in list(_subscriptions):
            if not _matches(subscription, change):
                continue
            try:
                subscription.callback(change)
            except Exception:
                logger.exception('Change listener failed for %s %s', change.event_type, change.table)


@event.listens_for(Session, 'after_transaction_create')
def _mark_savepoint(session: Session, transaction) -> None:
    if transaction.nested:
        marks = session.info.setdefault(_SAVEPOINT_KEY, {})
        marks[transaction] = len(session.info.get(_PENDING_KEY, ()))


@event.listens_for(Session, 'after_commit')
def _publish_after_commit(session: Session) -> None:
    # Releasing a savepoint is not durable yet; wait for the outer commit.
    if session.in_nested_transaction():
        return
    changes = session.info.pop(_PENDING_KEY, None)
    if changes:
        dispatch_changes(changes)


@event.listens_for(Session, 'after_soft_rollback')
def _trim_after_savepoint_rollback(session: Session, previous_transaction) -> None:
    if not previous_transaction.nested:
        return
    mark = session.info.get(_SAVEPOINT_KEY, {}).pop(previous_transaction, None)
    pending = session.info.get(_PENDING_KEY)
    if mark is not None and pending is not None:
        del pending[mark:]


@event.listens_for(Session, 'after_transaction_end')
def _discard_after_outer_end(session: Session, transaction) -> None:
    # Anything still queued when the outer transaction ends was rolled back.
    if transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)
        session.info.pop(_SAVEPOINT_KEY, None)
