from __future__ import annotations

import re
from datetime import date, time
from decimal import Decimal, InvalidOperation
from enum import Enum

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def form_str(form, key: str, default: str = '') -> str:
    return str(form.get(key, default) or '').strip()


def optional_str(form, key: str) -> str | None:
    value = form_str(form, key)
    return value or None


def form_bool(form, key: str) -> bool:
    return form_str(form, key).lower() in TRUE_VALUES


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip()))


def parse_decimal(raw: str | None, *, field: str, default: Decimal | None = None, minimum: Decimal | None = Decimal('0')) -> Decimal | None:
    value = (raw or '').strip().replace(',', '')
    if value == '':
        return default
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f'Invalid number for {field}') from exc
    if not parsed.is_finite():
        raise ValueError(f'Invalid number for {field}')
    if minimum is not None and parsed < minimum:
        raise ValueError(f'{field} cannot be less than {minimum}')
    return parsed


def parse_int(raw: str | None, *, field: str, default: int | None = None, minimum: int | None = None) -> int | None:
    value = (raw or '').strip()
    if value == '':
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f'Invalid whole number for {field}') from exc
    if minimum is not None and parsed < minimum:
        raise ValueError(f'{field} cannot be less than {minimum}')
    return parsed


def parse_date(raw: str | None, *, field: str) -> date | None:
    value = (raw or '').strip()
    if value == '':
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f'Invalid date for {field}') from exc


def parse_time(raw: str | None, *, field: str) -> time | None:
    value = (raw or '').strip()
    if value == '':
        return None
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f'Invalid time for {field}') from exc


def parse_enum(enum_cls: type[Enum], raw: str | None, *, field: str, default: Enum | None = None):
    value = (raw or '').strip().lower()
    if value == '' or value == 'all':
        return default
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValueError(f'Invalid {field}: {value}') from exc
