"""Four-step sign-up wizard.

The wizard keeps no server-side state: every step re-posts the values of all
earlier steps as hidden fields, and the final submit re-validates everything
before an account is created.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from app.forms import is_valid_email
from app.models import User
from app.security.passwords import password_problems
from app.services import auth_service

FIRST_STEP = 1
LAST_STEP = 4
MIN_AGE_YEARS = 17

STEP_TITLES = {
    1: 'Personal information',
    2: 'Identity',
    3: 'Account',
    4: 'Confirmation',
}

WIZARD_FIELDS = (
    'full_name',
    'email',
    'phone',
    'id_number',
    'birth_date',
    'password',
    'confirm_password',
    'accept_terms',
)

_ID_NUMBER_RE = re.compile(r'^[A-Za-z0-9]{6,20}$')
_PHONE_RE = re.compile(r'^\+?[0-9][0-9 \-]{6,19}$')


@dataclass
class StepResult:
    step: int
    errors: list[str]


def read_wizard_data(form) -> dict[str, str]:
    data: dict[str, str] = {}
    for field in WIZARD_FIELDS:
        value = str(form.get(field, '') or '')
        # Passwords are kept verbatim; whitespace is significant there.
        data[field] = value if field in ('password', 'confirm_password') else value.strip()
    return data


def _age_on(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def _personal_errors(data: dict) -> list[str]:
    errors: list[str] = []
    if not data.get('full_name'):
        errors.append('Full name is required')
    email = data.get('email', '')
    if not email:
        errors.append('Email is required')
    elif not is_valid_email(email):
        errors.append('Email address is not valid')
    phone = data.get('phone', '')
    if not phone:
        errors.append('Phone number is required')
    elif not _PHONE_RE.match(phone):
        errors.append('Phone number is not valid')
    return errors


def _identity_errors(data: dict, today: date) -> list[str]:
    errors: list[str] = []
    id_number = data.get('id_number', '')
    if id_number and not _ID_NUMBER_RE.match(id_number):
        errors.append('ID number must be 6-20 letters or digits')

    raw_birth_date = data.get('birth_date', '')
    if raw_birth_date:
        try:
            birth_date = date.fromisoformat(raw_birth_date)
        except ValueError:
            errors.append('Birth date is not a valid date')
        else:
            if birth_date > today:
                errors.append('Birth date cannot be in the future')
            elif _age_on(birth_date, today) < MIN_AGE_YEARS:
                errors.append(f'You must be at least {MIN_AGE_YEARS} years old to register')
    return errors


def _account_errors(data: dict) -> list[str]:
    return password_problems(data.get('password', ''), data.get('confirm_password', ''))


def _confirmation_errors(data: dict) -> list[str]:
    if data.get('accept_terms', '').lower() not in {'1', 'true', 'yes', 'on'}:
        return ['You must accept the terms and conditions']
    return []


def validate_step(step: int, data: dict, *, today: date | None = None) -> list[str]:
    today = today or date.today()
    if step == 1:
        return _personal_errors(data)
    if step == 2:
        return _identity_errors(data, today)
    if step == 3:
        return _account_errors(data)
    if step == 4:
        return _confirmation_errors(data)
    raise ValueError(f'Unknown registration step: {step}')


def clamp_step(step: int) -> int:
    return max(FIRST_STEP, min(LAST_STEP, step))


def next_step(step: int, data: dict, *, today: date | None = None) -> StepResult:
    step = clamp_step(step)
    errors = validate_step(step, data, today=today)
    if errors:
        return StepResult(step=step, errors=errors)
    return StepResult(step=min(step + 1, LAST_STEP), errors=[])


def previous_step(step: int) -> int:
    return max(FIRST_STEP, clamp_step(step) - 1)


def validate_all(data: dict, *, today: date | None = None) -> StepResult | None:
    for step in range(FIRST_STEP, LAST_STEP + 1):
        errors = validate_step(step, data, today=today)
        if errors:
            return StepResult(step=step, errors=errors)
    return None


def submit_registration(db: Session, data: dict, *, today: date | None = None) -> User:
    failed = validate_all(data, today=today)
    if failed is not None:
        raise auth_service.AuthError('VALIDATION', failed.errors[0], problems=failed.errors)
    return auth_service.sign_up(
        db,
        email=data['email'],
        password=data['password'],
        full_name=data.get('full_name') or None,
        phone=data.get('phone') or None,
        id_number=data.get('id_number') or None,
        birth_date=date.fromisoformat(data['birth_date']) if data.get('birth_date') else None,
    )
