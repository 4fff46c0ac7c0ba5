from __future__ import annotations

import logging
import re
import secrets
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth import Role
from app.config import settings
from app.forms import is_valid_email
from app.models import Admin, OtpPurpose, OtpVerification, Resident, User, UserRole
from app.security.passwords import hash_password, password_problems, verify_password
from app.security.sessions import revoke_user_sessions
from app.services.audit_service import log_auth_event
from app.services.notification_service import send_email_stub

logger = logging.getLogger(__name__)

AUTH_ERROR_MESSAGES = {
    'NETWORK': 'Could not reach the server. Check your connection and try again.',
    'INVALID_CREDENTIALS': 'Invalid email or password',
    'EMAIL_NOT_VERIFIED': 'Please verify your email address before signing in',
    'ALREADY_REGISTERED': 'This email is already registered',
    'VALIDATION': 'Please correct the highlighted fields',
    'INACTIVE': 'This account has been deactivated. Contact the management office.',
    'INVALID_OTP': 'The verification code is invalid or has expired',
}

PROFILE_FIELDS = ('full_name', 'phone', 'id_number', 'birth_date', 'profile_picture')
USERNAME_MAX_LENGTH = 40
_USERNAME_STRIP = re.compile(r'[^a-z0-9]')


class AuthError(Exception):
    def __init__(self, code: str, message: str | None = None, *, problems: list[str] | None = None) -> None:
        super().__init__(message or AUTH_ERROR_MESSAGES.get(code, code))
        self.code = code
        self.problems = problems or []

    @property
    def message(self) -> str:
        return str(self)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def validate_email(email: str) -> list[str]:
    if not (email or '').strip():
        return ['Email is required']
    if not is_valid_email(email):
        return ['Email address is not valid']
    return []


def validate_password(password: str, confirm_password: str | None = None) -> list[str]:
    return password_problems(password, confirm_password)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def _username_taken(db: Session, username: str) -> bool:
    return db.execute(select(User.id).where(User.username == username)).scalar_one_or_none() is not None


def generate_unique_username(db: Session, email: str) -> str:
    local_part = normalize_email(email).split('@', 1)[0]
    base = _USERNAME_STRIP.sub('', local_part)[:USERNAME_MAX_LENGTH] or 'user'
    if not _username_taken(db, base):
        return base
    for suffix in range(1, 11):
        candidate = f'{base}{suffix}'
        if not _username_taken(db, candidate):
            return candidate
    stamp = str(int(_now().timestamp() * 1000))[-6:]
    return f'{base}{stamp}'


def sync_user_record(db: Session, user_id: int, metadata: dict) -> None:
    try:
        with db.begin_nested():
            user = db.get(User, user_id)
            if user is None:
                logger.warning('Profile sync skipped, user %s does not exist', user_id)
                return
            for field in PROFILE_FIELDS:
                value = metadata.get(field)
                if value is None or value == '':
                    continue
                if getattr(user, field) in (None, ''):
                    setattr(user, field, value)
            user.updated_at = _now()
    except IntegrityError:
        logger.info('Profile sync for user %s lost a race with another writer', user_id)
    except SQLAlchemyError:
        logger.exception('Profile sync for user %s failed', user_id)


def issue_otp(db: Session, *, email: str, purpose: OtpPurpose) -> str:
    email = normalize_email(email)
    db.execute(
        update(OtpVerification)
        .where(
            OtpVerification.email == email,
            OtpVerification.purpose == purpose,
            OtpVerification.is_used.is_(False),
        )
        .values(is_used=True)
    )
    code = f'{secrets.randbelow(10 ** 6):06d}'
    db.add(
        OtpVerification(
            email=email,
            otp_code=code,
            purpose=purpose,
            expires_at=_now() + timedelta(minutes=settings.otp_ttl_minutes),
        )
    )
    db.flush()
    return code


def consume_otp(db: Session, *, email: str, code: str, purpose: OtpPurpose) -> None:
    otp = db.execute(
        select(OtpVerification)
        .where(
            OtpVerification.email == normalize_email(email),
            OtpVerification.purpose == purpose,
            OtpVerification.otp_code == (code or '').strip(),
            OtpVerification.is_used.is_(False),
        )
        .order_by(OtpVerification.id.desc())
    ).scalars().first()
    if otp is None or _as_utc(otp.expires_at) <= _now():
        raise AuthError('INVALID_OTP')
    otp.is_used = True


def _send_verification_code(db: Session, user: User) -> None:
    code = issue_otp(db, email=user.email, purpose=OtpPurpose.EMAIL_VERIFICATION)
    send_email_stub(
        db,
        to=user.email,
        subject=f'{settings.app_name}: verify your email',
        purpose=OtpPurpose.EMAIL_VERIFICATION.value,
        body=f'Your verification code is {code}. Open {settings.public_base_url_normalized}/verify-email to continue.',
        actor_user_id=user.id,
    )


def sign_up(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    phone: str | None = None,
    id_number: str | None = None,
    birth_date: date | None = None,
    verified: bool = False,
) -> User:
    problems = validate_email(email) + validate_password(password)
    if problems:
        raise AuthError('VALIDATION', problems[0], problems=problems)

    email = normalize_email(email)
    try:
        if get_user_by_email(db, email) is not None:
            raise AuthError('ALREADY_REGISTERED')

        user = User(
            email=email,
            username=generate_unique_username(db, email),
            password_hash=hash_password(password),
            role=UserRole.GUEST,
            is_active=True,
            is_verified=verified,
            email_verified_at=_now() if verified else None,
        )
        db.add(user)
        db.flush()
    except OperationalError as exc:
        raise AuthError('NETWORK') from exc
    except IntegrityError as exc:
        raise AuthError('ALREADY_REGISTERED') from exc

    sync_user_record(
        db,
        user.id,
        {'full_name': full_name, 'phone': phone, 'id_number': id_number, 'birth_date': birth_date},
    )
    if not verified:
        _send_verification_code(db, user)
    return user


def sign_in(db: Session, *, email: str, password: str, ip: str | None, user_agent: str | None) -> User:
    email = normalize_email(email)
    try:
        user = get_user_by_email(db, email)
    except OperationalError as exc:
        raise AuthError('NETWORK') from exc

    if user is None:
        log_auth_event(db, attempted_email=email, success=False, failure_reason='UNKNOWN_EMAIL', ip=ip, user_agent=user_agent)
        logger.info('Sign-in failed for unknown email %s', email)
        raise AuthError('INVALID_CREDENTIALS')

    if not verify_password(password, user.password_hash):
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason='BAD_PASSWORD',
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        logger.info('Sign-in failed for user %s: bad password', user.id)
        raise AuthError('INVALID_CREDENTIALS')

    if not user.is_active:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason='INACTIVE_USER',
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        raise AuthError('INACTIVE')

    if settings.require_email_verification and not user.is_verified:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason='EMAIL_NOT_VERIFIED',
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        raise AuthError('EMAIL_NOT_VERIFIED')

    log_auth_event(db, attempted_email=email, success=True, user_id=user.id, ip=ip, user_agent=user_agent)
    return user


def request_password_reset(db: Session, email: str, *, ip: str | None = None) -> None:
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        return
    code = issue_otp(db, email=user.email, purpose=OtpPurpose.PASSWORD_RESET)
    send_email_stub(
        db,
        to=user.email,
        subject=f'{settings.app_name}: password reset',
        purpose=OtpPurpose.PASSWORD_RESET.value,
        body=f'Your password reset code is {code}. Open {settings.public_base_url_normalized}/reset-password to continue.',
        actor_user_id=user.id,
        ip=ip,
    )


def resend_verification(db: Session, email: str) -> None:
    user = get_user_by_email(db, email)
    if user is None or user.is_verified:
        return
    _send_verification_code(db, user)


def reset_password(db: Session, *, email: str, code: str, new_password: str, confirm_password: str) -> User:
    problems = validate_password(new_password, confirm_password)
    if problems:
        raise AuthError('VALIDATION', problems[0], problems=problems)
    user = get_user_by_email(db, email)
    if user is None:
        raise AuthError('INVALID_OTP')
    consume_otp(db, email=user.email, code=code, purpose=OtpPurpose.PASSWORD_RESET)
    user.password_hash = hash_password(new_password)
    user.updated_at = _now()
    revoke_user_sessions(db, user.id)
    return user


def verify_email(db: Session, *, email: str, code: str) -> User:
    user = get_user_by_email(db, email)
    if user is None:
        raise AuthError('INVALID_OTP')
    consume_otp(db, email=user.email, code=code, purpose=OtpPurpose.EMAIL_VERIFICATION)
    user.is_verified = True
    user.email_verified_at = _now()
    user.updated_at = _now()
    return user


def update_password(
    db: Session,
    *,
    user_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> None:
    user = db.get(User, user_id)
    if user is None:
        raise ValueError('User not found')
    if not verify_password(current_password, user.password_hash):
        raise AuthError('INVALID_CREDENTIALS', 'Current password is incorrect')
    problems = validate_password(new_password, confirm_password)
    if problems:
        raise AuthError('VALIDATION', problems[0], problems=problems)
    user.password_hash = hash_password(new_password)
    user.updated_at = _now()


def get_user_role(db: Session, user_id: int) -> Role:
    if db.execute(select(Admin.id).where(Admin.user_id == user_id)).scalar_one_or_none() is not None:
        return Role.ADMIN
    if db.execute(select(Resident.id).where(Resident.user_id == user_id)).scalar_one_or_none() is not None:
        return Role.RESIDENT
    return Role.GUEST


def get_user_profile(db: Session, user_id: int) -> dict | None:
    user = db.get(User, user_id)
    if user is None:
        return None
    resident = db.execute(
        select(Resident.id, Resident.unit_id, Resident.status).where(Resident.user_id == user_id)
    ).one_or_none()
    return {
        'id': user.id,
        'email': user.email,
        'username': user.username,
        'full_name': user.full_name,
        'phone': user.phone,
        'id_number': user.id_number,
        'birth_date': user.birth_date,
        'profile_picture': user.profile_picture,
        'is_verified': user.is_verified,
        'created_at': user.created_at,
        'role': get_user_role(db, user_id).value,
        'resident_id': resident.id if resident else None,
        'unit_id': resident.unit_id if resident else None,
        'resident_status': resident.status.value if resident else None,
    }


def update_user_profile(db: Session, user_id: int, updates: dict) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise ValueError('User not found')
    for field, value in updates.items():
        if field not in PROFILE_FIELDS:
            continue
        setattr(user, field, value if value != '' else None)
    if not (user.full_name or '').strip():
        raise ValueError('Full name is required')
    user.updated_at = _now()
    return user
