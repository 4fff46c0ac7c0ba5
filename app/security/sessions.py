from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select

from app.auth import Principal, Role
from app.config import settings
from app.db import SessionLocal
from app.models import Admin, Resident, User, WebSession


PROTECTED_PATH_PREFIXES = (
    '/resident',
    '/admin',
    '/notifications',
    '/payment/finish',
    '/payment/success',
    '/payment/pending',
    '/payment/failed',
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def is_protected_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + '/') for prefix in PROTECTED_PATH_PREFIXES)


def create_web_session(db, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        user_id=user_id,
        ip_address=ip,
        user_agent=user_agent,
        device_info=(user_agent or '')[:255] or None,
        last_activity=_now(),
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def revoke_user_sessions(db, user_id: int) -> int:
    sessions = db.execute(
        select(WebSession).where(WebSession.user_id == user_id, WebSession.revoked_at.is_(None))
    ).scalars().all()
    now = _now()
    for session in sessions:
        session.revoked_at = now
    return len(sessions)


def build_principal(db, user: User) -> Principal:
    is_admin = db.execute(select(Admin.id).where(Admin.user_id == user.id)).scalar_one_or_none() is not None
    resident = db.execute(
        select(Resident.id, Resident.unit_id).where(Resident.user_id == user.id)
    ).one_or_none()

    if is_admin:
        role = Role.ADMIN
    elif resident is not None:
        role = Role.RESIDENT
    else:
        role = Role.GUEST

    return Principal(
        id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        role=role,
        resident_id=resident.id if resident else None,
        unit_id=resident.unit_id if resident else None,
        active=user.is_active,
    )


def load_principal_from_token(db, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_activity = now
    web_session.expires_at = _session_expiry()
    return build_principal(db, user)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        with SessionLocal() as db:
            principal = load_principal_from_token(db, token)
            request.state.principal = principal
            db.commit()

        if is_protected_path(request.url.path) and request.state.principal is None:
            return RedirectResponse(f'/login?{urlencode({"next": request.url.path})}', status_code=303)

        response = await call_next(request)
        return response
