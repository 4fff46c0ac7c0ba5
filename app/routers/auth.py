from __future__ import annotations

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.auth import home_path_for
from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip, get_templates, get_user_agent, safe_next_path
from app.forms import form_str
from app.models import ActionType
from app.security.csrf import verify_csrf
from app.security.sessions import build_principal, create_web_session, revoke_web_session
from app.services import auth_service, registration_service
from app.services.audit_service import log_audit
from app.services.auth_service import AuthError

router = APIRouter(tags=['auth'])


def _set_session_cookie(response: RedirectResponse, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )


def _render_login(request: Request, *, error: str | None, email: str = '', next_path: str = '', status_code: int = 200, notice: str | None = None):
    return request.app.state.templates.TemplateResponse(
        'login.html',
        {'request': request, 'error': error, 'notice': notice, 'email': email, 'next': next_path},
        status_code=status_code,
    )


@router.get('/login')
def login_page(request: Request):
    principal = getattr(request.state, 'principal', None)
    if principal is not None:
        return RedirectResponse(home_path_for(principal), status_code=303)
    notice = None
    if request.query_params.get('registered'):
        notice = 'Account created. Check your email for the verification code.'
    elif request.query_params.get('verified'):
        notice = 'Email verified. You can sign in now.'
    elif request.query_params.get('reset'):
        notice = 'Password updated. Sign in with your new password.'
    return _render_login(request, error=None, next_path=request.query_params.get('next', ''), notice=notice)


@router.post('/login')
async def login_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    email = form_str(form, 'email')
    password = str(form.get('password', ''))
    next_path = form_str(form, 'next')
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)

    try:
        user = auth_service.sign_in(db, email=email, password=password, ip=ip, user_agent=user_agent)
    except AuthError as exc:
        db.commit()
        status_code = 503 if exc.code == 'NETWORK' else 401
        return _render_login(request, error=exc.message, email=email, next_path=next_path, status_code=status_code)

    token = create_web_session(db, user.id, ip=ip, user_agent=user_agent)
    principal = build_principal(db, user)
    log_audit(
        db,
        actor_user_id=user.id,
        action_type=ActionType.LOGIN,
        entity_type='user',
        entity_id=user.id,
        ip=ip,
        user_agent=user_agent,
        new_values={'email': user.email, 'role': principal.role.value},
    )
    db.commit()

    response = RedirectResponse(safe_next_path(next_path, home_path_for(principal)), status_code=303)
    _set_session_cookie(response, token)
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action_type=ActionType.LOGOUT,
        entity_type='user',
        entity_id=principal.id if principal else None,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    db.commit()

    response = RedirectResponse('/login', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response


def _render_register(request: Request, *, step: int, data: dict, errors: list[str], status_code: int = 200):
    return request.app.state.templates.TemplateResponse(
        'register.html',
        {
            'request': request,
            'step': step,
            'last_step': registration_service.LAST_STEP,
            'step_titles': registration_service.STEP_TITLES,
            'data': data,
            'errors': errors,
        },
        status_code=status_code,
    )


@router.get('/register')
def register_page(request: Request):
    return _render_register(request, step=registration_service.FIRST_STEP, data={}, errors=[])


@router.post('/register')
async def register_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    data = registration_service.read_wizard_data(form)
    action = form_str(form, 'action') or 'next'
    try:
        step = registration_service.clamp_step(int(form_str(form, 'step') or registration_service.FIRST_STEP))
    except ValueError:
        step = registration_service.FIRST_STEP

    if action == 'back':
        return _render_register(request, step=registration_service.previous_step(step), data=data, errors=[])

    if action != 'submit' or step < registration_service.LAST_STEP:
        result = registration_service.next_step(step, data)
        status_code = 400 if result.errors else 200
        return _render_register(request, step=result.step, data=data, errors=result.errors, status_code=status_code)

    try:
        user = registration_service.submit_registration(db, data)
    except AuthError as exc:
        db.rollback()
        failed = registration_service.validate_all(data)
        step = failed.step if failed else registration_service.FIRST_STEP
        errors = exc.problems or [exc.message]
        return _render_register(request, step=step, data=data, errors=errors, status_code=400)

    log_audit(
        db,
        actor_user_id=user.id,
        action_type=ActionType.CREATE,
        entity_type='user',
        entity_id=user.id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values={'email': user.email, 'username': user.username},
    )
    db.commit()
    if settings.require_email_verification:
        return RedirectResponse(f'/verify-email?{urlencode({"email": user.email})}', status_code=303)
    return RedirectResponse('/login?registered=1', status_code=303)


@router.get('/forgot-password')
def forgot_password_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    return templates.TemplateResponse('forgot_password.html', {'request': request, 'error': None, 'sent': False, 'email': ''})


@router.post('/forgot-password')
async def forgot_password_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    email = form_str(form, 'email')
    problems = auth_service.validate_email(email)
    if problems:
        return request.app.state.templates.TemplateResponse(
            'forgot_password.html',
            {'request': request, 'error': problems[0], 'sent': False, 'email': email},
            status_code=400,
        )
    auth_service.request_password_reset(db, email, ip=get_client_ip(request))
    db.commit()
    return request.app.state.templates.TemplateResponse(
        'forgot_password.html',
        {'request': request, 'error': None, 'sent': True, 'email': email},
    )


@router.get('/reset-password')
def reset_password_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    return templates.TemplateResponse(
        'reset_password.html',
        {'request': request, 'error': None, 'email': request.query_params.get('email', '')},
    )


@router.post('/reset-password')
async def reset_password_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    email = form_str(form, 'email')
    try:
        user = auth_service.reset_password(
            db,
            email=email,
            code=form_str(form, 'code'),
            new_password=str(form.get('password', '')),
            confirm_password=str(form.get('confirm_password', '')),
        )
    except AuthError as exc:
        db.rollback()
        return request.app.state.templates.TemplateResponse(
            'reset_password.html',
            {'request': request, 'error': exc.message, 'email': email},
            status_code=400,
        )

    log_audit(
        db,
        actor_user_id=user.id,
        action_type=ActionType.UPDATE,
        entity_type='user',
        entity_id=user.id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values={'password_reset': True},
    )
    db.commit()
    return RedirectResponse('/login?reset=1', status_code=303)


@router.get('/verify-email')
def verify_email_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    return templates.TemplateResponse(
        'verify_email.html',
        {'request': request, 'error': None, 'notice': None, 'email': request.query_params.get('email', '')},
    )


@router.post('/verify-email')
async def verify_email_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    email = form_str(form, 'email')

    if form_str(form, 'action') == 'resend':
        auth_service.resend_verification(db, email)
        db.commit()
        return request.app.state.templates.TemplateResponse(
            'verify_email.html',
            {'request': request, 'error': None, 'notice': 'If the account exists, a new code has been sent.', 'email': email},
        )

    try:
        user = auth_service.verify_email(db, email=email, code=form_str(form, 'code'))
    except AuthError as exc:
        db.rollback()
        return request.app.state.templates.TemplateResponse(
            'verify_email.html',
            {'request': request, 'error': exc.message, 'notice': None, 'email': email},
            status_code=400,
        )

    log_audit(
        db,
        actor_user_id=user.id,
        action_type=ActionType.UPDATE,
        entity_type='user',
        entity_id=user.id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values={'is_verified': True},
    )
    db.commit()
    return RedirectResponse('/login?verified=1', status_code=303)
