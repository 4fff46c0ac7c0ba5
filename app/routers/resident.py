from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.auth import Principal, Role, assert_resident_scope, require_role
from app.db import get_db
from app.dependencies import get_client_ip, get_user_agent
from app.forms import form_str, optional_str, parse_date, parse_enum, parse_int, parse_time
from app.models import (
    ActionType,
    AnnouncementCategory,
    BookingDurationType,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from app.security.csrf import verify_csrf
from app.services import (
    announcement_service,
    auth_service,
    chat_service,
    dashboard_service,
    facility_service,
    payment_service,
    resident_service,
    ticket_service,
    unit_booking_service,
    unit_service,
)
from app.services.audit_service import log_audit
from app.services.auth_service import AuthError
from app.services.gateway_factory import get_payment_gateway

router = APIRouter(prefix='/resident', tags=['resident'])
resident_access = require_role(Role.RESIDENT)
booking_access = require_role(Role.RESIDENT, Role.GUEST)


def _render(request: Request, template: str, context: dict, status_code: int = 200):
    return request.app.state.templates.TemplateResponse(template, {'request': request, **context}, status_code=status_code)


def _audit(request: Request, db: Session, principal: Principal, action_type: ActionType, entity_type: str, entity_id, **values) -> None:
    log_audit(
        db,
        actor_user_id=principal.id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values=values,
    )


def _resident_id(principal: Principal) -> int:
    if principal.resident_id is None:
        raise HTTPException(status_code=403, detail='No resident record for this account')
    return principal.resident_id


@router.get('/dashboard')
def dashboard(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    summary = dashboard_service.resident_summary(db, _resident_id(principal), principal.id, date.today())
    return _render(request, 'resident/dashboard.html', {'principal': principal, 'summary': summary, 'today': date.today()})


@router.get('/unit')
def my_unit(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    resident = resident_service.get_resident_with_unit(db, _resident_id(principal))
    photos = unit_service.list_unit_photos(db, resident['unit_id']) if resident and resident['unit_id'] else []
    return _render(
        request,
        'resident/unit.html',
        {
            'principal': principal,
            'resident': resident,
            'photos': photos,
            'unit_bookings': unit_booking_service.list_resident_unit_bookings(db, _resident_id(principal)),
        },
    )


@router.get('/payments')
def payment_center(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    try:
        status = parse_enum(PaymentStatus, request.query_params.get('status'), field='status')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    payments = payment_service.list_resident_payments(db, _resident_id(principal), status=status)
    return _render(
        request,
        'resident/payments.html',
        {
            'principal': principal,
            'payments': payments,
            'statuses': list(PaymentStatus),
            'selected_status': status.value if status else 'all',
            'today': date.today(),
            'payable_statuses': payment_service.PAYABLE_STATUSES,
        },
    )


def _owned_payment(db: Session, principal: Principal, payment_id: int) -> dict:
    payment = payment_service.get_payment(db, payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail='Invoice not found')
    assert_resident_scope(principal, payment['resident_id'])
    return payment


@router.get('/payments/{payment_id}/pay')
def make_payment_page(
    payment_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    payment = _owned_payment(db, principal, payment_id)
    return _render(
        request,
        'resident/pay.html',
        {
            'principal': principal,
            'payment': payment,
            'methods': [method for method in PaymentMethod if method != PaymentMethod.CASH],
            'payable': payment['status'] in payment_service.PAYABLE_STATUSES,
            'transactions': payment_service.list_payment_transactions(db, payment_id),
        },
    )


@router.post('/payments/{payment_id}/pay')
async def make_payment_submit(
    payment_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    payment = _owned_payment(db, principal, payment_id)
    try:
        method = parse_enum(PaymentMethod, form_str(form, 'payment_method'), field='payment method', default=PaymentMethod.MIDTRANS)
        redirect_url = payment_service.start_payment(
            db,
            payment=payment,
            resident_id=_resident_id(principal),
            payment_method=method,
            gateway=get_payment_gateway(),
            customer=auth_service.get_user_profile(db, principal.id),
        )
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'payment_transaction', payment_id, payment_method=method, invoice=payment['invoice_number'])
    db.commit()
    return RedirectResponse(redirect_url, status_code=303)


@router.get('/unit-booking')
def unit_booking_page(
    request: Request,
    principal: Principal = Depends(booking_access),
    db: Session = Depends(get_db),
):
    try:
        unit_id = parse_int(request.query_params.get('unit_id'), field='unit')
    except ValueError:
        unit_id = None
    if unit_id is None:
        return RedirectResponse('/catalogue', status_code=303)
    try:
        unit, photos = unit_service.get_unit_with_photos(db, unit_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    admin_fee = unit_booking_service.current_admin_fee(db)
    today = date.today()
    options = [
        {
            'duration': duration.value,
            'price': unit_booking_service.calculate_booking_price(unit, duration, admin_fee),
            'end_date': unit_booking_service.calculate_end_date(today, duration),
        }
        for duration in BookingDurationType
    ]
    return _render(
        request,
        'resident/unit_booking.html',
        {'principal': principal, 'unit': unit, 'photos': photos, 'options': options, 'today': today},
    )


@router.post('/unit-booking')
async def unit_booking_submit(
    request: Request,
    principal: Principal = Depends(booking_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        unit_id = parse_int(form_str(form, 'unit_id'), field='unit')
        duration = parse_enum(BookingDurationType, form_str(form, 'duration'), field='duration', default=BookingDurationType.MONTHLY)
        if unit_id is None:
            raise ValueError('Unit is required')
        booking, payment = unit_booking_service.create_unit_booking(db, user_id=principal.id, unit_id=unit_id, duration=duration)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(
        request,
        db,
        principal,
        ActionType.CREATE,
        'unit_booking',
        booking['id'],
        booking_number=booking['booking_number'],
        unit_id=unit_id,
        duration=duration,
        invoice=payment['invoice_number'],
        total=booking['total_amount'],
    )
    db.commit()
    return RedirectResponse(f'/resident/payments/{payment["id"]}/pay', status_code=303)


@router.get('/bookings')
def bookings_page(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    try:
        status = parse_enum(BookingStatus, request.query_params.get('status'), field='status')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _render(
        request,
        'resident/bookings.html',
        {
            'principal': principal,
            'facilities': facility_service.list_active_facilities(db),
            'bookings': facility_service.list_resident_bookings(db, _resident_id(principal), status=status),
            'statuses': list(BookingStatus),
            'selected_status': status.value if status else 'all',
            'cancellable_statuses': facility_service.CANCELLABLE_STATUSES,
            'today': date.today(),
            'selected_facility_id': request.query_params.get('facility_id', ''),
        },
    )


@router.post('/bookings')
async def booking_create(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        booking = facility_service.create_facility_booking(
            db,
            resident_id=_resident_id(principal),
            facility_id=parse_int(form_str(form, 'facility_id'), field='facility'),
            booking_date=parse_date(form_str(form, 'booking_date'), field='booking date'),
            start_time=parse_time(form_str(form, 'start_time'), field='start time'),
            duration_hours=parse_int(form_str(form, 'duration_hours'), field='duration', default=1),
            number_of_guests=parse_int(form_str(form, 'number_of_guests'), field='guests', default=1),
            notes=optional_str(form, 'notes'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(
        request,
        db,
        principal,
        ActionType.CREATE,
        'facility_booking',
        booking['id'],
        booking_number=booking['booking_number'],
        facility_id=booking['facility_id'],
        booking_fee=booking['booking_fee'],
    )
    db.commit()
    return RedirectResponse('/resident/bookings', status_code=303)


@router.post('/bookings/{booking_id}/cancel')
def booking_cancel(
    booking_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        booking = facility_service.cancel_facility_booking(db, booking_id=booking_id, resident_id=_resident_id(principal))
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'facility_booking', booking_id, status=booking['status'])
    db.commit()
    return RedirectResponse('/resident/bookings', status_code=303)


@router.get('/tickets')
def tickets_page(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    try:
        status = parse_enum(TicketStatus, request.query_params.get('status'), field='status')
        category = parse_enum(TicketCategory, request.query_params.get('category'), field='category')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _render(
        request,
        'resident/tickets.html',
        {
            'principal': principal,
            'tickets': ticket_service.list_resident_tickets(db, _resident_id(principal), status=status, category=category),
            'statuses': list(TicketStatus),
            'categories': list(TicketCategory),
            'priorities': list(TicketPriority),
            'selected_status': status.value if status else 'all',
            'selected_category': category.value if category else 'all',
        },
    )


@router.post('/tickets')
async def ticket_create(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        ticket = ticket_service.create_ticket(
            db,
            resident_id=_resident_id(principal),
            category=parse_enum(TicketCategory, form_str(form, 'category'), field='category'),
            priority=parse_enum(TicketPriority, form_str(form, 'priority'), field='priority', default=TicketPriority.MEDIUM),
            subject=form_str(form, 'subject'),
            description=form_str(form, 'description'),
            attachment_url=optional_str(form, 'attachment_url'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'ticket', ticket['id'], ticket_number=ticket['ticket_number'], category=ticket['category'])
    db.commit()
    return RedirectResponse(f'/resident/tickets/{ticket["id"]}', status_code=303)


def _owned_ticket(db: Session, principal: Principal, ticket_id: int) -> dict:
    ticket = ticket_service.get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail='Ticket not found')
    assert_resident_scope(principal, ticket['resident_id'])
    return ticket


@router.get('/tickets/{ticket_id}')
def ticket_detail(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    _owned_ticket(db, principal, ticket_id)
    ticket, updates, attachments = ticket_service.get_ticket_with_updates(db, ticket_id, include_internal=False)
    return _render(
        request,
        'resident/ticket_detail.html',
        {
            'principal': principal,
            'ticket': ticket,
            'updates': updates,
            'attachments': attachments,
            'can_rate': ticket['status'] in ticket_service.RATEABLE_STATUSES,
        },
    )


@router.post('/tickets/{ticket_id}/updates')
async def ticket_add_update(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    _owned_ticket(db, principal, ticket_id)
    try:
        update = ticket_service.add_ticket_update(db, ticket_id=ticket_id, user_id=principal.id, message=form_str(form, 'message'))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'ticket_update', update['id'], ticket_id=ticket_id)
    db.commit()
    return RedirectResponse(f'/resident/tickets/{ticket_id}', status_code=303)


@router.post('/tickets/{ticket_id}/rate')
async def ticket_rate(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        rating = parse_int(form_str(form, 'rating'), field='rating')
        ticket_service.rate_ticket(db, ticket_id=ticket_id, resident_id=_resident_id(principal), rating=rating)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'ticket', ticket_id, rating=rating)
    db.commit()
    return RedirectResponse(f'/resident/tickets/{ticket_id}', status_code=303)


@router.post('/tickets/{ticket_id}/cancel')
def ticket_cancel(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        ticket_service.cancel_resident_ticket(db, ticket_id=ticket_id, resident_id=_resident_id(principal), user_id=principal.id)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'ticket', ticket_id, status=TicketStatus.CANCELLED)
    db.commit()
    return RedirectResponse(f'/resident/tickets/{ticket_id}', status_code=303)


@router.get('/announcements')
def announcements_page(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    try:
        category = parse_enum(AnnouncementCategory, request.query_params.get('category'), field='category')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    announcements = announcement_service.list_published_announcements(db, category=category)
    read_status = announcement_service.get_announcement_read_status(db, principal.id, [item['id'] for item in announcements])
    return _render(
        request,
        'resident/announcements.html',
        {
            'principal': principal,
            'announcements': announcements,
            'read_status': read_status,
            'categories': list(AnnouncementCategory),
            'selected_category': category.value if category else 'all',
        },
    )


@router.post('/announcements/{announcement_id}/read')
def announcement_read(
    announcement_id: int,
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    if announcement_service.get_announcement(db, announcement_id) is None:
        raise HTTPException(status_code=404, detail='Announcement not found')
    if announcement_service.mark_announcement_as_read(db, announcement_id, principal.id):
        _audit(request, db, principal, ActionType.VIEW, 'announcement', announcement_id)
    db.commit()
    return RedirectResponse('/resident/announcements', status_code=303)


@router.get('/profile')
def profile_page(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    return _render(
        request,
        'resident/profile.html',
        {
            'principal': principal,
            'profile': auth_service.get_user_profile(db, principal.id),
            'resident': resident_service.get_resident(db, _resident_id(principal)),
            'notice': request.query_params.get('notice'),
        },
    )


@router.post('/profile')
async def profile_update(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        auth_service.update_user_profile(
            db,
            principal.id,
            {
                'full_name': form_str(form, 'full_name'),
                'phone': form_str(form, 'phone'),
                'profile_picture': form_str(form, 'profile_picture'),
            },
        )
        resident_service.update_resident(
            db,
            _resident_id(principal),
            {
                'emergency_contact_name': optional_str(form, 'emergency_contact_name'),
                'emergency_contact_phone': optional_str(form, 'emergency_contact_phone'),
            },
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'user', principal.id, full_name=form_str(form, 'full_name'))
    db.commit()
    return RedirectResponse('/resident/profile?notice=saved', status_code=303)


@router.post('/profile/password')
async def profile_password(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        auth_service.update_password(
            db,
            user_id=principal.id,
            current_password=str(form.get('current_password', '')),
            new_password=str(form.get('new_password', '')),
            confirm_password=str(form.get('confirm_password', '')),
        )
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'user', principal.id, password_changed=True)
    db.commit()
    return RedirectResponse('/resident/profile?notice=password', status_code=303)


@router.get('/chat')
def chat_page(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    room = chat_service.get_or_create_chat_room(db, _resident_id(principal))
    chat_service.mark_messages_as_read(db, room['id'], principal.id)
    db.commit()
    return _render(
        request,
        'resident/chat.html',
        {'principal': principal, 'room': room, 'messages': chat_service.list_chat_messages(db, room['id'])},
    )


@router.post('/chat/messages')
async def chat_send(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    room = chat_service.get_or_create_chat_room(db, _resident_id(principal))
    try:
        chat_message = chat_service.send_chat_message(db, room_id=room['id'], sender=principal, message=form_str(form, 'message'))
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'chat_message', chat_message['id'], room_id=room['id'])
    db.commit()
    return RedirectResponse('/resident/chat', status_code=303)


@router.get('/chat/messages')
def chat_messages_json(
    request: Request,
    principal: Principal = Depends(resident_access),
    db: Session = Depends(get_db),
):
    room = chat_service.get_or_create_chat_room(db, _resident_id(principal))
    after_id = request.query_params.get('after_id', '')
    messages = chat_service.list_chat_messages(db, room['id'], after_id=int(after_id) if after_id.isdigit() else None)
    chat_service.mark_messages_as_read(db, room['id'], principal.id)
    db.commit()
    return JSONResponse({'room_id': room['id'], 'messages': [_message_json(message) for message in messages]})


def _message_json(message: dict) -> dict:
    return {
        'id': message['id'],
        'sender_name': message['sender_name'],
        'sender_role': message['sender_role'],
        'sender_user_id': message['sender_user_id'],
        'message': message['message'],
        'is_read': message['is_read'],
        'created_at': message['created_at'].isoformat() if message['created_at'] else None,
    }
