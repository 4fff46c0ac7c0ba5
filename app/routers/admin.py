from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.auth import Principal, Role, require_role
from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip, get_user_agent
from app.forms import form_bool, form_str, optional_str, parse_date, parse_decimal, parse_enum, parse_int
from app.models import (
    ActionType,
    AnnouncementCategory,
    AnnouncementStatus,
    BookingStatus,
    FacilityCategory,
    FacilityStatus,
    PaymentStatus,
    PaymentType,
    ResidentStatus,
    TicketPriority,
    TicketStatus,
    UnitOrientation,
    UnitStatus,
    UnitType,
)
from app.security.csrf import verify_csrf
from app.services import (
    announcement_service,
    chat_service,
    contact_service,
    dashboard_service,
    facility_service,
    gallery_service,
    payment_service,
    resident_service,
    settings_service,
    ticket_service,
    unit_service,
)
from app.services.audit_service import log_audit
from app.services.table_service import RowNotFoundError

router = APIRouter(prefix='/admin', tags=['admin'])
admin_access = require_role(Role.ADMIN)


def _render(request: Request, template: str, context: dict, status_code: int = 200):
    return request.app.state.templates.TemplateResponse(template, {'request': request, **context}, status_code=status_code)


def _audit(
    request: Request,
    db: Session,
    principal: Principal,
    action_type: ActionType,
    entity_type: str,
    entity_id,
    *,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> None:
    log_audit(
        db,
        actor_user_id=principal.id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        old_values=old_values,
        new_values=new_values,
    )


def _query_enum(request: Request, enum_cls, key: str):
    try:
        return parse_enum(enum_cls, request.query_params.get(key), field=key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get('/dashboard')
def dashboard(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _render(
        request,
        'admin/dashboard.html',
        {'principal': principal, 'summary': dashboard_service.admin_summary(db, date.today())},
    )


# Units


@router.get('/units')
def units_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = _query_enum(request, UnitStatus, 'status')
    unit_type = _query_enum(request, UnitType, 'unit_type')
    units = unit_service.list_units(db, status=status, unit_type=unit_type)
    return _render(
        request,
        'admin/units.html',
        {
            'principal': principal,
            'units': units,
            'photo_urls': unit_service.primary_photo_urls(db, [unit['id'] for unit in units]),
            'statuses': list(UnitStatus),
            'unit_types': list(UnitType),
            'orientations': list(UnitOrientation),
            'selected_status': status.value if status else 'all',
            'selected_type': unit_type.value if unit_type else 'all',
        },
    )


@router.post('/units')
async def unit_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        unit = unit_service.create_unit(db, unit_service.parse_unit_form(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'unit', unit['id'], new_values=unit)
    db.commit()
    return RedirectResponse(f'/admin/units/{unit["id"]}', status_code=303)


@router.get('/units/{unit_id}')
def unit_detail(
    unit_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        unit, photos = unit_service.get_unit_with_photos(db, unit_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _render(
        request,
        'admin/unit_detail.html',
        {
            'principal': principal,
            'unit': unit,
            'photos': photos,
            'statuses': list(UnitStatus),
            'unit_types': list(UnitType),
            'orientations': list(UnitOrientation),
        },
    )


@router.post('/units/{unit_id}')
async def unit_update(
    unit_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = unit_service.get_unit(db, unit_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Unit not found')
    try:
        unit = unit_service.update_unit(db, unit_id, unit_service.parse_unit_form(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'unit', unit_id, old_values=old, new_values=unit)
    db.commit()
    return RedirectResponse(f'/admin/units/{unit_id}', status_code=303)


@router.post('/units/{unit_id}/status')
async def unit_status(
    unit_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = unit_service.get_unit(db, unit_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Unit not found')
    try:
        status = parse_enum(UnitStatus, form_str(form, 'status'), field='status')
        if status is None:
            raise ValueError('Status is required')
        unit_service.set_unit_status(db, unit_id, status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'unit', unit_id, old_values={'status': old['status']}, new_values={'status': status})
    db.commit()
    return RedirectResponse('/admin/units', status_code=303)


@router.post('/units/{unit_id}/delete')
def unit_delete(
    unit_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        unit = unit_service.delete_unit(db, unit_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.DELETE, 'unit', unit_id, old_values=unit)
    db.commit()
    return RedirectResponse('/admin/units', status_code=303)


@router.post('/units/{unit_id}/photos')
async def unit_photo_add(
    unit_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        photo = unit_service.add_unit_photo(
            db,
            unit_id=unit_id,
            photo_url=form_str(form, 'photo_url'),
            caption=optional_str(form, 'caption'),
            is_primary=form_bool(form, 'is_primary'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPLOAD, 'unit_photo', photo['id'], new_values={'unit_id': unit_id, 'photo_url': photo['photo_url']})
    db.commit()
    return RedirectResponse(f'/admin/units/{unit_id}', status_code=303)


@router.post('/units/{unit_id}/photos/{photo_id}/primary')
def unit_photo_primary(
    unit_id: int,
    photo_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        unit_service.set_primary_photo(db, unit_id=unit_id, photo_id=photo_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'unit_photo', photo_id, new_values={'is_primary': True})
    db.commit()
    return RedirectResponse(f'/admin/units/{unit_id}', status_code=303)


@router.post('/units/{unit_id}/photos/{photo_id}/delete')
def unit_photo_delete(
    unit_id: int,
    photo_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        unit_service.delete_unit_photo(db, unit_id=unit_id, photo_id=photo_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.DELETE, 'unit_photo', photo_id, old_values={'unit_id': unit_id})
    db.commit()
    return RedirectResponse(f'/admin/units/{unit_id}', status_code=303)


# Residents


@router.get('/residents')
def residents_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = _query_enum(request, ResidentStatus, 'status')
    search = (request.query_params.get('q') or '').strip()
    return _render(
        request,
        'admin/residents.html',
        {
            'principal': principal,
            'residents': resident_service.list_residents(db, status=status, search=search or None),
            'available_units': unit_service.list_units(db, status=UnitStatus.AVAILABLE),
            'statuses': list(ResidentStatus),
            'selected_status': status.value if status else 'all',
            'search': search,
        },
    )


@router.post('/residents')
async def resident_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        resident = resident_service.admin_create_resident(db, form)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'resident', resident['id'], new_values=resident)
    db.commit()
    return RedirectResponse(f'/admin/residents/{resident["id"]}', status_code=303)


@router.get('/residents/{resident_id}')
def resident_detail(
    resident_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    resident = resident_service.get_resident_with_unit(db, resident_id)
    if resident is None:
        raise HTTPException(status_code=404, detail='Resident not found')
    units = [
        unit
        for unit in unit_service.list_units(db)
        if unit['status'] == UnitStatus.AVAILABLE.value or unit['id'] == resident['unit_id']
    ]
    return _render(
        request,
        'admin/resident_detail.html',
        {
            'principal': principal,
            'resident': resident,
            'units': units,
            'statuses': list(ResidentStatus),
            'payments': payment_service.list_resident_payments(db, resident_id),
            'tickets': ticket_service.list_resident_tickets(db, resident_id),
        },
    )


@router.post('/residents/{resident_id}')
async def resident_update(
    resident_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = resident_service.get_resident(db, resident_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Resident not found')
    try:
        data = resident_service.parse_resident_form(form)
        data.pop('status')
        resident = resident_service.update_resident(db, resident_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'resident', resident_id, old_values=old, new_values=resident)
    db.commit()
    return RedirectResponse(f'/admin/residents/{resident_id}', status_code=303)


@router.post('/residents/{resident_id}/status')
async def resident_status(
    resident_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        status = parse_enum(ResidentStatus, form_str(form, 'status'), field='status')
        if status is None:
            raise ValueError('Status is required')
        resident = resident_service.set_resident_status(db, resident_id, status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'resident', resident_id, new_values={'status': resident['status']})
    db.commit()
    return RedirectResponse(f'/admin/residents/{resident_id}', status_code=303)


# Payments


@router.get('/payments')
def payments_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    params = request.query_params
    status = _query_enum(request, PaymentStatus, 'status')
    payment_type = _query_enum(request, PaymentType, 'payment_type')
    try:
        date_from = parse_date(params.get('date_from'), field='from date')
        date_to = parse_date(params.get('date_to'), field='to date')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    search = (params.get('q') or '').strip()
    return _render(
        request,
        'admin/payments.html',
        {
            'principal': principal,
            'payments': payment_service.list_payments(
                db, status=status, payment_type=payment_type, date_from=date_from, date_to=date_to, search=search or None
            ),
            'residents': resident_service.list_residents(db, status=ResidentStatus.ACTIVE),
            'statuses': list(PaymentStatus),
            'payment_types': list(PaymentType),
            'filters': dict(params),
            'today': date.today(),
        },
    )


@router.post('/payments')
async def payment_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        resident_id = parse_int(form_str(form, 'resident_id'), field='resident')
        if resident_id is None:
            raise ValueError('Resident is required')
        resident = resident_service.get_resident(db, resident_id)
        if resident is None:
            raise ValueError('Resident not found')
        payment_type = parse_enum(PaymentType, form_str(form, 'payment_type'), field='payment type')
        if payment_type is None:
            raise ValueError('Payment type is required')
        amount = parse_decimal(form_str(form, 'amount'), field='amount')
        if not amount:
            raise ValueError('Amount must be greater than zero')
        payment = payment_service.create_payment(
            db,
            resident_id=resident_id,
            unit_id=resident['unit_id'],
            payment_type=payment_type,
            amount=amount,
            due_date=parse_date(form_str(form, 'due_date'), field='due date'),
            admin_fee=parse_decimal(form_str(form, 'admin_fee'), field='admin fee', default=Decimal('0')),
            discount=parse_decimal(form_str(form, 'discount'), field='discount', default=Decimal('0')),
            penalty=parse_decimal(form_str(form, 'penalty'), field='penalty', default=Decimal('0')),
            notes=optional_str(form, 'notes'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'payment', payment['id'], new_values=payment)
    db.commit()
    return RedirectResponse('/admin/payments', status_code=303)


@router.post('/payments/mark-overdue')
def payments_mark_overdue(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    updated = payment_service.mark_overdue_payments(db, date.today())
    _audit(request, db, principal, ActionType.UPDATE, 'payment', None, new_values={'marked_overdue': updated})
    db.commit()
    return RedirectResponse('/admin/payments?status=overdue', status_code=303)


@router.get('/payments/{payment_id}')
def payment_detail(
    payment_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    payment = payment_service.get_payment(db, payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail='Payment not found')
    return _render(
        request,
        'admin/payment_detail.html',
        {
            'principal': principal,
            'payment': payment,
            'resident': resident_service.get_resident_with_unit(db, payment['resident_id']),
            'transactions': payment_service.list_payment_transactions(db, payment_id),
            'statuses': list(PaymentStatus),
        },
    )


@router.post('/payments/{payment_id}/status')
async def payment_status(
    payment_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = payment_service.get_payment(db, payment_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Payment not found')
    try:
        status = parse_enum(PaymentStatus, form_str(form, 'status'), field='status')
        if status is None:
            raise ValueError('Status is required')
        payment = payment_service.update_payment_status(db, payment_id, status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(
        request,
        db,
        principal,
        ActionType.UPDATE,
        'payment',
        payment_id,
        old_values={'status': old['status']},
        new_values={'status': payment['status'], 'payment_date': payment['payment_date']},
    )
    db.commit()
    return RedirectResponse(f'/admin/payments/{payment_id}', status_code=303)


# Announcements and gallery


@router.get('/content')
def content_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = _query_enum(request, AnnouncementStatus, 'status')
    return _render(
        request,
        'admin/content.html',
        {
            'principal': principal,
            'announcements': announcement_service.list_announcements(db, status=status),
            'photos': gallery_service.list_gallery_photos(db),
            'gallery_categories': gallery_service.list_categories(db),
            'categories': list(AnnouncementCategory),
            'statuses': list(AnnouncementStatus),
            'selected_status': status.value if status else 'all',
        },
    )


@router.post('/announcements')
async def announcement_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        announcement = announcement_service.create_announcement(
            db, created_by=principal.id, data=announcement_service.parse_announcement_form(form)
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'announcement', announcement['id'], new_values=announcement)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


@router.get('/announcements/{announcement_id}')
def announcement_edit_page(
    announcement_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    announcement = announcement_service.get_announcement(db, announcement_id)
    if announcement is None:
        raise HTTPException(status_code=404, detail='Announcement not found')
    return _render(
        request,
        'admin/announcement_edit.html',
        {
            'principal': principal,
            'announcement': announcement,
            'categories': list(AnnouncementCategory),
            'statuses': list(AnnouncementStatus),
        },
    )


@router.post('/announcements/{announcement_id}')
async def announcement_update(
    announcement_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = announcement_service.get_announcement(db, announcement_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Announcement not found')
    try:
        announcement = announcement_service.update_announcement(
            db, announcement_id, announcement_service.parse_announcement_form(form)
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'announcement', announcement_id, old_values=old, new_values=announcement)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


@router.post('/announcements/{announcement_id}/delete')
def announcement_delete(
    announcement_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        announcement = announcement_service.delete_announcement(db, announcement_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.DELETE, 'announcement', announcement_id, old_values=announcement)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


@router.post('/gallery')
async def gallery_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        photo = gallery_service.create_gallery_photo(
            db,
            uploaded_by=principal.id,
            photo_url=form_str(form, 'photo_url'),
            caption=optional_str(form, 'caption'),
            category=optional_str(form, 'category'),
            tags=optional_str(form, 'tags'),
            is_featured=form_bool(form, 'is_featured'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPLOAD, 'gallery_photo', photo['id'], new_values=photo)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


@router.post('/gallery/{photo_id}')
async def gallery_update(
    photo_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        photo = gallery_service.update_gallery_photo(
            db,
            photo_id,
            caption=form_str(form, 'caption'),
            category=form_str(form, 'category'),
            tags=form_str(form, 'tags'),
            is_featured=form_bool(form, 'is_featured'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'gallery_photo', photo_id, new_values=photo)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


@router.post('/gallery/{photo_id}/delete')
def gallery_delete(
    photo_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        gallery_service.delete_gallery_photo(db, photo_id)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.DELETE, 'gallery_photo', photo_id)
    db.commit()
    return RedirectResponse('/admin/content', status_code=303)


# Facilities


@router.get('/facilities')
def facilities_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = _query_enum(request, FacilityStatus, 'status')
    booking_status = _query_enum(request, BookingStatus, 'booking_status')
    return _render(
        request,
        'admin/facilities.html',
        {
            'principal': principal,
            'facilities': facility_service.list_facilities(db, status=status),
            'photo_urls': facility_service.facility_photo_urls(db),
            'bookings': facility_service.list_all_bookings(db, status=booking_status),
            'categories': list(FacilityCategory),
            'statuses': list(FacilityStatus),
            'booking_statuses': list(BookingStatus),
            'selected_status': status.value if status else 'all',
            'selected_booking_status': booking_status.value if booking_status else 'all',
        },
    )


@router.post('/facilities')
async def facility_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        facility = facility_service.create_facility(db, facility_service.parse_facility_form(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'facility', facility['id'], new_values=facility)
    db.commit()
    return RedirectResponse('/admin/facilities', status_code=303)


@router.get('/facilities/{facility_id}')
def facility_edit_page(
    facility_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    facility = facility_service.get_facility(db, facility_id)
    if facility is None:
        raise HTTPException(status_code=404, detail='Facility not found')
    return _render(
        request,
        'admin/facility_edit.html',
        {
            'principal': principal,
            'facility': facility,
            'categories': list(FacilityCategory),
            'statuses': list(FacilityStatus),
        },
    )


@router.post('/facilities/{facility_id}')
async def facility_update(
    facility_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    old = facility_service.get_facility(db, facility_id)
    if old is None:
        raise HTTPException(status_code=404, detail='Facility not found')
    try:
        facility = facility_service.update_facility(db, facility_id, facility_service.parse_facility_form(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'facility', facility_id, old_values=old, new_values=facility)
    db.commit()
    return RedirectResponse('/admin/facilities', status_code=303)


@router.post('/facilities/{facility_id}/photos')
async def facility_photo_add(
    facility_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    if facility_service.get_facility(db, facility_id) is None:
        raise HTTPException(status_code=404, detail='Facility not found')
    try:
        photo = facility_service.add_facility_photo(
            db, facility_id=facility_id, photo_url=form_str(form, 'photo_url'), caption=optional_str(form, 'caption')
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPLOAD, 'facility_photo', photo['id'], new_values={'facility_id': facility_id})
    db.commit()
    return RedirectResponse(f'/admin/facilities/{facility_id}', status_code=303)


@router.post('/facility-bookings/{booking_id}/status')
async def facility_booking_status(
    booking_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        status = parse_enum(BookingStatus, form_str(form, 'status'), field='status')
        if status is None:
            raise ValueError('Status is required')
        booking = facility_service.set_booking_status(db, booking_id, status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'facility_booking', booking_id, new_values={'status': booking['status']})
    db.commit()
    return RedirectResponse('/admin/facilities', status_code=303)


# Tickets


@router.get('/tickets')
def tickets_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    status = _query_enum(request, TicketStatus, 'status')
    priority = _query_enum(request, TicketPriority, 'priority')
    return _render(
        request,
        'admin/tickets.html',
        {
            'principal': principal,
            'tickets': ticket_service.list_all_tickets(db, status=status, priority=priority),
            'statuses': list(TicketStatus),
            'priorities': list(TicketPriority),
            'selected_status': status.value if status else 'all',
            'selected_priority': priority.value if priority else 'all',
        },
    )


@router.get('/tickets/{ticket_id}')
def ticket_detail(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        ticket, updates, attachments = ticket_service.get_ticket_with_updates(db, ticket_id, include_internal=True)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _render(
        request,
        'admin/ticket_detail.html',
        {
            'principal': principal,
            'ticket': ticket,
            'updates': updates,
            'attachments': attachments,
            'resident': resident_service.get_resident_with_unit(db, ticket['resident_id']),
            'staff': ticket_service.list_staff(db),
            'statuses': list(TicketStatus),
        },
    )


@router.post('/tickets/{ticket_id}/status')
async def ticket_status(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        status = parse_enum(TicketStatus, form_str(form, 'status'), field='status')
        if status is None:
            raise ValueError('Status is required')
        ticket = ticket_service.change_ticket_status(
            db, ticket_id=ticket_id, user_id=principal.id, status=status, note=optional_str(form, 'note')
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'ticket', ticket_id, new_values={'status': ticket['status']})
    db.commit()
    return RedirectResponse(f'/admin/tickets/{ticket_id}', status_code=303)


@router.post('/tickets/{ticket_id}/assign')
async def ticket_assign(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        assignee = parse_int(form_str(form, 'assigned_to'), field='assignee')
        ticket_service.assign_ticket(db, ticket_id, assignee)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'ticket', ticket_id, new_values={'assigned_to': assignee})
    db.commit()
    return RedirectResponse(f'/admin/tickets/{ticket_id}', status_code=303)


@router.post('/tickets/{ticket_id}/updates')
async def ticket_add_update(
    ticket_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        update = ticket_service.add_ticket_update(
            db,
            ticket_id=ticket_id,
            user_id=principal.id,
            message=form_str(form, 'message'),
            is_internal=form_bool(form, 'is_internal'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'ticket_update', update['id'], new_values={'ticket_id': ticket_id, 'is_internal': update['is_internal']})
    db.commit()
    return RedirectResponse(f'/admin/tickets/{ticket_id}', status_code=303)


# Chat


@router.get('/chat')
def chat_rooms_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _render(request, 'admin/chat.html', {'principal': principal, 'rooms': chat_service.list_chat_rooms(db), 'room': None, 'messages': []})


@router.get('/chat/{room_id}')
def chat_room_page(
    room_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    room = chat_service.get_chat_room(db, room_id)
    if room is None:
        raise HTTPException(status_code=404, detail='Chat room not found')
    chat_service.mark_messages_as_read(db, room_id, principal.id)
    db.commit()
    return _render(
        request,
        'admin/chat.html',
        {
            'principal': principal,
            'rooms': chat_service.list_chat_rooms(db),
            'room': room,
            'resident': resident_service.get_resident_with_unit(db, room['resident_id']),
            'messages': chat_service.list_chat_messages(db, room_id),
        },
    )


@router.get('/chat/{room_id}/messages')
def chat_room_messages(
    room_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    if chat_service.get_chat_room(db, room_id) is None:
        raise HTTPException(status_code=404, detail='Chat room not found')
    after_id = request.query_params.get('after_id', '')
    messages = chat_service.list_chat_messages(db, room_id, after_id=int(after_id) if after_id.isdigit() else None)
    chat_service.mark_messages_as_read(db, room_id, principal.id)
    db.commit()
    return JSONResponse(
        {
            'room_id': room_id,
            'messages': [
                {
                    'id': message['id'],
                    'sender_name': message['sender_name'],
                    'sender_role': message['sender_role'],
                    'message': message['message'],
                    'created_at': message['created_at'].isoformat() if message['created_at'] else None,
                }
                for message in messages
            ],
        }
    )


@router.post('/chat/{room_id}/messages')
async def chat_send(
    room_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        chat_message = chat_service.send_chat_message(db, room_id=room_id, sender=principal, message=form_str(form, 'message'))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.CREATE, 'chat_message', chat_message['id'], new_values={'room_id': room_id})
    db.commit()
    return RedirectResponse(f'/admin/chat/{room_id}', status_code=303)


# Contact messages and settings


@router.get('/contact-messages')
def contact_messages_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    raw = (request.query_params.get('handled') or '').strip().lower()
    handled = {'yes': True, 'no': False}.get(raw)
    return _render(
        request,
        'admin/contact_messages.html',
        {
            'principal': principal,
            'messages': contact_service.list_contact_messages(db, handled=handled),
            'selected_handled': raw or 'all',
        },
    )


@router.post('/contact-messages/{message_id}/handled')
async def contact_message_handled(
    message_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    handled = form_str(form, 'handled', 'true').lower() != 'false'
    try:
        contact_service.mark_contact_message_handled(db, message_id, handled)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'contact_message', message_id, new_values={'handled': handled})
    db.commit()
    return RedirectResponse('/admin/contact-messages', status_code=303)


@router.get('/settings')
def settings_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _render(
        request,
        'admin/settings.html',
        {
            'principal': principal,
            'admin_fee': settings_service.get_decimal_setting(
                db, settings_service.UNIT_BOOKING_ADMIN_FEE_KEY, settings.unit_booking_admin_fee
            ),
            'contact': settings_service.get_contact_settings(db),
            'saved': bool(request.query_params.get('saved')),
        },
    )


@router.post('/settings')
async def settings_update(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        admin_fee = parse_decimal(form_str(form, 'admin_fee'), field='admin fee')
        if admin_fee is not None:
            settings_service.set_setting(
                db, settings_service.UNIT_BOOKING_ADMIN_FEE_KEY, str(admin_fee), 'Admin fee added to unit bookings'
            )
        contact = {key: form_str(form, key) for key in settings_service.CONTACT_SETTING_KEYS}
        for key, value in contact.items():
            settings_service.set_setting(db, key, value or None)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    _audit(request, db, principal, ActionType.UPDATE, 'system_settings', None, new_values={'admin_fee': admin_fee, **contact})
    db.commit()
    return RedirectResponse('/admin/settings?saved=1', status_code=303)
