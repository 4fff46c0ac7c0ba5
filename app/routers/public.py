from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_client_ip, get_user_agent
from app.forms import parse_enum, parse_int
from app.models import ActionType, BookingDurationType, FacilityCategory, UnitStatus, UnitType
from app.security.csrf import verify_csrf
from app.services import (
    contact_service,
    facility_service,
    gallery_service,
    settings_service,
    unit_booking_service,
    unit_service,
)
from app.services.audit_service import log_audit

router = APIRouter(tags=['public'])

FEATURED_UNITS_LIMIT = 6


def _render(request: Request, template: str, context: dict, status_code: int = 200):
    return request.app.state.templates.TemplateResponse(template, {'request': request, **context}, status_code=status_code)


@router.get('/')
def home_page(request: Request, db: Session = Depends(get_db)):
    units = unit_service.list_units(db, status=UnitStatus.AVAILABLE)[:FEATURED_UNITS_LIMIT]
    return _render(
        request,
        'home.html',
        {
            'units': units,
            'photo_urls': unit_service.primary_photo_urls(db, [unit['id'] for unit in units]),
            'facilities': facility_service.list_active_facilities(db)[:4],
            'featured_photos': gallery_service.list_gallery_photos(db, featured_only=True)[:6],
            'contact': settings_service.get_contact_settings(db),
        },
    )


@router.get('/catalogue')
def catalogue_page(request: Request, db: Session = Depends(get_db)):
    params = request.query_params
    error = None
    try:
        unit_type = parse_enum(UnitType, params.get('unit_type'), field='unit type')
        status = parse_enum(UnitStatus, params.get('status'), field='status')
        floor = parse_int(params.get('floor'), field='floor')
        price_range = (params.get('price_range') or '').strip().lower() or None
        if price_range == 'all':
            price_range = None
        units = unit_service.list_units(db, unit_type=unit_type, status=status, floor=floor, price_range=price_range)
    except ValueError as exc:
        error = str(exc)
        units = unit_service.list_units(db)

    return _render(
        request,
        'catalogue.html',
        {
            'units': units,
            'photo_urls': unit_service.primary_photo_urls(db, [unit['id'] for unit in units]),
            'floors': unit_service.list_floors(db),
            'unit_types': list(UnitType),
            'statuses': list(UnitStatus),
            'price_ranges': unit_service.PRICE_RANGES,
            'filters': dict(params),
            'error': error,
        },
        status_code=400 if error else 200,
    )


@router.get('/units/{unit_id}')
def unit_detail_page(unit_id: int, request: Request, db: Session = Depends(get_db)):
    try:
        unit, photos = unit_service.get_unit_with_photos(db, unit_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    admin_fee = unit_booking_service.current_admin_fee(db)
    prices = {
        duration.value: unit_booking_service.calculate_booking_price(unit, duration, admin_fee)
        for duration in BookingDurationType
    }
    return _render(request, 'unit_detail.html', {'unit': unit, 'photos': photos, 'prices': prices})


@router.get('/facilities')
def facilities_page(request: Request, db: Session = Depends(get_db)):
    try:
        category = parse_enum(FacilityCategory, request.query_params.get('category'), field='category')
    except ValueError:
        category = None
    return _render(
        request,
        'facilities.html',
        {
            'facilities': facility_service.list_active_facilities(db, category=category),
            'photo_urls': facility_service.facility_photo_urls(db),
            'categories': list(FacilityCategory),
            'selected_category': category.value if category else 'all',
        },
    )


@router.get('/gallery')
def gallery_page(request: Request, db: Session = Depends(get_db)):
    category = (request.query_params.get('category') or '').strip().lower() or None
    if category == 'all':
        category = None
    return _render(
        request,
        'gallery.html',
        {
            'photos': gallery_service.list_gallery_photos(db, category=category),
            'categories': gallery_service.list_categories(db),
            'selected_category': category or 'all',
        },
    )


@router.get('/contact')
def contact_page(request: Request, db: Session = Depends(get_db)):
    return _render(
        request,
        'contact.html',
        {'contact': settings_service.get_contact_settings(db), 'error': None, 'form': {}, 'sent': bool(request.query_params.get('sent'))},
    )


@router.post('/contact')
async def contact_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        message = contact_service.submit_contact_message(db, form)
    except ValueError as exc:
        return _render(
            request,
            'contact.html',
            {'contact': settings_service.get_contact_settings(db), 'error': str(exc), 'form': dict(form), 'sent': False},
            status_code=400,
        )

    principal = getattr(request.state, 'principal', None)
    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action_type=ActionType.CREATE,
        entity_type='contact_message',
        entity_id=message['id'],
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values={'email': message['email'], 'subject': message['subject']},
    )
    db.commit()
    return RedirectResponse('/contact?sent=1', status_code=303)
