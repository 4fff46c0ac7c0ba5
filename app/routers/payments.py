from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.auth import Principal, assert_resident_scope, get_current_principal
from app.db import get_db
from app.dependencies import get_client_ip, get_user_agent
from app.models import ActionType
from app.services import payment_service
from app.services.audit_service import log_audit
from app.services.gateway_factory import get_payment_gateway
from app.services.payment_gateway import status_from_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/payment', tags=['payment'])

RESULT_TEMPLATES = {
    'success': 'payment/success.html',
    'pending': 'payment/pending.html',
    'failed': 'payment/failed.html',
}


def _render(request: Request, template: str, context: dict, status_code: int = 200):
    return request.app.state.templates.TemplateResponse(template, {'request': request, **context}, status_code=status_code)


@router.get('/finish')
def payment_finish(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order_id = (request.query_params.get('order_id') or '').strip()
    transaction = payment_service.get_transaction_by_order_id(db, order_id) if order_id else None
    if transaction is None:
        raise HTTPException(status_code=404, detail='Payment order not found')
    payment = payment_service.get_payment(db, transaction['payment_id'])
    assert_resident_scope(principal, payment['resident_id'])

    try:
        gateway_status = get_payment_gateway().get_status(order_id)
        result = payment_service.apply_gateway_status(
            db, order_id=order_id, gateway_status=gateway_status.transaction_status, raw=gateway_status.raw
        )
    except ValueError as exc:
        logger.warning('Could not confirm payment order %s: %s', order_id, exc)
        db.rollback()
        return RedirectResponse(f'/payment/pending?order_id={order_id}', status_code=303)

    log_audit(
        db,
        actor_user_id=principal.id,
        action_type=ActionType.UPDATE,
        entity_type='payment_transaction',
        entity_id=transaction['id'],
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        old_values={'status': transaction['status']},
        new_values={'result': result, 'gateway_status': gateway_status.transaction_status},
    )
    db.commit()
    return RedirectResponse(f'/payment/{result}?order_id={order_id}', status_code=303)


def _result_page(result: str, request: Request, principal: Principal, db: Session):
    order_id = (request.query_params.get('order_id') or '').strip()
    transaction = payment_service.get_transaction_by_order_id(db, order_id) if order_id else None
    payment = None
    if transaction is not None:
        payment = payment_service.get_payment(db, transaction['payment_id'])
        assert_resident_scope(principal, payment['resident_id'])
    return _render(
        request,
        RESULT_TEMPLATES[result],
        {'principal': principal, 'result': result, 'transaction': transaction, 'payment': payment},
    )


@router.get('/success')
def payment_success(request: Request, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return _result_page('success', request, principal, db)


@router.get('/pending')
def payment_pending(request: Request, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return _result_page('pending', request, principal, db)


@router.get('/failed')
def payment_failed(request: Request, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return _result_page('failed', request, principal, db)


@router.post('/notification')
async def payment_notification(request: Request, db: Session = Depends(get_db)):
    try:
        payload = json.loads(await request.body() or b'{}')
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail='Notification body is not JSON') from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail='Notification body must be an object')

    if not get_payment_gateway().verify_notification(payload):
        logger.warning('Rejected payment notification for order %s', payload.get('order_id'))
        raise HTTPException(status_code=403, detail='Invalid notification signature')

    try:
        status = status_from_payload(payload)
        result = payment_service.apply_gateway_status(
            db, order_id=status.order_id, gateway_status=status.transaction_status, raw=payload
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_user_id=None,
        action_type=ActionType.UPDATE,
        entity_type='payment_transaction',
        entity_id=status.order_id,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        new_values={'result': result, 'gateway_status': status.transaction_status},
    )
    db.commit()
    logger.info('Payment notification for order %s applied as %s', status.order_id, result)
    return JSONResponse({'ok': True, 'result': result})
