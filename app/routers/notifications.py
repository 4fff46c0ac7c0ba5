from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.auth import Principal, get_current_principal
from app.db import get_db
from app.forms import parse_int
from app.security.csrf import verify_csrf
from app.services import notification_service

router = APIRouter(prefix='/notifications', tags=['notifications'])


def _notification_json(notification: dict) -> dict:
    return {
        'id': notification['id'],
        'title': notification['title'],
        'message': notification['message'],
        'type': notification['type'],
        'data': notification['data'] or {},
        'is_read': notification['is_read'],
        'created_at': notification['created_at'].isoformat() if notification['created_at'] else None,
    }


@router.get('')
def list_notifications(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        limit = parse_int(request.query_params.get('limit'), field='limit', default=20, minimum=1)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    notifications = notification_service.list_user_notifications(db, principal.id, limit=min(limit, 100))
    return JSONResponse(
        {
            'unread_count': notification_service.get_unread_notification_count(db, principal.id),
            'notifications': [_notification_json(item) for item in notifications],
        }
    )


@router.post('/{notification_id}/read')
def read_notification(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        notification_service.mark_notification_as_read(db, notification_id=notification_id, user_id=principal.id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return JSONResponse({'ok': True, 'unread_count': notification_service.get_unread_notification_count(db, principal.id)})


@router.post('/read-all')
def read_all_notifications(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    updated = notification_service.mark_all_notifications_as_read(db, principal.id)
    db.commit()
    return JSONResponse({'ok': True, 'updated': updated, 'unread_count': 0})
