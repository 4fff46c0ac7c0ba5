from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from app.models import TransactionStatus

_GATEWAY_TO_TRANSACTION_STATUS = {
    'capture': TransactionStatus.SUCCESS,
    'settlement': TransactionStatus.SUCCESS,
    'pending': TransactionStatus.PENDING,
    'deny': TransactionStatus.FAILED,
    'failure': TransactionStatus.FAILED,
    'cancel': TransactionStatus.CANCELLED,
    'expire': TransactionStatus.EXPIRED,
}


@dataclass(frozen=True)
class ChargeRequest:
    order_id: str
    gross_amount: Decimal
    item_name: str
    customer_name: str | None
    customer_email: str | None
    customer_phone: str | None
    finish_url: str


@dataclass(frozen=True)
class ChargeResponse:
    redirect_url: str
    token: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayStatus:
    order_id: str
    transaction_status: str
    status_code: str | None = None
    gross_amount: str | None = None
    transaction_id: str | None = None
    payment_type: str | None = None
    raw: dict = field(default_factory=dict)


class PaymentGateway(Protocol):
    def create_charge(self, request: ChargeRequest) -> ChargeResponse: ...

    def get_status(self, order_id: str) -> GatewayStatus: ...

    def verify_notification(self, payload: dict) -> bool: ...


def map_gateway_status(transaction_status: str) -> TransactionStatus:
    status = _GATEWAY_TO_TRANSACTION_STATUS.get((transaction_status or '').strip().lower())
    if status is None:
        raise ValueError(f'Unknown gateway transaction status: {transaction_status}')
    return status


def status_from_payload(payload: dict) -> GatewayStatus:
    order_id = str(payload.get('order_id') or '').strip()
    if not order_id:
        raise ValueError('Gateway payload has no order_id')
    return GatewayStatus(
        order_id=order_id,
        transaction_status=str(payload.get('transaction_status') or ''),
        status_code=payload.get('status_code'),
        gross_amount=payload.get('gross_amount'),
        transaction_id=payload.get('transaction_id'),
        payment_type=payload.get('payment_type'),
        raw=payload,
    )
