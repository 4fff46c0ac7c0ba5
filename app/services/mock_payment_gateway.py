from __future__ import annotations

import hmac
import random
from urllib.parse import urlencode

from app.config import settings
from app.services.midtrans_payment_gateway import notification_signature
from app.services.payment_gateway import ChargeRequest, ChargeResponse, GatewayStatus

_OUTCOME_TO_GATEWAY_STATUS = {
    'success': ('settlement', '200'),
    'pending': ('pending', '201'),
    'failed': ('deny', '202'),
}


class MockPaymentGateway:
    def __init__(self, outcome: str | None = None) -> None:
        self.outcome = (outcome or settings.mock_payment_outcome).strip().lower()
        if self.outcome != 'random' and self.outcome not in _OUTCOME_TO_GATEWAY_STATUS:
            raise ValueError(f'Unknown mock payment outcome: {self.outcome}')
        # Notifications are signed the Midtrans way, keyed by the app secret.
        self.signing_key = settings.app_secret_key

    def _pick_outcome(self) -> str:
        if self.outcome == 'random':
            return random.choice(sorted(_OUTCOME_TO_GATEWAY_STATUS))
        return self.outcome

    def create_charge(self, request: ChargeRequest) -> ChargeResponse:
        query = urlencode({'order_id': request.order_id})
        return ChargeResponse(
            redirect_url=f'/payment/finish?{query}',
            token=f'mock-{request.order_id}',
            raw={
                'order_id': request.order_id,
                'gross_amount': str(request.gross_amount),
                'customer_name': request.customer_name,
                'gateway': 'mock',
            },
        )

    def get_status(self, order_id: str) -> GatewayStatus:
        transaction_status, status_code = _OUTCOME_TO_GATEWAY_STATUS[self._pick_outcome()]
        return GatewayStatus(
            order_id=order_id,
            transaction_status=transaction_status,
            status_code=status_code,
            gross_amount=None,
            transaction_id=f'mock-{order_id}',
            payment_type='mock',
            raw={'order_id': order_id, 'transaction_status': transaction_status, 'gateway': 'mock'},
        )

    def sign_notification(self, payload: dict) -> dict:
        signature = notification_signature(
            str(payload.get('order_id') or ''),
            str(payload.get('status_code') or ''),
            str(payload.get('gross_amount') or ''),
            self.signing_key,
        )
        return {**payload, 'signature_key': signature}

    def verify_notification(self, payload: dict) -> bool:
        signature = str(payload.get('signature_key') or '')
        if not payload.get('order_id') or not signature:
            return False
        expected = self.sign_notification(payload)['signature_key']
        return hmac.compare_digest(signature, expected)
