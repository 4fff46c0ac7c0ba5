from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from decimal import ROUND_HALF_UP, Decimal
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from app.config import settings
from app.services.payment_gateway import ChargeRequest, ChargeResponse, GatewayStatus, status_from_payload

logger = logging.getLogger(__name__)

SANDBOX_SNAP_URL = 'https://app.sandbox.midtrans.com'
SANDBOX_API_URL = 'https://api.sandbox.midtrans.com'
PRODUCTION_SNAP_URL = 'https://app.midtrans.com'
PRODUCTION_API_URL = 'https://api.midtrans.com'


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f'{order_id}{status_code}{gross_amount}{server_key}'
    return hashlib.sha512(raw.encode('utf-8')).hexdigest()


class MidtransPaymentGateway:
    def __init__(self) -> None:
        if not settings.midtrans_server_key:
            raise ValueError('MIDTRANS_SERVER_KEY is required when PAYMENT_GATEWAY=midtrans')

        self.server_key = settings.midtrans_server_key
        if settings.midtrans_is_production:
            self.snap_url, self.api_url = PRODUCTION_SNAP_URL, PRODUCTION_API_URL
        else:
            self.snap_url, self.api_url = SANDBOX_SNAP_URL, SANDBOX_API_URL
        token = base64.b64encode(f'{self.server_key}:'.encode('utf-8')).decode('ascii')
        self.headers = {
            'Authorization': f'Basic {token}',
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }

    def _request(self, url: str, payload: dict | None = None) -> dict:
        data = json.dumps(payload).encode('utf-8') if payload is not None else None
        req = Request(url=url, data=data, headers=self.headers, method='POST' if payload is not None else 'GET')
        try:
            with urlopen(req, timeout=settings.midtrans_timeout_seconds) as response:
                parsed = json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            logger.warning('Midtrans API error %s on %s: %s', exc.code, url, body)
            raise ValueError(f'Midtrans API error {exc.code}: {body}') from exc
        except URLError as exc:
            logger.warning('Midtrans network error on %s: %s', url, exc.reason)
            raise ValueError(f'Midtrans network error: {exc.reason}') from exc

        if parsed.get('error_messages'):
            raise ValueError(f'Midtrans returned errors: {parsed["error_messages"]}')
        return parsed

    def create_charge(self, request: ChargeRequest) -> ChargeResponse:
        gross_amount = int(request.gross_amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        payload = {
            'transaction_details': {'order_id': request.order_id, 'gross_amount': gross_amount},
            'item_details': [
                {'id': request.order_id, 'price': gross_amount, 'quantity': 1, 'name': request.item_name[:50]}
            ],
            'customer_details': {
                'first_name': request.customer_name or '',
                'email': request.customer_email or '',
                'phone': request.customer_phone or '',
            },
            'callbacks': {'finish': request.finish_url},
        }
        logger.info('Creating Midtrans charge for order %s', request.order_id)
        response = self._request(f'{self.snap_url}/snap/v1/transactions', payload)
        redirect_url = response.get('redirect_url')
        if not redirect_url:
            raise ValueError('Midtrans response has no redirect_url')
        return ChargeResponse(redirect_url=redirect_url, token=response.get('token'), raw=response)

    def get_status(self, order_id: str) -> GatewayStatus:
        response = self._request(f'{self.api_url}/v2/{quote(order_id, safe="")}/status')
        return status_from_payload(response)

    def verify_notification(self, payload: dict) -> bool:
        signature = str(payload.get('signature_key') or '')
        if not signature:
            return False
        expected = notification_signature(
            str(payload.get('order_id') or ''),
            str(payload.get('status_code') or ''),
            str(payload.get('gross_amount') or ''),
            self.server_key,
        )
        return hmac.compare_digest(signature, expected)
