from __future__ import annotations

from functools import lru_cache

from app.config import settings
from app.services.midtrans_payment_gateway import MidtransPaymentGateway
from app.services.mock_payment_gateway import MockPaymentGateway


@lru_cache(maxsize=1)
def get_payment_gateway():
    gateway = settings.payment_gateway.strip().lower()
    if gateway == 'midtrans':
        return MidtransPaymentGateway()
    return MockPaymentGateway()
