from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone

INVOICE_PREFIX = 'INV'
TICKET_PREFIX = 'TKT'
FACILITY_BOOKING_PREFIX = 'BK'
UNIT_BOOKING_PREFIX = 'UB'
TRANSACTION_PREFIX = 'TRX'

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LENGTH = 4


def random_suffix(length: int = _SUFFIX_LENGTH) -> str:
    return ''.join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def generate_reference_number(prefix: str, *, now: datetime | None = None) -> str:
    # Unique only by improbability; the unique constraint on the column is the guard.
    moment = now or datetime.now(tz=timezone.utc)
    millis = int(moment.timestamp() * 1000)
    return f'{prefix.strip().upper()}-{millis}-{random_suffix()}'
