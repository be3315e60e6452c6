import random
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

_BASE36 = string.digits + string.ascii_uppercase


def utcnow() -> datetime:
    """Naive UTC timestamp.

    SQLite drops tzinfo on the way back, so every stored timestamp is naive UTC
    to keep comparisons identical across store backends.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_order_number() -> str:
    """Human-readable order number, e.g. COV-LZ3K9Q1A-7F2K."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"COV-{stamp}-{suffix}"


def calculate_platform_fee(amount_cents: int, take_rate: float) -> int:
    fee = (Decimal(amount_cents) * Decimal(str(take_rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(fee)


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:2]}***@{domain}"
