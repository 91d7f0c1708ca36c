"""
Chilean peso amounts.

Receipts in Chile print thousands with "." and (rarely) decimals with ",":
``$ 44.995`` is forty-four thousand pesos, ``44.995,50`` carries fifty cents.
Everything persisted is a whole number of pesos, so parsing is split in two
steps: ``normalize_amount`` resolves separators into a ``Decimal`` and
``to_pesos`` rounds it half-up to an ``int``.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_NON_AMOUNT_CHARS = re.compile(r"[^0-9,.\-]")


def normalize_amount(raw: object) -> Decimal | None:
    """Resolve Chilean thousands/decimal separators. Returns None when unparseable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, Decimal)):
        return Decimal(raw) if Decimal(raw).is_finite() else None
    if isinstance(raw, float):
        # json.loads turns 1e999 into inf and accepts NaN.
        return Decimal(str(raw)) if math.isfinite(raw) else None

    s = str(raw).replace(" ", "").replace("\xa0", "").replace("\u202f", "")
    s = _NON_AMOUNT_CHARS.sub("", s)
    negative = s.startswith("-")
    s = s.replace("-", "")
    if not s or not any(ch.isdigit() for ch in s):
        return None

    if "," in s:
        # Dots group thousands, the last comma is the decimal point.
        whole, _, frac = s.rpartition(",")
        normalized = whole.replace(".", "").replace(",", "") + "." + frac
    else:
        normalized = s.replace(".", "")

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None
    return -value if negative else value


def to_pesos(value: Decimal | int | float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_pesos(raw: object) -> int | None:
    value = normalize_amount(raw)
    if value is None:
        return None
    return to_pesos(value)


def estimate_tax(total: int, *, rate: Decimal) -> int:
    """IVA contained in a receipt total, rounded to whole pesos."""
    if total <= 0:
        return 0
    return to_pesos(Decimal(total) * rate)


def format_clp(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}".replace(",", ".")
