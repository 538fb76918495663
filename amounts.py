"""Parsing and formatting of rupiah amounts.

Amounts are plain integers in the smallest currency unit. User input follows
the Indonesian convention: ``.`` groups thousands, ``,`` marks decimals, and
the shorthand suffixes ``jt``/``juta`` (million) and ``rb``/``ribu``/``k``
(thousand) are accepted.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

_AMOUNT_RE = re.compile(r"^(?P<number>[\d.,]+)(?P<suffix>jt|juta|rb|ribu|k)?$")

_MULTIPLIERS = {
    "jt": 1_000_000,
    "juta": 1_000_000,
    "rb": 1_000,
    "ribu": 1_000,
    "k": 1_000,
}


def _to_int(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_amount(text: Optional[str]) -> Optional[int]:
    """Return the integer amount written in ``text`` or ``None``.

    ``"1.5jt"`` -> 1_500_000, ``"500rb"`` -> 500_000, ``"25.000"`` -> 25_000,
    ``"12,6"`` -> 13.
    """
    if text is None:
        return None
    clean = re.sub(r"\s+", "", text).lower()
    if not clean:
        return None
    match = _AMOUNT_RE.match(clean)
    if not match or not any(ch.isdigit() for ch in match.group("number")):
        return None

    number = match.group("number")
    suffix = match.group("suffix")
    if suffix:
        # "1.5jt" and "1,5jt" both mean one and a half million.
        number = number.replace(",", ".")
    else:
        number = number.replace(".", "").replace(",", ".")
    try:
        value = Decimal(number)
    except InvalidOperation:
        return None
    if value.is_nan():
        return None
    if suffix:
        value = value * _MULTIPLIERS[suffix]
    return _to_int(value)


def parse_signed_amount(text: Optional[str]) -> Optional[int]:
    """Like :func:`parse_amount` but a leading ``-`` makes the result negative.

    Balances may go below zero; transaction amounts never do, so only balance
    and snapshot input goes through here.
    """
    if text is None:
        return None
    clean = text.strip()
    if clean.startswith("-"):
        amount = parse_amount(clean[1:])
        return -amount if amount is not None else None
    return parse_amount(clean)


def format_amount(amount: int) -> str:
    """Group digits the way id-ID does: ``1500000`` -> ``1.500.000``."""
    sign = "-" if amount < 0 else ""
    return sign + f"{abs(int(amount)):,}".replace(",", ".")


def format_currency(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {format_amount(abs(amount))}"


def format_currency_compact(amount: int) -> str:
    absolute = abs(amount)
    if absolute >= 1_000_000_000:
        body = f"{absolute / 1_000_000_000:.1f}B"
    elif absolute >= 1_000_000:
        body = f"{absolute / 1_000_000:.1f}M"
    elif absolute >= 1_000:
        body = f"{absolute / 1_000:.1f}K"
    else:
        body = f"{absolute:.0f}"
    return ("-" if amount < 0 else "") + "Rp " + body
