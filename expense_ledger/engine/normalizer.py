"""
Amount Normalizer

Turns whatever the user typed into the amount box into a plain
fixed-point string: digits, at most one decimal point, at most two
fraction digits.

IMPORTANT: Extra fraction digits are TRUNCATED, never rounded.
"12.999" becomes "12.99". A value the user did not type is never invented.

An empty result means "no amount". Callers must not read it as zero.
"""

from decimal import Decimal
from typing import Optional

from expense_ledger.models.entry import CENT


DIGITS = frozenset("0123456789")
SEPARATOR = "."
FRACTION_DIGITS = 2


def _split(raw: Optional[str]) -> tuple[str, str, bool]:
    """
    Split raw text into (integer digits, fraction digits, saw separator).

    Everything that is not a digit or a point is dropped. The first point
    separates; digits after any later point still belong to the fraction.
    """
    whole: list[str] = []
    fraction: list[str] = []
    seen_separator = False

    for char in raw or "":
        if char == SEPARATOR:
            seen_separator = True
        elif char in DIGITS:
            (fraction if seen_separator else whole).append(char)

    return "".join(whole), "".join(fraction), seen_separator


def normalize_amount(raw: Optional[str]) -> str:
    """
    Canonicalize free-form amount text.

    Examples:
        "12.999"    -> "12.99"
        "abc12.5x"  -> "12.5"
        "1,234.5"   -> "1234.5"
        "1.2.3"     -> "1.23"
        ".5"        -> "0.5"
        "12."       -> "12"
        ""          -> ""

    Idempotent: normalize_amount(normalize_amount(x)) == normalize_amount(x).
    """
    whole, fraction, _ = _split(raw)

    if not whole and not fraction:
        return ""

    fraction = fraction[:FRACTION_DIGITS]
    whole = whole or "0"

    if fraction:
        return f"{whole}{SEPARATOR}{fraction}"
    return whole


def was_truncated(raw: Optional[str]) -> bool:
    """True when normalization dropped fraction digits beyond the second."""
    _, fraction, _ = _split(raw)
    return len(fraction) > FRACTION_DIGITS


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """
    Normalize and convert to a Decimal with exactly two fraction digits.

    Returns None when the text holds no digits at all.
    """
    normalized = normalize_amount(raw)
    if not normalized:
        return None
    return Decimal(normalized).quantize(CENT)
