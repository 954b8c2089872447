"""Utility functions shared across the invoice generator."""
from __future__ import annotations

import re
import sys
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Optional

from dateutil import parser

CENTS = Decimal("0.01")
# Amounts beyond float range are treated like parseFloat's Infinity: not a number.
MAX_AMOUNT = Decimal(sys.float_info.max)
# Wide enough to hold MAX_AMOUNT to the cent, so sums and rounding stay exact.
MONEY_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a date string into a date object; returns None on failure."""
    if not value:
        return None
    try:
        return parser.parse(value, yearfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        return None


def parse_amount(value: object) -> Decimal:
    """Leniently parse money input typed into a form.

    Mirrors ``parseFloat`` semantics: the leading numeric part of a string is
    used ("12abc" -> 12) and anything unparseable, empty, or non-finite is 0.
    Magnitudes past the float range count as non-finite.
    """
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        return _bounded(value)
    if isinstance(value, (int, float)):
        try:
            return _bounded(Decimal(str(value)))
        except InvalidOperation:
            return Decimal(0)
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return Decimal(0)
    try:
        return _bounded(Decimal(match.group(0).strip()))
    except InvalidOperation:
        return Decimal(0)


def _bounded(value: Decimal) -> Decimal:
    if not value.is_finite() or value.copy_abs() > MAX_AMOUNT:
        return Decimal(0)
    return value


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, context=MONEY_CONTEXT)


def format_money(value: Decimal) -> str:
    """Two-decimal display string, e.g. Decimal("5") -> "5.00"."""
    return f"{round_money(value):.2f}"


def clean_filename_part(value: str) -> str:
    """Replace every character outside [A-Za-z0-9] with an underscore.

    Trailing underscores are dropped so "Acme Co." becomes "Acme_Co".
    """
    return _NON_ALNUM.sub("_", value).rstrip("_")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
