"""Totals engine: subtotal/discount arithmetic and amount-in-words."""
from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Iterable

from .schemas import LineItem, RawAmount, Totals
from .utils import MONEY_CONTEXT, parse_amount, round_money

ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

# Indian numbering groups, largest first.
GROUPS = [
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
]


def compute_totals(line_items: Iterable[LineItem], discount: RawAmount) -> Totals:
    """Derive subtotal, discount and total from raw form input.

    Unparseable prices and discounts count as zero and negative prices add
    nothing. The discount itself may be negative (a surcharge); only the
    final total is clamped at zero.
    """
    with localcontext(MONEY_CONTEXT):
        subtotal = sum((max(Decimal(0), parse_amount(item.price)) for item in line_items), Decimal(0))
        discount_value = parse_amount(discount)
        total = max(Decimal(0), subtotal - discount_value)
    return Totals(
        subtotal=round_money(subtotal),
        discount=round_money(discount_value),
        total=round_money(total),
    )


def _below_thousand(n: int) -> str:
    if n == 0:
        return ""
    if n < 20:
        return ONES[n]
    if n < 100:
        return TENS[n // 10] + (" " + ONES[n % 10] if n % 10 else "")
    rest = _below_thousand(n % 100)
    return ONES[n // 100] + " Hundred" + (" " + rest if rest else "")


def number_to_words(n: int) -> str:
    """Spell out a non-negative integer using crore/lakh grouping.

    >>> number_to_words(1234567)
    'Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven'
    """
    if n < 0:
        raise ValueError("number_to_words only supports non-negative integers")
    if n == 0:
        return "Zero"

    words: list[str] = []
    for size, name in GROUPS:
        count, n = divmod(n, size)
        if count:
            # Crore counts of 1000 or more are spelled out recursively.
            head = number_to_words(count) if count >= 1000 else _below_thousand(count)
            words.append(f"{head} {name}")
    if n:
        words.append(_below_thousand(n))
    return " ".join(words)


def amount_in_words(total: Decimal) -> str:
    """Sentence shown on the invoice; fractional amounts are truncated."""
    return f"In Words: {number_to_words(int(total))} Only."
