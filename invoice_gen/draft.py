"""Pure update functions for an invoice draft.

Every function takes the current :class:`InvoiceDraft` and returns a new one;
nothing is mutated in place. Totals are recomputed after each change and the
amount-in-words sentence is regenerated whenever the total changes to a
positive value. A hand-edited ``amount_in_words`` therefore only survives
until the next change of total.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from .schemas import (
    DEFAULT_CURRENCY,
    DEFAULT_NOTES,
    InvoiceDraft,
    InvoicePayload,
    InvoiceStatus,
    LineItem,
    PersistedInvoice,
    RecordLineItem,
)
from .totals import amount_in_words, compute_totals
from .utils import parse_amount, parse_date, today_utc

LINE_ITEM_FIELDS = {"description", "price"}
DRAFT_FIELDS = set(InvoiceDraft.model_fields) - {"line_items", "totals"}


def new_draft(invoice_number: str = "", currency: str = DEFAULT_CURRENCY, notes: str = DEFAULT_NOTES) -> InvoiceDraft:
    return recompute(
        InvoiceDraft(
            invoice_number=invoice_number,
            currency=currency,
            notes=notes,
            payment_date=today_utc().isoformat(),
        )
    )


def recompute(draft: InvoiceDraft, previous_total: Optional[Decimal] = None) -> InvoiceDraft:
    totals = compute_totals(draft.line_items, draft.discount)
    update: dict[str, Any] = {"totals": totals}
    if previous_total is None:
        previous_total = draft.totals.total
    if totals.total != previous_total and totals.total > 0:
        update["amount_in_words"] = amount_in_words(totals.total)
    return draft.model_copy(update=update)


def _apply(draft: InvoiceDraft, **update: Any) -> InvoiceDraft:
    return recompute(draft.model_copy(update=update), previous_total=draft.totals.total)


def update_field(draft: InvoiceDraft, field: str, value: Any) -> InvoiceDraft:
    if field not in DRAFT_FIELDS:
        raise KeyError(f"Unknown draft field: {field}")
    if field == "status":
        value = InvoiceStatus(value)
    return _apply(draft, **{field: value})


def update_line_item(draft: InvoiceDraft, item_id: int, field: str, value: Any) -> InvoiceDraft:
    if field not in LINE_ITEM_FIELDS:
        raise KeyError(f"Unknown line item field: {field}")
    items = [
        item.model_copy(update={field: value}) if item.id == item_id else item
        for item in draft.line_items
    ]
    return _apply(draft, line_items=items)


def add_line_item(draft: InvoiceDraft) -> InvoiceDraft:
    next_id = max((item.id for item in draft.line_items), default=0) + 1
    return _apply(draft, line_items=[*draft.line_items, LineItem(id=next_id)])


def remove_line_item(draft: InvoiceDraft, item_id: int) -> InvoiceDraft:
    """Drop a line item; the last remaining one is cleared instead."""
    if len(draft.line_items) > 1:
        items = [item for item in draft.line_items if item.id != item_id]
    else:
        items = [
            item.model_copy(update={"description": "", "price": 0}) if item.id == item_id else item
            for item in draft.line_items
        ]
    return _apply(draft, line_items=items)


def to_payload(draft: InvoiceDraft, template_id: int = 1) -> InvoicePayload:
    """Submission view: blank line items are dropped and totals merged in."""
    kept = [
        RecordLineItem(description=item.description, price=float(parse_amount(item.price)))
        for item in draft.line_items
        if item.description.strip() or parse_amount(item.price) > 0
    ]
    totals = compute_totals(draft.line_items, draft.discount)
    return InvoicePayload(
        template_id=template_id,
        currency=draft.currency,
        invoice_number=draft.invoice_number,
        payment_date=draft.payment_date or None,
        invoice_for_name=draft.invoice_for_name,
        invoice_for_company=draft.invoice_for_company,
        transfer_method=draft.transfer_method,
        transaction_id=draft.transaction_id,
        status=draft.status,
        notes=draft.notes,
        amount_in_words=draft.amount_in_words,
        discount=float(totals.discount),
        subtotal=float(totals.subtotal),
        total=float(totals.total),
        line_items=kept,
    )


def from_record(record: PersistedInvoice) -> InvoiceDraft:
    """Rebuild an editable draft from a stored invoice."""
    payment_date = parse_date(record.payment_date)
    items = [
        LineItem(id=index + 1, description=item.description, price=item.price)
        for index, item in enumerate(record.line_items)
    ] or [LineItem(id=1)]
    draft = InvoiceDraft(
        currency=record.currency or DEFAULT_CURRENCY,
        invoice_number=record.invoice_number,
        payment_date=payment_date.isoformat() if payment_date else "",
        invoice_for_name=record.invoice_for_name or "",
        invoice_for_company=record.invoice_for_company or "",
        transfer_method=record.transfer_method or "",
        transaction_id=record.transaction_id or "",
        status=record.status,
        notes=record.notes or "",
        amount_in_words=record.amount_in_words or "",
        discount=record.discount,
        line_items=items,
    )
    return recompute(draft)
