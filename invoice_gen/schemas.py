"""Data models used across the totals engine, store, exporter, CLI, and API."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .utils import format_money, parse_amount, today_utc

DEFAULT_CURRENCY = "৳"
DEFAULT_NOTES = "All payments are non refundable"

# Raw form input: whatever the user typed, parsed leniently later.
RawAmount = Union[Decimal, float, int, str, None]


class InvoiceStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"
    NOT_PAID = "Not Paid"
    DUE = "Due"
    OVERDUE = "Overdue"
    PARTIAL = "Partial"


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    description: str = ""
    price: RawAmount = 0


class Totals(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subtotal: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")

    def display(self) -> Dict[str, str]:
        return {
            "subtotal": format_money(self.subtotal),
            "discount": format_money(self.discount),
            "total": format_money(self.total),
        }


class InvoiceDraft(BaseModel):
    """In-memory invoice being edited; see ``invoice_gen.draft`` for updates."""

    model_config = ConfigDict(extra="ignore")

    currency: str = DEFAULT_CURRENCY
    invoice_number: str = ""
    payment_date: str = Field(default_factory=lambda: today_utc().isoformat())
    invoice_for_name: str = ""
    invoice_for_company: str = ""
    transfer_method: str = ""
    transaction_id: str = ""
    status: InvoiceStatus = InvoiceStatus.PENDING
    notes: str = DEFAULT_NOTES
    amount_in_words: str = ""
    discount: RawAmount = 0
    line_items: List[LineItem] = Field(default_factory=lambda: [LineItem(id=1)])
    totals: Totals = Field(default_factory=Totals)


class RecordLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = ""
    price: float = 0


class InvoicePayload(BaseModel):
    """What a draft looks like at submission time."""

    model_config = ConfigDict(extra="ignore")

    template_id: int = 1
    currency: str = DEFAULT_CURRENCY
    invoice_number: str
    payment_date: Optional[str] = None
    invoice_for_name: str = ""
    invoice_for_company: Optional[str] = None
    transfer_method: Optional[str] = None
    transaction_id: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.PENDING
    notes: Optional[str] = None
    amount_in_words: Optional[str] = None
    discount: float = 0
    subtotal: float = 0
    total: float = 0
    line_items: List[RecordLineItem] = Field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        """Wire representation; empty optional strings become null."""
        data = self.model_dump(mode="json")
        for key in ("invoice_for_company", "transfer_method", "transaction_id", "notes", "amount_in_words"):
            if not data.get(key):
                data[key] = None
        return data


class PersistedInvoice(InvoicePayload):
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_id(self) -> str:
        return self.invoice_number or self.id


class InvoiceFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    search: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class InvoiceStatistics(BaseModel):
    total: int
    total_amount: float
    last_created: Optional[str] = None


class ExportMetadata(BaseModel):
    """Fields of an invoice the export and share pipelines care about."""

    model_config = ConfigDict(extra="ignore")

    invoice_number: Optional[str] = None
    invoice_for_name: Optional[str] = None
    currency: str = DEFAULT_CURRENCY
    total: Union[Decimal, float, str] = 0

    @property
    def total_display(self) -> str:
        return format_money(parse_amount(self.total))


class ExportResult(BaseModel):
    success: bool
    filename: str
    path: Optional[str] = None


class SubmitOutcome(BaseModel):
    record: PersistedInvoice
    created: bool
    warnings: List[str] = Field(default_factory=list)
