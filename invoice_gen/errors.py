"""Error types raised by the store, cache, export, and share layers."""
from __future__ import annotations

from typing import Optional


class InvoiceGenError(Exception):
    """Base class for all invoice-gen failures."""


class StoreError(InvoiceGenError):
    """Transport or server failure talking to the invoice record store."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DuplicateInvoiceNumber(InvoiceGenError):
    """The store rejected a record because its invoice number is taken."""

    def __init__(self, invoice_number: Optional[str]) -> None:
        super().__init__(f"Invoice number already exists: {invoice_number}")
        self.invoice_number = invoice_number


class NotFound(InvoiceGenError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Invoice not found: {record_id}")
        self.record_id = record_id


class QuotaExceeded(InvoiceGenError):
    """The local cache could not persist a value."""


class ExportFailure(InvoiceGenError):
    """Rasterization or encoding of an invoice view failed."""


class ShareFailure(InvoiceGenError):
    """A share channel could not hand the invoice over."""


class InvalidBackup(InvoiceGenError):
    """An invoice backup could not be read back."""


class UnsupportedFormat(InvoiceGenError):
    """An export was requested in a format the exporter cannot produce."""
