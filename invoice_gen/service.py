"""Invoice workflow: drafts, submission, listing, previews, exports and sharing."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from . import draft as drafts
from .cache import DiskCache, LocalCache
from .config import Settings
from .errors import StoreError
from .exporter import DirectorySink, Exporter, HtmlRasterizer
from .preview import InvoiceView, PreviewRenderer, export_metadata
from .schemas import (
    DEFAULT_CURRENCY,
    DEFAULT_NOTES,
    ExportMetadata,
    InvoiceDraft,
    InvoiceFilters,
    InvoicePayload,
    InvoiceStatistics,
    PersistedInvoice,
    SubmitOutcome,
)
from .sequence import SequenceAllocator
from .share import SharePipeline
from .store import InvoiceStore, LocalInvoiceStore, RestInvoiceStore
from .utils import parse_date

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(
        self,
        store: InvoiceStore,
        allocator: SequenceAllocator,
        exporter: Exporter,
        sharer: Optional[SharePipeline] = None,
        renderer: Optional[PreviewRenderer] = None,
        default_currency: str = DEFAULT_CURRENCY,
        default_notes: str = DEFAULT_NOTES,
    ) -> None:
        self.store = store
        self.allocator = allocator
        self.exporter = exporter
        self.sharer = sharer or SharePipeline(exporter)
        self.renderer = renderer or PreviewRenderer()
        self.default_currency = default_currency
        self.default_notes = default_notes

    # Drafts
    def new_draft(self) -> InvoiceDraft:
        return drafts.new_draft(
            invoice_number=self.allocator.next_invoice_number(),
            currency=self.default_currency,
            notes=self.default_notes,
        )

    def load_draft(self, record_id: str) -> InvoiceDraft:
        return drafts.from_record(self.store.get_by_id(record_id))

    def submit(self, draft: InvoiceDraft, record_id: Optional[str] = None, template_id: int = 1) -> SubmitOutcome:
        """Create or update the stored invoice, then remember its number locally.

        Store errors propagate unchanged and leave the draft untouched so the
        caller can retry.
        """
        payload = drafts.to_payload(draft, template_id=template_id)
        if record_id:
            record = self.store.update(record_id, payload)
        else:
            record = self.store.create(payload)
        logger.info("Saved invoice %s (%s)", record.invoice_number, record.id)

        warnings: List[str] = []
        warning = self.allocator.commit(record.invoice_number)
        if warning:
            warnings.append(warning)
        return SubmitOutcome(record=record, created=not record_id, warnings=warnings)

    # Records
    def get(self, record_id: str) -> PersistedInvoice:
        return self.store.get_by_id(record_id)

    def delete(self, record_id: str) -> None:
        self.store.delete(record_id)
        logger.info("Deleted invoice %s", record_id)

    def list_invoices(self, filters: Optional[InvoiceFilters] = None) -> List[PersistedInvoice]:
        records = self.store.list_all()
        if filters is None:
            return records
        return [record for record in records if _matches(record, filters)]

    def statistics(self) -> InvoiceStatistics:
        records = self.store.list_all()
        return InvoiceStatistics(
            total=len(records),
            total_amount=round(sum(record.total or 0 for record in records), 2),
            last_created=records[0].created_at if records else None,
        )

    # Offline backups
    def backup(self) -> str:
        return self._offline_store().export_json()

    def restore(self, text: str) -> int:
        return self._offline_store().import_json(text)

    def clear_offline(self) -> None:
        self._offline_store().clear()
        logger.info("Cleared offline invoices")

    def _offline_store(self) -> LocalInvoiceStore:
        if not isinstance(self.store, LocalInvoiceStore):
            raise StoreError("Backups are only available for the local store")
        return self.store

    # Rendering
    def preview(self, invoice: InvoicePayload) -> InvoiceView:
        return self.renderer.render(invoice)

    def view_with_metadata(self, record_id: str) -> tuple[InvoiceView, ExportMetadata]:
        record = self.get(record_id)
        return self.preview(record), export_metadata(record)


def _matches(record: PersistedInvoice, filters: InvoiceFilters) -> bool:
    if filters.search:
        term = filters.search.lower()
        if term not in (record.invoice_number or "").lower() and term not in (record.invoice_for_name or "").lower():
            return False
    if filters.status and record.status != filters.status:
        return False
    if filters.start_date or filters.end_date:
        created = parse_date(record.created_at)
        if created is None:
            return False
        if filters.start_date and created < filters.start_date:
            return False
        if filters.end_date and created > filters.end_date:
            return False
    return True


def build_store(settings: Settings, cache: LocalCache) -> InvoiceStore:
    if settings.store_backend == "remote":
        return RestInvoiceStore(settings.supabase_url, settings.supabase_key, table=settings.table)
    return LocalInvoiceStore(cache)


def create_service(settings: Settings) -> InvoiceService:
    cache = DiskCache(settings.cache_path, quota_bytes=settings.cache_quota_bytes)
    store = build_store(settings, cache)
    exporter = Exporter(HtmlRasterizer(), sink=DirectorySink(Path(settings.export_dir)))
    return InvoiceService(
        store=store,
        allocator=SequenceAllocator(store, cache, prefix=settings.invoice_prefix),
        exporter=exporter,
        default_currency=settings.default_currency,
        default_notes=settings.default_notes,
    )
