"""Invoice record store: the contract plus REST and local backends."""
from __future__ import annotations

import json
import logging
import re
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from .cache import INVOICES_KEY, LocalCache
from .errors import DuplicateInvoiceNumber, InvalidBackup, NotFound, QuotaExceeded, StoreError
from .schemas import InvoicePayload, PersistedInvoice
from .utils import utcnow_iso

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def sequence_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}-(\d+)", flags=re.IGNORECASE)


def max_sequence(invoice_numbers: Iterable[Optional[str]], prefix: str) -> int:
    """Highest numeric suffix among ``PREFIX-<digits>`` numbers, 0 when none match."""
    pattern = sequence_pattern(prefix)
    highest = 0
    for number in invoice_numbers:
        match = pattern.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


class InvoiceStore(ABC):
    """Durable CRUD for invoice records addressed by an opaque id."""

    @abstractmethod
    def create(self, payload: InvoicePayload) -> PersistedInvoice:
        """Insert a record; raises DuplicateInvoiceNumber or StoreError."""

    @abstractmethod
    def update(self, record_id: str, payload: InvoicePayload) -> PersistedInvoice:
        """Replace a record's fields; raises NotFound or StoreError."""

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Remove a record; raises NotFound or StoreError."""

    @abstractmethod
    def get_by_id(self, record_id: str) -> PersistedInvoice:
        """Fetch a record; raises NotFound or StoreError."""

    @abstractmethod
    def list_all(self) -> List[PersistedInvoice]:
        """All records, newest first."""

    @abstractmethod
    def find_max_sequence_by_prefix(self, prefix: str) -> int:
        """Highest numeric suffix of invoice numbers starting with ``prefix-``."""


class LocalInvoiceStore(InvoiceStore):
    """Offline store keeping records inside the local cache."""

    def __init__(self, cache: LocalCache, key: str = INVOICES_KEY) -> None:
        self.cache = cache
        self.key = key

    def _records(self) -> List[Dict[str, Any]]:
        data = self.cache.get_json(self.key, [])
        return data if isinstance(data, list) else []

    def _save(self, records: List[Dict[str, Any]]) -> None:
        try:
            self.cache.set_json(self.key, records)
        except QuotaExceeded as exc:
            raise StoreError(str(exc)) from exc

    def create(self, payload: InvoicePayload) -> PersistedInvoice:
        records = self._records()
        self._check_unique(records, payload.invoice_number)
        now = utcnow_iso()
        record = {**payload.to_record(), "id": f"inv_{uuid.uuid4().hex}", "created_at": now, "updated_at": now}
        records.append(record)
        self._save(records)
        return PersistedInvoice.model_validate(record)

    def update(self, record_id: str, payload: InvoicePayload) -> PersistedInvoice:
        records = self._records()
        index = self._index(records, record_id)
        self._check_unique(records, payload.invoice_number, exclude_id=record_id)
        record = {**records[index], **payload.to_record(), "updated_at": utcnow_iso()}
        records[index] = record
        self._save(records)
        return PersistedInvoice.model_validate(record)

    def delete(self, record_id: str) -> None:
        records = self._records()
        index = self._index(records, record_id)
        del records[index]
        self._save(records)

    def get_by_id(self, record_id: str) -> PersistedInvoice:
        records = self._records()
        return PersistedInvoice.model_validate(records[self._index(records, record_id)])

    def list_all(self) -> List[PersistedInvoice]:
        records = sorted(self._records(), key=lambda r: r.get("created_at") or "", reverse=True)
        return [PersistedInvoice.model_validate(r) for r in records]

    def find_max_sequence_by_prefix(self, prefix: str) -> int:
        return max_sequence((r.get("invoice_number") for r in self._records()), prefix)

    def export_json(self) -> str:
        """All offline invoices as a pretty-printed JSON array."""
        return json.dumps(self._records(), indent=2, ensure_ascii=False)

    def import_json(self, text: str) -> int:
        """Replace the offline invoices with a backup made by ``export_json``.

        Nothing is changed unless every entry is a valid invoice record.
        """
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InvalidBackup(f"Backup is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise InvalidBackup("Invalid format: expected an array of invoices")
        try:
            records = [PersistedInvoice.model_validate(row).to_record() for row in data]
        except ValidationError as exc:
            raise InvalidBackup(f"Backup holds an invalid invoice: {exc}") from exc
        self._save(records)
        logger.info("Imported %d offline invoices", len(records))
        return len(records)

    def clear(self) -> None:
        self.cache.remove(self.key)

    def _index(self, records: List[Dict[str, Any]], record_id: str) -> int:
        for i, record in enumerate(records):
            if record.get("id") == record_id:
                return i
        raise NotFound(record_id)

    def _check_unique(self, records: List[Dict[str, Any]], invoice_number: str, exclude_id: Optional[str] = None) -> None:
        for record in records:
            if record.get("id") != exclude_id and record.get("invoice_number") == invoice_number:
                raise DuplicateInvoiceNumber(invoice_number)


class RestInvoiceStore(InvoiceStore):
    """Store backed by a PostgREST table (e.g. a hosted Supabase project)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "invoices",
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.table = table
        self.client = client or httpx.Client(timeout=None)
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def create(self, payload: InvoicePayload) -> PersistedInvoice:
        rows = self._request("POST", json=[payload.to_record()], invoice_number=payload.invoice_number)
        if not rows:
            raise StoreError("Store returned no row for created invoice")
        return PersistedInvoice.model_validate(rows[0])

    def update(self, record_id: str, payload: InvoicePayload) -> PersistedInvoice:
        body = {**payload.to_record(), "updated_at": utcnow_iso()}
        rows = self._request(
            "PATCH", params={"id": f"eq.{record_id}"}, json=body, invoice_number=payload.invoice_number
        )
        if not rows:
            raise NotFound(record_id)
        return PersistedInvoice.model_validate(rows[0])

    def delete(self, record_id: str) -> None:
        rows = self._request("DELETE", params={"id": f"eq.{record_id}"})
        if not rows:
            raise NotFound(record_id)

    def get_by_id(self, record_id: str) -> PersistedInvoice:
        rows = self._request("GET", params={"id": f"eq.{record_id}", "select": "*"})
        if not rows:
            raise NotFound(record_id)
        return PersistedInvoice.model_validate(rows[0])

    def list_all(self) -> List[PersistedInvoice]:
        rows = self._request("GET", params={"select": "*", "order": "created_at.desc"})
        return [PersistedInvoice.model_validate(row) for row in rows]

    def find_max_sequence_by_prefix(self, prefix: str) -> int:
        rows = self._request(
            "GET",
            params={"select": "invoice_number", "invoice_number": f"ilike.{prefix}-*"},
        )
        return max_sequence((row.get("invoice_number") for row in rows), prefix)

    def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        invoice_number: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        try:
            response = self.client.request(method, self.endpoint, params=params, json=json, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, self.endpoint, exc)
            raise StoreError(f"Could not reach invoice store: {exc}") from exc

        if response.is_error:
            detail = self._error_detail(response)
            if response.status_code == 409 or detail.get("code") == UNIQUE_VIOLATION:
                raise DuplicateInvoiceNumber(invoice_number)
            message = detail.get("message") or response.text or response.reason_phrase
            logger.error("%s %s returned %s: %s", method, self.endpoint, response.status_code, message)
            raise StoreError(f"Invoice store error ({response.status_code}): {message}", status_code=response.status_code)

        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    @staticmethod
    def _error_detail(response: httpx.Response) -> Dict[str, Any]:
        try:
            detail = response.json()
        except ValueError:
            return {}
        return detail if isinstance(detail, dict) else {}
