"""Invoice number allocation: remote store first, local counter as fallback."""
from __future__ import annotations

import logging
from typing import Optional

from .cache import SEQUENCE_KEY, LocalCache
from .errors import QuotaExceeded, StoreError
from .store import InvoiceStore, sequence_pattern

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "GP"


def format_invoice_number(prefix: str, number: int) -> str:
    return f"{prefix}-{number:04d}"


class SequenceAllocator:
    """Proposes the next invoice number without reserving it.

    Two allocations made before either invoice is saved get the same number;
    the store's uniqueness constraint on ``invoice_number`` is what rejects
    the second save.
    """

    def __init__(self, store: InvoiceStore, cache: LocalCache, prefix: str = DEFAULT_PREFIX, key: str = SEQUENCE_KEY) -> None:
        self.store = store
        self.cache = cache
        self.prefix = prefix
        self.key = key

    def next_invoice_number(self) -> str:
        highest = 0
        try:
            highest = self.store.find_max_sequence_by_prefix(self.prefix)
        except StoreError as exc:
            logger.warning("Falling back to local invoice sequence: %s", exc)
        if highest <= 0:
            return self.current_local_number()
        return format_invoice_number(self.prefix, highest + 1)

    def current_local_number(self) -> str:
        return format_invoice_number(self.prefix, self.cache.get_int(self.key) + 1)

    def commit(self, invoice_number: str) -> Optional[str]:
        """Remember the number actually used; returns a warning on cache failure."""
        match = sequence_pattern(self.prefix).match(invoice_number or "")
        if not match:
            logger.debug("Not tracking invoice number outside the %s sequence: %s", self.prefix, invoice_number)
            return None
        try:
            self.cache.set_int(self.key, int(match.group(1)))
        except QuotaExceeded as exc:
            logger.warning("Could not save invoice sequence: %s", exc)
            return f"Invoice sequence not saved locally: {exc}"
        return None
