"""Share pipeline: native platform share with a menu of fallback channels."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from .errors import ShareFailure
from .exporter import Exporter, ExportedFile, FileSink
from .preview import InvoiceView
from .schemas import ExportMetadata

logger = logging.getLogger(__name__)

UrlOpener = Callable[[str], object]


class ShareChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    DOWNLOAD = "download"


class ShareOption(BaseModel):
    channel: ShareChannel
    name: str
    icon: str
    url: Optional[str] = None


@dataclass(frozen=True)
class ShareContext:
    file: ExportedFile
    metadata: ExportMetadata
    file_url: Optional[str] = None


class ShareResult(BaseModel):
    success: bool
    method: str
    options: Optional[Dict[str, ShareOption]] = None
    url: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None
    # Carried so a menu choice can be executed later; never serialized.
    context: Any = Field(default=None, exclude=True)


class NativeSharer(ABC):
    """Platform share sheet, when the runtime has one."""

    @abstractmethod
    def can_share(self, file: ExportedFile) -> bool:
        ...

    @abstractmethod
    def share(self, file: ExportedFile, title: str, text: str) -> None:
        ...


class NoNativeShare(NativeSharer):
    """Servers and terminals have no share sheet: always fall back to the menu."""

    def can_share(self, file: ExportedFile) -> bool:
        return False

    def share(self, file: ExportedFile, title: str, text: str) -> None:
        raise ShareFailure("Native sharing is not available")


def _summary(metadata: ExportMetadata) -> str:
    return (
        f"Invoice {metadata.invoice_number} for {metadata.invoice_for_name}\n"
        f"Total: {metadata.currency} {metadata.total_display}"
    )


def email_url(metadata: ExportMetadata) -> str:
    # mailto: links cannot carry attachments; the PDF has to be attached by hand.
    subject = quote(f"Invoice {metadata.invoice_number} - {metadata.invoice_for_name}", safe="")
    body = quote(
        f"Dear {metadata.invoice_for_name},\n\n"
        f"Please find attached invoice {metadata.invoice_number}.\n\n"
        f"Total: {metadata.currency} {metadata.total_display}\n\n"
        "Best regards",
        safe="",
    )
    return f"mailto:?subject={subject}&body={body}"


def whatsapp_url(metadata: ExportMetadata) -> str:
    text = quote(f"{_summary(metadata)}\n\nPlease check your email for the PDF invoice.", safe="")
    return f"https://wa.me/?text={text}"


def telegram_url(metadata: ExportMetadata, file_url: str) -> str:
    return f"https://t.me/share/url?url={quote(file_url, safe='')}&text={quote(_summary(metadata), safe='')}"


def menu_options(context: ShareContext) -> Dict[str, ShareOption]:
    file_url = context.file_url or context.file.filename
    return {
        ShareChannel.EMAIL.value: ShareOption(
            channel=ShareChannel.EMAIL, name="Email", icon="✉️", url=email_url(context.metadata)
        ),
        ShareChannel.WHATSAPP.value: ShareOption(
            channel=ShareChannel.WHATSAPP, name="WhatsApp", icon="💬", url=whatsapp_url(context.metadata)
        ),
        ShareChannel.TELEGRAM.value: ShareOption(
            channel=ShareChannel.TELEGRAM, name="Telegram", icon="✈️", url=telegram_url(context.metadata, file_url)
        ),
        ShareChannel.DOWNLOAD.value: ShareOption(channel=ShareChannel.DOWNLOAD, name="Download PDF", icon="📥"),
    }


def execute(
    channel: ShareChannel | str,
    context: ShareContext,
    opener: Optional[UrlOpener] = None,
    sink: Optional[FileSink] = None,
) -> ShareResult:
    """Run one share channel. Failures are reported in the result, never retried."""
    channel = ShareChannel(channel)
    if channel is ShareChannel.DOWNLOAD:
        if sink is None:
            return ShareResult(success=False, method=channel.value, error="No download destination configured")
        try:
            path = sink.save(context.file.filename, context.file.content)
        except OSError as exc:
            logger.error("Download of %s failed: %s", context.file.filename, exc)
            return ShareResult(success=False, method=channel.value, error=str(exc))
        return ShareResult(success=True, method=channel.value, path=str(path))

    url = menu_options(context)[channel.value].url
    if opener is not None:
        try:
            opener(url)
        except Exception as exc:
            logger.error("Could not open %s share link: %s", channel.value, exc)
            return ShareResult(success=False, method=channel.value, url=url, error=str(exc))
    return ShareResult(success=True, method=channel.value, url=url)


class SharePipeline:
    def __init__(
        self,
        exporter: Exporter,
        native: Optional[NativeSharer] = None,
        opener: Optional[UrlOpener] = None,
        sink: Optional[FileSink] = None,
    ) -> None:
        self.exporter = exporter
        self.native = native or NoNativeShare()
        self.opener = opener
        self.sink = sink if sink is not None else exporter.sink

    def share_pdf(self, view: InvoiceView, metadata: ExportMetadata, file_url: Optional[str] = None) -> ShareResult:
        """Share the invoice PDF natively, or return the fallback channel menu.

        Raises ExportFailure when the PDF itself cannot be produced.
        """
        file = self.exporter.generate_pdf_blob(view, metadata)
        context = ShareContext(file=file, metadata=metadata, file_url=file_url)

        if self.native.can_share(file):
            try:
                self.native.share(file, title=f"Invoice {metadata.invoice_number}", text=self._native_text(metadata))
            except Exception as exc:
                logger.error("Native share of %s failed: %s", file.filename, exc)
                return ShareResult(success=False, method="native", error=str(exc), context=context)
            return ShareResult(success=True, method="native", context=context)

        return ShareResult(success=True, method="menu", options=menu_options(context), context=context)

    def execute(self, channel: ShareChannel | str, context: ShareContext) -> ShareResult:
        return execute(channel, context, opener=self.opener, sink=self.sink)

    @staticmethod
    def _native_text(metadata: ExportMetadata) -> str:
        return f"Invoice for {metadata.invoice_for_name} - Total: {metadata.currency} {metadata.total_display}"
