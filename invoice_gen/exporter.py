"""Export pipeline: invoice view -> raster image -> PDF or image file."""
from __future__ import annotations

import io
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

import pdfplumber
from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .errors import ExportFailure, UnsupportedFormat
from .preview import InvoiceView
from .schemas import ExportMetadata, ExportResult
from .utils import clean_filename_part, today_utc

logger = logging.getLogger(__name__)

CSS_DPI = 96
PAGE_WIDTH_MM = 210
IMAGE_FORMATS = {
    "png": ("PNG", "image/png"),
    "jpeg": ("JPEG", "image/jpeg"),
    "jpg": ("JPEG", "image/jpeg"),
    "webp": ("WEBP", "image/webp"),
}


@dataclass(frozen=True)
class ExportedFile:
    content: bytes
    filename: str
    media_type: str


def generate_filename(metadata: ExportMetadata, extension: str, on: Optional[date] = None) -> str:
    """``{invoice}_{client}_{yyyy-mm-dd}.{ext}`` with non-alphanumerics as ``_``, trailing ones dropped."""
    invoice_number = clean_filename_part(metadata.invoice_number or "") or "invoice"
    client_name = clean_filename_part(metadata.invoice_for_name or "") or "client"
    day = (on or today_utc()).isoformat()
    return f"{invoice_number}_{client_name}_{day}.{extension}"


def flatten_on_white(image: Image.Image) -> Image.Image:
    """Composite onto an opaque white background so transparency never leaks into exports."""
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


class Rasterizer(ABC):
    @abstractmethod
    def rasterize(self, view: InvoiceView, scale: int = 2) -> Image.Image:
        """Render the whole view as one image at ``scale`` times CSS pixel density."""


class HtmlRasterizer(Rasterizer):
    """Lay out the HTML with WeasyPrint and rasterize each page with pdfplumber.

    Pages are stacked top to bottom so long invoices come out as one tall
    image, the same shape a screenshot of the preview would have.
    """

    def rasterize(self, view: InvoiceView, scale: int = 2) -> Image.Image:
        from weasyprint import HTML

        pdf_bytes = HTML(string=view.html, base_url=view.base_url).write_pdf()
        pages: List[Image.Image] = []
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            for page in pdf.pages:
                pages.append(page.to_image(resolution=CSS_DPI * scale).original.convert("RGBA"))
        if not pages:
            raise ExportFailure("Invoice view rendered no pages")

        width = max(p.width for p in pages)
        stacked = Image.new("RGBA", (width, sum(p.height for p in pages)), (0, 0, 0, 0))
        offset = 0
        for page_image in pages:
            stacked.paste(page_image, (0, offset))
            offset += page_image.height
        return stacked


class FileSink(ABC):
    """Where finished exports are handed over (download folder, HTTP response...)."""

    @abstractmethod
    def save(self, filename: str, content: bytes) -> Path:
        ...


class DirectorySink(FileSink):
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def save(self, filename: str, content: bytes) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / filename
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".export-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            os.replace(tmp_name, target)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return target


class Exporter:
    def __init__(
        self,
        rasterizer: Rasterizer,
        sink: Optional[FileSink] = None,
        scale: int = 2,
        today: Callable[[], date] = today_utc,
    ) -> None:
        self.rasterizer = rasterizer
        self.sink = sink
        self.scale = scale
        self.today = today

    # Public API
    def generate_pdf_blob(self, view: InvoiceView, metadata: ExportMetadata) -> ExportedFile:
        image = self._rasterize(view)
        try:
            content = self._encode_pdf(image)
        except Exception as exc:
            logger.exception("PDF encoding failed for %s", metadata.invoice_number)
            raise ExportFailure(f"Could not encode PDF: {exc}") from exc
        return ExportedFile(content, self.filename(metadata, "pdf"), "application/pdf")

    def generate_image_blob(self, view: InvoiceView, metadata: ExportMetadata, format: str = "png") -> ExportedFile:
        pil_format, media_type = self._image_format(format)
        image = self._rasterize(view)
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=pil_format, quality=100)
        except Exception as exc:
            logger.exception("Image encoding failed for %s", metadata.invoice_number)
            raise ExportFailure(f"Could not encode {format} image: {exc}") from exc
        return ExportedFile(buffer.getvalue(), self.filename(metadata, format.lower()), media_type)

    def export_pdf(self, view: InvoiceView, metadata: ExportMetadata) -> ExportResult:
        return self._deliver(self.generate_pdf_blob(view, metadata))

    def export_image(self, view: InvoiceView, metadata: ExportMetadata, format: str = "png") -> ExportResult:
        return self._deliver(self.generate_image_blob(view, metadata, format))

    def filename(self, metadata: ExportMetadata, extension: str) -> str:
        return generate_filename(metadata, extension, on=self.today())

    # Internals
    def _rasterize(self, view: InvoiceView) -> Image.Image:
        try:
            image = self.rasterizer.rasterize(view, scale=self.scale)
        except ExportFailure:
            raise
        except Exception as exc:
            logger.exception("Rasterizing invoice view failed")
            raise ExportFailure(f"Could not rasterize invoice: {exc}") from exc
        if image.width == 0 or image.height == 0:
            raise ExportFailure("Rasterized invoice is empty")
        return flatten_on_white(image)

    def _encode_pdf(self, image: Image.Image) -> bytes:
        # One A4 page, image pinned to the top edge at full width. Content
        # taller than the page is clipped rather than paginated.
        jpeg = io.BytesIO()
        image.save(jpeg, format="JPEG", quality=100)
        jpeg.seek(0)

        buffer = io.BytesIO()
        page_width, page_height = A4
        img_width = PAGE_WIDTH_MM * mm
        img_height = image.height * img_width / image.width
        pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        pdf.drawImage(ImageReader(jpeg), 0, page_height - img_height, width=img_width, height=img_height)
        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _image_format(self, format: str) -> tuple[str, str]:
        try:
            return IMAGE_FORMATS[format.lower()]
        except KeyError as exc:
            raise UnsupportedFormat(f"Unsupported image format: {format}") from exc

    def _deliver(self, exported: ExportedFile) -> ExportResult:
        if self.sink is None:
            raise ExportFailure("No destination configured for exports")
        try:
            path = self.sink.save(exported.filename, exported.content)
        except OSError as exc:
            logger.error("Could not save %s: %s", exported.filename, exc)
            raise ExportFailure(f"Could not save {exported.filename}: {exc}") from exc
        logger.info("Exported %s", path)
        return ExportResult(success=True, filename=exported.filename, path=str(path))
