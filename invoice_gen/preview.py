"""HTML preview of an invoice; this is the view the exporter rasterizes."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

from .schemas import ExportMetadata, InvoicePayload
from .utils import format_money, parse_amount, parse_date

TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class InvoiceView:
    """A rendered invoice, ready to be rasterized."""

    html: str
    base_url: Optional[str] = None


class PreviewRenderer:
    """Render invoices through the jinja2 templates shipped with the package."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR) -> None:
        self.jinja_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
        )
        self.jinja_env.filters["money"] = lambda value: format_money(parse_amount(value))
        self.jinja_env.filters["date"] = self._format_date
        self.template_dir = template_dir

    def render(self, invoice: InvoicePayload) -> InvoiceView:
        try:
            template = self.jinja_env.get_template(f"invoice_{invoice.template_id}.html")
        except jinja2.TemplateNotFound:
            template = self.jinja_env.get_template("invoice_1.html")
        html = template.render(**self._context(invoice))
        return InvoiceView(html=html, base_url=str(self.template_dir))

    def _context(self, invoice: InvoicePayload) -> Dict[str, Any]:
        return {
            "invoice": invoice,
            "status_color": STATUS_COLORS.get(invoice.status.value, "#6b7280"),
        }

    @staticmethod
    def _format_date(value: Optional[str]) -> str:
        parsed = parse_date(value)
        return parsed.strftime("%d %b %Y") if parsed else (value or "")


STATUS_COLORS = {
    "Paid": "#10b981",
    "Pending": "#f59e0b",
    "Not Paid": "#ef4444",
    "Due": "#f97316",
    "Overdue": "#dc2626",
    "Partial": "#8b5cf6",
}


def export_metadata(invoice: InvoicePayload) -> ExportMetadata:
    return ExportMetadata(
        invoice_number=invoice.invoice_number,
        invoice_for_name=invoice.invoice_for_name,
        currency=invoice.currency,
        total=invoice.total,
    )
