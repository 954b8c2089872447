import io
import sys
import types

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from invoice_gen import exporter
from invoice_gen.errors import ExportFailure
from invoice_gen.exporter import HtmlRasterizer


def pdf_with_pages(count):
    """A4 pages, each with a black square in its top-left corner."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    for _ in range(count):
        pdf.setFillColorRGB(0, 0, 0)
        pdf.rect(0, A4[1] - 100, 100, 100, fill=1, stroke=0)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


@pytest.fixture
def weasyprint(monkeypatch):
    module = types.ModuleType("weasyprint")
    module.page_count = 1
    module.rendered = []

    class HTML:
        def __init__(self, string, base_url=None):
            module.rendered.append((string, base_url))

        def write_pdf(self):
            return pdf_with_pages(module.page_count)

    module.HTML = HTML
    monkeypatch.setitem(sys.modules, "weasyprint", module)
    return module


def test_single_page_is_a4_at_double_density(weasyprint, view):
    image = HtmlRasterizer().rasterize(view, scale=2)
    assert weasyprint.rendered == [(view.html, view.base_url)]
    assert image.mode == "RGBA"
    # 210mm at 96 CSS px per inch, doubled.
    assert abs(image.width - 1587) <= 1
    assert abs(image.height - 2245) <= 1
    assert image.getpixel((50, 50))[:3] == (0, 0, 0)


def test_pages_are_stacked_top_to_bottom(weasyprint, view):
    one_page = HtmlRasterizer().rasterize(view, scale=2)
    weasyprint.page_count = 2
    two_pages = HtmlRasterizer().rasterize(view, scale=2)
    assert two_pages.size == (one_page.width, one_page.height * 2)
    assert two_pages.getpixel((50, one_page.height + 50))[:3] == (0, 0, 0)
    assert two_pages.getpixel((one_page.width - 50, one_page.height + 50))[:3] == (255, 255, 255)


def test_scale_sets_resolution(weasyprint, view):
    assert abs(HtmlRasterizer().rasterize(view, scale=1).width - 794) <= 1


def test_no_pages_is_export_failure(weasyprint, view, monkeypatch):
    class EmptyPdf:
        pages = []

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

    monkeypatch.setattr(exporter.pdfplumber, "open", lambda stream: EmptyPdf())
    with pytest.raises(ExportFailure, match="no pages"):
        HtmlRasterizer().rasterize(view)
