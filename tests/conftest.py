from datetime import date

import pytest
from PIL import Image

from invoice_gen.cache import LocalCache
from invoice_gen.exporter import DirectorySink, Exporter, Rasterizer
from invoice_gen.preview import InvoiceView
from invoice_gen.schemas import ExportMetadata
from invoice_gen.sequence import SequenceAllocator
from invoice_gen.service import InvoiceService
from invoice_gen.store import LocalInvoiceStore

EXPORT_DAY = date(2024, 1, 15)


class StubRasterizer(Rasterizer):
    """Returns a small half-transparent image instead of laying out HTML."""

    def __init__(self) -> None:
        self.calls = []

    def rasterize(self, view, scale=2):
        self.calls.append((view, scale))
        image = Image.new("RGBA", (200 * scale, 250 * scale), (0, 0, 0, 0))
        image.paste((20, 40, 60, 255), (0, 0, 200 * scale, 40 * scale))
        return image


class BrokenRasterizer(Rasterizer):
    def rasterize(self, view, scale=2):
        raise RuntimeError("canvas exploded")


@pytest.fixture
def cache():
    return LocalCache()


@pytest.fixture
def store(cache):
    return LocalInvoiceStore(cache)


@pytest.fixture
def export_dir(tmp_path):
    return tmp_path / "exports"


@pytest.fixture
def rasterizer():
    return StubRasterizer()


@pytest.fixture
def exporter(rasterizer, export_dir):
    return Exporter(rasterizer, sink=DirectorySink(export_dir), today=lambda: EXPORT_DAY)


@pytest.fixture
def service(store, cache, exporter):
    return InvoiceService(store=store, allocator=SequenceAllocator(store, cache), exporter=exporter)


@pytest.fixture
def view():
    return InvoiceView(html="<html><body><div class='invoice'>GP-0001</div></body></html>")


@pytest.fixture
def metadata():
    return ExportMetadata(invoice_number="GP-0001", invoice_for_name="Acme Co.", currency="৳", total="1500.00")


@pytest.fixture
def broken_rasterizer():
    return BrokenRasterizer()
