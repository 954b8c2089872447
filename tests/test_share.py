from urllib.parse import unquote

import pytest

from invoice_gen.errors import ExportFailure
from invoice_gen.exporter import Exporter
from invoice_gen.share import NativeSharer, ShareChannel, ShareContext, SharePipeline, execute, menu_options


class FakeNative(NativeSharer):
    def __init__(self, fail=False):
        self.fail = fail
        self.shared = []

    def can_share(self, file):
        return True

    def share(self, file, title, text):
        if self.fail:
            raise RuntimeError("share sheet dismissed")
        self.shared.append((file.filename, title, text))


@pytest.fixture
def context(exporter, view, metadata):
    return ShareContext(file=exporter.generate_pdf_blob(view, metadata), metadata=metadata)


def test_without_native_share_returns_menu(exporter, view, metadata):
    result = SharePipeline(exporter).share_pdf(view, metadata)
    assert result.success
    assert result.method == "menu"
    assert list(result.options) == ["email", "whatsapp", "telegram", "download"]
    assert result.options["download"].url is None
    assert result.context.file.filename == "GP_0001_Acme_Co_2024-01-15.pdf"
    assert "context" not in result.model_dump()


def test_native_share_success(exporter, view, metadata):
    native = FakeNative()
    result = SharePipeline(exporter, native=native).share_pdf(view, metadata)
    assert result.success
    assert result.method == "native"
    assert result.options is None
    [(filename, title, text)] = native.shared
    assert filename == "GP_0001_Acme_Co_2024-01-15.pdf"
    assert title == "Invoice GP-0001"
    assert text == "Invoice for Acme Co. - Total: ৳ 1500.00"


def test_native_share_failure_is_reported(exporter, view, metadata):
    result = SharePipeline(exporter, native=FakeNative(fail=True)).share_pdf(view, metadata)
    assert not result.success
    assert result.method == "native"
    assert "dismissed" in result.error


def test_export_failure_propagates(broken_rasterizer, view, metadata):
    with pytest.raises(ExportFailure):
        SharePipeline(Exporter(broken_rasterizer)).share_pdf(view, metadata)


def test_email_link(context):
    url = execute(ShareChannel.EMAIL, context).url
    assert url.startswith("mailto:?subject=")
    decoded = unquote(url)
    assert "Invoice GP-0001 - Acme Co." in decoded
    assert "Dear Acme Co.," in decoded
    assert "Total: ৳ 1500.00" in decoded


def test_whatsapp_link(context):
    decoded = unquote(execute("whatsapp", context).url)
    assert decoded.startswith("https://wa.me/?text=Invoice GP-0001 for Acme Co.\nTotal: ৳ 1500.00")


def test_telegram_link_falls_back_to_filename(context):
    url = execute(ShareChannel.TELEGRAM, context).url
    assert url.startswith("https://t.me/share/url?url=GP_0001_Acme_Co_2024-01-15.pdf&text=")


def test_telegram_link_uses_file_url(exporter, view, metadata):
    result = SharePipeline(exporter).share_pdf(view, metadata, file_url="https://example.com/f.pdf")
    assert "url=https%3A%2F%2Fexample.com%2Ff.pdf" in result.options["telegram"].url


def test_opener_receives_link(context):
    opened = []
    result = execute(ShareChannel.WHATSAPP, context, opener=opened.append)
    assert result.success
    assert opened == [result.url]


def test_opener_failure_is_reported(context):
    def refuse(url):
        raise OSError("no browser")

    result = execute(ShareChannel.EMAIL, context, opener=refuse)
    assert not result.success
    assert result.error == "no browser"


def test_download_saves_through_sink(exporter, view, metadata, export_dir):
    pipeline = SharePipeline(exporter)
    menu = pipeline.share_pdf(view, metadata)
    result = pipeline.execute(ShareChannel.DOWNLOAD, menu.context)
    assert result.success
    assert result.path == str(export_dir / "GP_0001_Acme_Co_2024-01-15.pdf")
    assert (export_dir / "GP_0001_Acme_Co_2024-01-15.pdf").read_bytes().startswith(b"%PDF")


def test_download_without_sink_fails(context):
    result = execute(ShareChannel.DOWNLOAD, context)
    assert not result.success
    assert result.method == "download"


def test_unknown_channel_is_rejected(context):
    with pytest.raises(ValueError):
        execute("carrier-pigeon", context)


def test_menu_options_labels(context):
    options = menu_options(context)
    assert [option.name for option in options.values()] == ["Email", "WhatsApp", "Telegram", "Download PDF"]
