"""Command-line entrypoints for numbering, totals, saving, exporting and sharing invoices."""
from __future__ import annotations

import json
import webbrowser
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich import print
from rich.table import Table

from . import draft as drafts
from .config import get_settings
from .errors import InvoiceGenError, ShareFailure
from .logs import setup_logging
from .schemas import InvoiceDraft, InvoiceFilters, InvoiceStatus
from .service import InvoiceService, create_service
from .share import ShareChannel
from .totals import number_to_words

app = typer.Typer(add_completion=False, help="Invoice generator CLI")


def _service() -> InvoiceService:
    settings = get_settings()
    setup_logging(settings.log_level)
    return create_service(settings)


def _load_draft(json_path: Path) -> InvoiceDraft:
    data = json.loads(json_path.read_text(encoding="utf-8"))
    return drafts.recompute(InvoiceDraft.model_validate(data))


def _fail(exc: Exception) -> None:
    print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


@app.command("next-number")
def next_number() -> None:
    """Show the invoice number a new draft would get."""
    print(_service().allocator.next_invoice_number())


@app.command()
def words(amount: int = typer.Argument(..., min=0, help="Non-negative whole amount")) -> None:
    """Spell out an amount using crore/lakh grouping."""
    print(number_to_words(amount))


@app.command()
def totals(input: Path = typer.Option(..., exists=True, dir_okay=False, help="Draft JSON file")) -> None:
    """Recompute totals and amount in words for a draft."""
    draft = _load_draft(input)
    shown = draft.totals.display()
    print(f"[bold]Subtotal:[/bold] {draft.currency} {shown['subtotal']}")
    print(f"[bold]Discount:[/bold] {draft.currency} {shown['discount']}")
    print(f"[bold]Total:[/bold] {draft.currency} {shown['total']}")
    if draft.amount_in_words:
        print(draft.amount_in_words)


@app.command()
def save(
    input: Path = typer.Option(..., exists=True, dir_okay=False, help="Draft JSON file"),
    invoice_id: Optional[str] = typer.Option(None, "--id", help="Update this stored invoice instead of creating one"),
    template_id: int = typer.Option(1, help="Preview template"),
) -> None:
    """Save a draft as a new invoice, or update an existing one."""
    service = _service()
    draft = _load_draft(input)
    if not draft.invoice_number and not invoice_id:
        draft = drafts.update_field(draft, "invoice_number", service.allocator.next_invoice_number())
    try:
        outcome = service.submit(draft, record_id=invoice_id, template_id=template_id)
    except InvoiceGenError as exc:
        _fail(exc)
    verb = "generated" if outcome.created else "updated"
    print(f"[green]Invoice {verb}:[/green] #{outcome.record.invoice_number} ({outcome.record.id}) - Status: {outcome.record.status.value}")
    for warning in outcome.warnings:
        print(f"[yellow]Warning:[/yellow] {warning}")


@app.command("list")
def list_invoices(
    search: Optional[str] = typer.Option(None, help="Match invoice number or client name"),
    status: Optional[InvoiceStatus] = typer.Option(None, help="Only invoices with this status"),
) -> None:
    """List stored invoices, newest first."""
    try:
        records = _service().list_invoices(InvoiceFilters(search=search, status=status))
    except InvoiceGenError as exc:
        _fail(exc)
    table = Table("ID", "Number", "Client", "Status", "Total", "Created")
    for record in records:
        table.add_row(record.id, record.invoice_number, record.invoice_for_name, record.status.value, f"{record.currency} {record.total:.2f}", record.created_at or "")
    print(table)


@app.command()
def show(invoice_id: str) -> None:
    """Print one stored invoice as JSON."""
    try:
        record = _service().get(invoice_id)
    except InvoiceGenError as exc:
        _fail(exc)
    print(record.model_dump_json(indent=2))


@app.command()
def delete(invoice_id: str) -> None:
    """Delete a stored invoice."""
    try:
        _service().delete(invoice_id)
    except InvoiceGenError as exc:
        _fail(exc)
    print(f"Deleted {invoice_id}")


@app.command()
def export(
    invoice_id: str,
    format: str = typer.Option("pdf", help="pdf, png, jpeg or webp"),
) -> None:
    """Export a stored invoice to the export directory."""
    service = _service()
    try:
        view, metadata = service.view_with_metadata(invoice_id)
        if format.lower() == "pdf":
            result = service.exporter.export_pdf(view, metadata)
        else:
            result = service.exporter.export_image(view, metadata, format)
    except InvoiceGenError as exc:
        _fail(exc)
    print(f"Exported -> {result.path}")


@app.command()
def share(
    invoice_id: str,
    channel: Optional[ShareChannel] = typer.Option(None, help="Run this channel instead of listing the menu"),
    open_links: bool = typer.Option(False, "--open", help="Open share links in the browser"),
) -> None:
    """Share a stored invoice; without --channel, list the available channels."""
    service = _service()
    if open_links:
        service.sharer.opener = webbrowser.open
    settings = get_settings()
    file_url = f"{settings.public_base_url.rstrip('/')}/invoices/{invoice_id}/export/pdf" if settings.public_base_url else None
    try:
        view, metadata = service.view_with_metadata(invoice_id)
        result = service.sharer.share_pdf(view, metadata, file_url=file_url)
    except InvoiceGenError as exc:
        _fail(exc)

    if result.method != "menu":
        print(result.model_dump_json(indent=2))
        return
    if channel is None:
        for key, option in (result.options or {}).items():
            print(f"{option.icon} [bold]{key}[/bold] {option.name}" + (f"\n   {option.url}" if option.url else ""))
        return

    outcome = service.sharer.execute(channel, result.context)
    if not outcome.success:
        _fail(ShareFailure(outcome.error or f"{channel.value} share failed"))
    print(outcome.path or outcome.url)


@app.command()
def backup(output: Path = typer.Option(..., dir_okay=False, help="Where to write the JSON backup")) -> None:
    """Write every offline invoice to a JSON file."""
    try:
        content = _service().backup()
    except InvoiceGenError as exc:
        _fail(exc)
    output.write_text(content, encoding="utf-8")
    print(f"Backed up offline invoices -> {output}")


@app.command()
def restore(input: Path = typer.Option(..., exists=True, dir_okay=False, help="JSON backup file")) -> None:
    """Replace the offline invoices with the contents of a backup."""
    try:
        count = _service().restore(input.read_text(encoding="utf-8"))
    except InvoiceGenError as exc:
        _fail(exc)
    print(f"Restored {count} invoices")


@app.command("clear-offline")
def clear_offline(yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt")) -> None:
    """Delete every offline invoice."""
    if not yes:
        typer.confirm("Delete all offline invoices?", abort=True)
    try:
        _service().clear_offline()
    except InvoiceGenError as exc:
        _fail(exc)
    print("Cleared offline invoices")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Run the HTTP API."""
    uvicorn.run("invoice_gen.api:app", host=host, port=port)


def main():
    app()


if __name__ == "__main__":
    main()
