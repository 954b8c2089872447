"""FastAPI application exposing drafts, invoice CRUD, previews, exports and sharing."""
from __future__ import annotations

from datetime import date
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response

from . import draft as drafts
from .config import get_settings
from .errors import DuplicateInvoiceNumber, ExportFailure, InvalidBackup, NotFound, StoreError, UnsupportedFormat
from .exporter import ExportedFile
from .logs import setup_logging
from .schemas import InvoiceDraft, InvoiceFilters, InvoiceStatistics, InvoiceStatus, PersistedInvoice, SubmitOutcome
from .service import InvoiceService, create_service
from .share import ShareChannel, ShareResult

app = FastAPI(title="Invoice Generator", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_service() -> InvoiceService:
    settings = get_settings()
    setup_logging(settings.log_level)
    return create_service(settings)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(DuplicateInvoiceNumber)
async def duplicate_handler(request: Request, exc: DuplicateInvoiceNumber) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.exception_handler(ExportFailure)
async def export_failure_handler(request: Request, exc: ExportFailure) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.exception_handler(UnsupportedFormat)
@app.exception_handler(InvalidBackup)
async def bad_request_handler(request: Request, exc: UnsupportedFormat | InvalidBackup) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


def _download(exported: ExportedFile) -> Response:
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Drafts
@app.get("/invoices/next-number")
def next_number(service: InvoiceService = Depends(get_service)) -> dict[str, str]:
    return {"invoice_number": service.allocator.next_invoice_number()}


@app.post("/drafts", response_model=InvoiceDraft)
def new_draft(service: InvoiceService = Depends(get_service)):
    return service.new_draft()


@app.post("/drafts/totals", response_model=InvoiceDraft)
def recompute_totals(draft: InvoiceDraft):
    return drafts.recompute(draft)


@app.post("/drafts/line-items", response_model=InvoiceDraft)
def add_line_item(draft: InvoiceDraft):
    return drafts.add_line_item(draft)


@app.post("/drafts/line-items/{item_id}/remove", response_model=InvoiceDraft)
def remove_line_item(item_id: int, draft: InvoiceDraft):
    return drafts.remove_line_item(draft, item_id)


# Invoices
@app.post("/invoices", response_model=SubmitOutcome, status_code=status.HTTP_201_CREATED)
def create_invoice(draft: InvoiceDraft, template_id: int = 1, service: InvoiceService = Depends(get_service)):
    return service.submit(draft, template_id=template_id)


@app.get("/invoices", response_model=List[PersistedInvoice])
def list_invoices(
    search: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: InvoiceService = Depends(get_service),
):
    filters = InvoiceFilters(search=search, status=status, start_date=start_date, end_date=end_date)
    return service.list_invoices(filters)


@app.get("/invoices/stats", response_model=InvoiceStatistics)
def invoice_statistics(service: InvoiceService = Depends(get_service)):
    return service.statistics()


@app.get("/invoices/{invoice_id}", response_model=PersistedInvoice)
def get_invoice(invoice_id: str, service: InvoiceService = Depends(get_service)):
    return service.get(invoice_id)


@app.get("/invoices/{invoice_id}/draft", response_model=InvoiceDraft)
def edit_invoice(invoice_id: str, service: InvoiceService = Depends(get_service)):
    return service.load_draft(invoice_id)


@app.put("/invoices/{invoice_id}", response_model=SubmitOutcome)
def update_invoice(invoice_id: str, draft: InvoiceDraft, template_id: int = 1, service: InvoiceService = Depends(get_service)):
    return service.submit(draft, record_id=invoice_id, template_id=template_id)


@app.delete("/invoices/{invoice_id}")
def delete_invoice(invoice_id: str, service: InvoiceService = Depends(get_service)) -> dict[str, str]:
    service.delete(invoice_id)
    return {"message": "Invoice deleted successfully"}


# Offline backups
@app.get("/backup")
def export_backup(service: InvoiceService = Depends(get_service)):
    return Response(content=service.backup(), media_type="application/json")


@app.put("/backup")
async def restore_backup(request: Request, service: InvoiceService = Depends(get_service)) -> dict[str, int]:
    body = await request.body()
    return {"restored": service.restore(body.decode("utf-8", errors="replace"))}


@app.delete("/backup")
def clear_backup(service: InvoiceService = Depends(get_service)) -> dict[str, str]:
    service.clear_offline()
    return {"message": "Offline invoices cleared"}


# Preview, export, share
@app.get("/invoices/{invoice_id}/preview", response_class=HTMLResponse)
def preview_invoice(invoice_id: str, service: InvoiceService = Depends(get_service)):
    return HTMLResponse(service.preview(service.get(invoice_id)).html)


@app.get("/invoices/{invoice_id}/export/pdf", name="export_pdf")
def export_pdf(invoice_id: str, service: InvoiceService = Depends(get_service)):
    view, metadata = service.view_with_metadata(invoice_id)
    return _download(service.exporter.generate_pdf_blob(view, metadata))


@app.get("/invoices/{invoice_id}/export/image")
def export_image(invoice_id: str, format: str = Query("png"), service: InvoiceService = Depends(get_service)):
    view, metadata = service.view_with_metadata(invoice_id)
    return _download(service.exporter.generate_image_blob(view, metadata, format))


@app.post("/invoices/{invoice_id}/share", response_model=ShareResult)
def share_invoice(invoice_id: str, request: Request, service: InvoiceService = Depends(get_service)):
    view, metadata = service.view_with_metadata(invoice_id)
    file_url = str(request.url_for("export_pdf", invoice_id=invoice_id))
    return service.sharer.share_pdf(view, metadata, file_url=file_url)


@app.post("/invoices/{invoice_id}/share/{channel}")
def share_invoice_via(invoice_id: str, channel: ShareChannel, request: Request, service: InvoiceService = Depends(get_service)):
    view, metadata = service.view_with_metadata(invoice_id)
    if channel is ShareChannel.DOWNLOAD:
        # Over HTTP the download channel is the response itself.
        return _download(service.exporter.generate_pdf_blob(view, metadata))
    file_url = str(request.url_for("export_pdf", invoice_id=invoice_id))
    result = service.sharer.share_pdf(view, metadata, file_url=file_url)
    if result.method != "menu":
        return result
    return service.sharer.execute(channel, result.context)
