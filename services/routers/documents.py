# NG-HEADER: Nombre de archivo: documents.py
# NG-HEADER: Ubicación: services/routers/documents.py
# NG-HEADER: Descripción: Endpoints de facturas y cotizaciones (alta, edición, conversión, anulación, pagos).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import DocumentKind, DocumentStatus
from db.session import get_session
from services.documents import writer
from services.routers.deps import actor_id
from services.schemas import (
    ConvertQuotationRequest,
    DocumentCreate,
    DocumentUpdate,
    PaymentCreate,
    document_out,
    payment_out,
)

router = APIRouter(tags=["documents"])


async def _list(db: AsyncSession, workspace_id: int, kind: DocumentKind, status: Optional[DocumentStatus], page: int, page_size: int) -> dict:
    rows, total = await writer.list_documents(db, workspace_id, kind, status, page, page_size)
    pages = (total + page_size - 1) // page_size if total else 0
    return {
        "items": [document_out(d, with_items=False) for d in rows],
        "total": total,
        "page": page,
        "pages": pages,
    }


@router.get("/workspaces/{workspace_id}/invoices")
async def list_invoices(
    workspace_id: int,
    status: Optional[DocumentStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
):
    return await _list(db, workspace_id, DocumentKind.INVOICE, status, page, page_size)


@router.post("/workspaces/{workspace_id}/invoices", status_code=201)
async def create_invoice(
    workspace_id: int,
    payload: DocumentCreate,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    """Crea la factura, asigna/valida el NCF y descuenta stock en una sola transacción."""
    document = await writer.create_document(db, workspace_id, DocumentKind.INVOICE, payload.model_dump(), actor)
    return document_out(document)


@router.get("/workspaces/{workspace_id}/quotations")
async def list_quotations(
    workspace_id: int,
    status: Optional[DocumentStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
):
    return await _list(db, workspace_id, DocumentKind.QUOTATION, status, page, page_size)


@router.post("/workspaces/{workspace_id}/quotations", status_code=201)
async def create_quotation(
    workspace_id: int,
    payload: DocumentCreate,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    document = await writer.create_document(db, workspace_id, DocumentKind.QUOTATION, payload.model_dump(), actor)
    return document_out(document)


@router.post("/quotations/{quotation_id}/convert", status_code=201)
async def convert_quotation(
    quotation_id: int,
    payload: Optional[ConvertQuotationRequest] = None,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    data = payload.model_dump(exclude_unset=True) if payload else {}
    invoice = await writer.convert_quotation(db, quotation_id, data, actor)
    return document_out(invoice)


@router.get("/documents/{document_id}")
async def get_document(document_id: int, db: AsyncSession = Depends(get_session)):
    return document_out(await writer.get_document(db, document_id))


@router.patch("/documents/{document_id}")
async def update_document(
    document_id: int,
    payload: DocumentUpdate,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    document = await writer.update_document(db, document_id, payload.model_dump(exclude_unset=True), actor)
    return document_out(document)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    outcome = await writer.delete_document(db, document_id, actor)
    return {"status": outcome, "id": document_id}


@router.post("/documents/{document_id}/payments", status_code=201)
async def create_payment(
    document_id: int,
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_session),
    actor: Optional[int] = Depends(actor_id),
):
    payment = await writer.record_payment(db, document_id, payload.model_dump(), actor)
    return payment_out(payment)
