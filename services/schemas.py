# NG-HEADER: Nombre de archivo: schemas.py
# NG-HEADER: Ubicación: services/schemas.py
# NG-HEADER: Descripción: Esquemas Pydantic de entrada y serializadores de salida.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Esquemas de request (Pydantic v2) y serialización de respuestas a dict."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from db.enums import DocumentKind, DocumentStatus
from db.models import (
    DocumentItem,
    DocumentSubtype,
    FiscalDocument,
    InventoryAdjustment,
    Payment,
    ProductStock,
    StockMovement,
    WorkspaceDocumentSubtype,
)


# --- Secuencias NCF ---

class SubtypeCreate(BaseModel):
    """Alta de tipo de comprobante / secuencia NCF."""
    name: str = Field(..., min_length=1, max_length=120)
    kind: DocumentKind = DocumentKind.INVOICE
    prefix: str = Field(..., min_length=3, max_length=3, description="Prefijo DGII, ej. B01")
    start_number: int = Field(1, ge=1)
    end_number: Optional[int] = Field(None, ge=1)
    valid_until_date: Optional[date] = None
    is_default: bool = False


class SubtypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    kind: Optional[DocumentKind] = None
    start_number: Optional[int] = Field(None, ge=1)
    end_number: Optional[int] = Field(None, ge=1)
    next_number: Optional[int] = Field(None, ge=1)
    valid_until_date: Optional[date] = None
    is_default: Optional[bool] = None


class SubtypePreferenceRequest(BaseModel):
    is_preferred: bool = True


class NCFValidateRequest(BaseModel):
    ncf: str
    document_subtype_id: Optional[int] = None
    document_id: Optional[int] = Field(None, description="Comprobante en edición (se excluye del chequeo de duplicado)")
    issue_date: Optional[date] = None


# --- Comprobantes ---

class DocumentItemIn(BaseModel):
    id: Optional[int] = Field(None, description="Línea existente (sólo en edición)")
    product_id: int
    description: Optional[str] = None
    quantity: Decimal = Field(..., gt=0, decimal_places=2)
    unit_price: Decimal = Field(..., ge=0, decimal_places=2)
    discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = None


class DocumentCreate(BaseModel):
    contact_id: int
    document_subtype_id: int
    ncf: Optional[str] = Field(None, description="Si se omite se asigna el próximo de la secuencia")
    issue_date: date
    due_date: Optional[date] = None
    payment_term: Optional[str] = None
    notes: Optional[str] = None
    items: list[DocumentItemIn] = Field(..., min_length=1)


class DocumentUpdate(BaseModel):
    contact_id: Optional[int] = None
    document_subtype_id: Optional[int] = None
    ncf: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_term: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[DocumentStatus] = None
    items: Optional[list[DocumentItemIn]] = None


class ConvertQuotationRequest(BaseModel):
    document_subtype_id: Optional[int] = None
    ncf: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_term: Optional[str] = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: str = Field("efectivo", max_length=30)
    reference: Optional[str] = Field(None, max_length=100)


# --- Inventario ---

class InitialStockRequest(BaseModel):
    product_id: int
    workspace_id: int
    quantity: Decimal = Field(..., ge=0, decimal_places=2)
    minimum_quantity: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class StockAdjustmentRequest(BaseModel):
    product_id: int
    workspace_id: int
    adjustment_type: Literal["set_quantity", "add_quantity", "remove_quantity"]
    quantity: Decimal = Field(..., ge=0, decimal_places=2)
    reason: str = Field(..., min_length=1)
    reference: Optional[str] = Field(None, max_length=100)
    unit_cost: Optional[Decimal] = Field(None, ge=0)


class StockTransferRequest(BaseModel):
    product_id: int
    from_workspace_id: int
    to_workspace_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=2)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class InventoryAdjustmentItemIn(BaseModel):
    product_id: int
    adjustment_type: Literal["increment", "decrement"]
    quantity: Decimal = Field(..., gt=0, decimal_places=2)


class InventoryAdjustmentRequest(BaseModel):
    workspace_id: int
    adjustment_date: date
    notes: Optional[str] = None
    items: list[InventoryAdjustmentItemIn] = Field(..., min_length=1)


# --- Serializadores ---

def _num(value) -> Optional[str]:
    return None if value is None else str(value)


def subtype_out(s: DocumentSubtype) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "kind": s.kind,
        "prefix": s.prefix,
        "start_number": s.start_number,
        "end_number": s.end_number,
        "next_number": s.next_number,
        "valid_until_date": s.valid_until_date.isoformat() if s.valid_until_date else None,
        "is_default": bool(s.is_default),
    }


def preference_out(p: WorkspaceDocumentSubtype) -> dict:
    return {
        "workspace_id": p.workspace_id,
        "document_subtype_id": p.document_subtype_id,
        "is_preferred": bool(p.is_preferred),
    }

def item_out(i: DocumentItem) -> dict:
    return {
        "id": i.id,
        "product_id": i.product_id,
        "description": i.description,
        "quantity": _num(i.quantity),
        "unit_price": _num(i.unit_price),
        "discount_rate": _num(i.discount_rate),
        "discount_amount": _num(i.discount_amount),
        "tax_rate": _num(i.tax_rate),
        "tax_amount": _num(i.tax_amount),
        "total": _num(i.total),
    }


def document_out(d: FiscalDocument, with_items: bool = True) -> dict:
    out = {
        "id": d.id,
        "kind": d.kind,
        "workspace_id": d.workspace_id,
        "contact_id": d.contact_id,
        "document_subtype_id": d.document_subtype_id,
        "document_number": d.document_number,
        "status": d.status,
        "status_label": DocumentStatus(d.status).label,
        "issue_date": d.issue_date.isoformat() if d.issue_date else None,
        "due_date": d.due_date.isoformat() if d.due_date else None,
        "payment_term": d.payment_term,
        "notes": d.notes,
        "subtotal_amount": _num(d.subtotal_amount),
        "discount_amount": _num(d.discount_amount),
        "tax_amount": _num(d.tax_amount),
        "total_amount": _num(d.total_amount),
        "paid_total": _num(d.paid_total),
        "source_document_id": d.source_document_id,
        "created_by": d.created_by,
    }
    if with_items:
        out["items"] = [item_out(i) for i in d.items]
    return out


def movement_out(m: StockMovement) -> dict:
    return {
        "id": m.id,
        "product_id": m.product_id,
        "workspace_id": m.workspace_id,
        "type": m.type,
        "quantity": _num(m.quantity),
        "unit_cost": _num(m.unit_cost),
        "total_cost": _num(m.total_cost),
        "reference_number": m.reference_number,
        "note": m.note,
        "from_workspace_id": m.from_workspace_id,
        "to_workspace_id": m.to_workspace_id,
        "document_id": m.document_id,
        "document_item_id": m.document_item_id,
        "at": m.created_at.isoformat() if m.created_at else None,
    }


def stock_out(s: ProductStock) -> dict:
    return {
        "product_id": s.product_id,
        "workspace_id": s.workspace_id,
        "quantity": _num(s.quantity),
        "minimum_quantity": _num(s.minimum_quantity),
    }


def payment_out(p: Payment) -> dict:
    return {
        "id": p.id,
        "document_id": p.document_id,
        "amount": _num(p.amount),
        "method": p.method,
        "reference": p.reference,
    }


def adjustment_out(a: InventoryAdjustment, items: list) -> dict:
    return {
        "id": a.id,
        "workspace_id": a.workspace_id,
        "adjustment_date": a.adjustment_date.isoformat(),
        "notes": a.notes,
        "total_adjusted": _num(a.total_adjusted),
        "items": [
            {
                "product_id": i.product_id,
                "adjustment_type": i.adjustment_type,
                "quantity": _num(i.quantity),
                "current_quantity": _num(i.current_quantity),
                "final_quantity": _num(i.final_quantity),
                "average_cost": _num(i.average_cost),
                "total_adjusted": _num(i.total_adjusted),
            }
            for i in items
        ],
    }
