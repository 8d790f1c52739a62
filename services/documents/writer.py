# NG-HEADER: Nombre de archivo: writer.py
# NG-HEADER: Ubicación: services/documents/writer.py
# NG-HEADER: Descripción: Alta, edición, conversión, anulación y cobro de facturas y cotizaciones.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Escrituras de comprobantes (facturas y cotizaciones).

Cada operación pública corre en una sola unidad de trabajo: número fiscal,
avance de la secuencia, líneas, movimientos de stock y auditoría se confirman
juntos o se revierten juntos.

Orden dentro de la transacción:
  1. bloquear la secuencia (FOR UPDATE)
  2. validar el NCF (ingresado o auto-asignado)
  3. insertar/editar el comprobante con totales calculados en el servidor
  4. avanzar la secuencia
  5. conciliar stock línea por línea
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.enums import INITIAL_STATUS, LOCKED_STATUSES, STATUSES_BY_KIND, DocumentKind, DocumentStatus
from db.models import Contact, DocumentItem, FiscalDocument, Payment, StockMovement, Workspace
from db.ncf_utils import format_ncf
from db.uow import unit_of_work
from services.audit import audit
from services.documents import reconciler
from services.documents.totals import apply_totals, compute_line
from services.errors import NotFoundError, ValidationError
from services.numbering.allocator import advance_to, allocate_next, lock_sequence
from services.numbering.subtypes import default_subtype
from services.numbering.validator import ensure_valid_ncf

logger = logging.getLogger("cuadra.documents")

_PATCHABLE_FIELDS = ("contact_id", "issue_date", "due_date", "notes", "payment_term", "status")
# Estados que sólo se alcanzan por su operación dedicada
_RESERVED_STATUSES = frozenset({
    DocumentStatus.CONVERTED,
    DocumentStatus.DELETED,
    DocumentStatus.PAID,
    DocumentStatus.PARTIALLY_PAID,
})
CENT = Decimal("0.01")


async def get_document(db: AsyncSession, document_id: int, kind: DocumentKind | None = None) -> FiscalDocument:
    """Comprobante con sus líneas cargadas."""
    stmt = (
        select(FiscalDocument)
        .where(FiscalDocument.id == document_id)
        .options(selectinload(FiscalDocument.items))
        .execution_options(populate_existing=True)
    )
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None or (kind is not None and document.kind != kind.value):
        raise NotFoundError(kind.label if kind else "Comprobante", document_id)
    return document


async def list_documents(
    db: AsyncSession,
    workspace_id: int,
    kind: DocumentKind,
    status: DocumentStatus | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[FiscalDocument], int]:
    base = select(FiscalDocument).where(
        FiscalDocument.workspace_id == workspace_id,
        FiscalDocument.kind == kind.value,
    )
    if status is not None:
        base = base.where(FiscalDocument.status == status.value)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    rows = (
        await db.execute(
            base.order_by(FiscalDocument.id.desc()).offset((page - 1) * page_size).limit(page_size)
        )
    ).scalars()
    return list(rows), total


async def _lock_document(db: AsyncSession, document_id: int) -> FiscalDocument:
    stmt = (
        select(FiscalDocument)
        .where(FiscalDocument.id == document_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFoundError("Comprobante", document_id)
    return document


async def _items_of(db: AsyncSession, document_id: int) -> list[DocumentItem]:
    stmt = select(DocumentItem).where(DocumentItem.document_id == document_id).order_by(DocumentItem.id)
    return list((await db.execute(stmt)).scalars())


async def _require(db: AsyncSession, model, entity_id: int | None, label: str, field: str):
    if entity_id is None:
        raise ValidationError({field: f"{label} es obligatorio"})
    row = await db.get(model, entity_id)
    if row is None:
        raise NotFoundError(label, entity_id)
    return row


def _check_subtype_kind(subtype, kind: DocumentKind) -> None:
    # Las facturas sólo toman números de secuencias fiscales de factura
    if kind is DocumentKind.INVOICE and subtype.kind != DocumentKind.INVOICE.value:
        raise ValidationError({"document_subtype_id": "El tipo de comprobante seleccionado no es de facturación"})


async def _assign_number(db: AsyncSession, subtype, ncf: str | None, issue_date: date, exclude_document_id: int | None = None) -> tuple[str, int]:
    """Devuelve (NCF normalizado, número) validado contra la secuencia ya bloqueada."""
    if not ncf:
        ncf = allocate_next(subtype)
    check = await ensure_valid_ncf(db, ncf, subtype, issue_date=issue_date, exclude_document_id=exclude_document_id)
    return format_ncf(check.prefix, check.number), check.number


def _line_inputs(items: list[dict[str, Any]]) -> list[tuple[dict[str, Any], Any]]:
    if not items:
        raise ValidationError({"items": "Debe agregar al menos un producto"})
    return [(item, compute_line(item, idx)) for idx, item in enumerate(items)]


async def _create_document(
    db: AsyncSession,
    workspace_id: int,
    kind: DocumentKind,
    payload: dict[str, Any],
    actor_id: int | None,
    source_document_id: int | None = None,
) -> FiscalDocument:
    await _require(db, Workspace, workspace_id, "Ubicación", "workspace_id")
    await _require(db, Contact, payload.get("contact_id"), "Contacto", "contact_id")
    if payload.get("document_subtype_id") is None:
        raise ValidationError({"document_subtype_id": "El tipo de comprobante es obligatorio"})
    lines = _line_inputs(payload.get("items") or [])
    products = [await reconciler.get_product(db, item["product_id"]) for item, _ in lines]

    subtype = await lock_sequence(db, payload["document_subtype_id"])
    _check_subtype_kind(subtype, kind)
    issue_date = payload.get("issue_date") or date.today()
    document_number, number = await _assign_number(db, subtype, payload.get("ncf"), issue_date)

    document = FiscalDocument(
        kind=kind.value,
        workspace_id=workspace_id,
        contact_id=payload["contact_id"],
        document_subtype_id=subtype.id,
        document_number=document_number,
        status=INITIAL_STATUS[kind].value,
        issue_date=issue_date,
        due_date=payload.get("due_date"),
        payment_term=payload.get("payment_term"),
        notes=payload.get("notes"),
        paid_total=Decimal("0"),
        source_document_id=source_document_id,
        created_by=actor_id,
    )
    apply_totals(document, [amounts for _, amounts in lines])
    db.add(document)
    await db.flush()

    await advance_to(db, subtype, number)

    for (item, amounts), product in zip(lines, products):
        await reconciler.create_item(db, document, product, amounts, item.get("description"), actor_id)

    audit(db, f"{kind.value}_create", "fiscal_documents", document.id, {
        "number": document_number,
        "items": len(lines),
        "total": str(document.total_amount),
    }, actor_id)
    logger.info("%s %s creada (ws=%s, total=%s)", kind.label, document_number, workspace_id, document.total_amount)
    return document


async def create_document(
    db: AsyncSession,
    workspace_id: int,
    kind: DocumentKind,
    payload: dict[str, Any],
    actor_id: int | None = None,
) -> FiscalDocument:
    """Crea una factura (mueve stock) o una cotización (no mueve stock)."""
    kind = DocumentKind(kind)
    async with unit_of_work(db):
        document = await _create_document(db, workspace_id, kind, payload, actor_id)
        document_id = document.id
    return await get_document(db, document_id)


async def update_document(
    db: AsyncSession,
    document_id: int,
    payload: dict[str, Any],
    actor_id: int | None = None,
) -> FiscalDocument:
    """Edita campos del comprobante y concilia líneas contra las existentes por id.

    Líneas enviadas con id existente se actualizan; las existentes no enviadas
    se eliminan (devolviendo stock); las nuevas se crean.
    """
    async with unit_of_work(db):
        document = await _lock_document(db, document_id)
        kind = DocumentKind(document.kind)
        current_status = DocumentStatus(document.status)
        if current_status in LOCKED_STATUSES:
            raise ValidationError({"status": f"No se puede editar un comprobante en estado {current_status.label}"})

        changes = await _patch_fields(db, document, kind, payload)
        changes += await _renumber(db, document, kind, payload)

        if "items" in payload and payload["items"] is not None:
            await _sync_items(db, document, payload["items"], actor_id)
            changes.append("items")

        apply_totals(document, await _items_of(db, document.id))
        if _reconcile_payment(document) and "status" not in changes:
            changes.append("status")
        await db.flush()
        if changes:
            audit(db, f"{kind.value}_update", "fiscal_documents", document.id, {"fields": changes}, actor_id)
        logger.info("%s %s actualizada: %s", kind.label, document.document_number, ", ".join(changes) or "sin cambios")
    return await get_document(db, document_id)


def _payment_status(document: FiscalDocument) -> str:
    paid = Decimal(document.paid_total or 0)
    if paid >= Decimal(document.total_amount):
        return DocumentStatus.PAID.value
    return DocumentStatus.PARTIALLY_PAID.value


def _reconcile_payment(document: FiscalDocument) -> bool:
    """Recalcula el estado de pago tras cambiar el total. Devuelve True si cambió."""
    paid = Decimal(document.paid_total or 0)
    if document.kind != DocumentKind.INVOICE.value or paid <= 0:
        return False
    if Decimal(document.total_amount) < paid:
        raise ValidationError({
            "items": f"El total ({document.total_amount}) no puede quedar por debajo de lo cobrado ({paid})"
        })
    status = _payment_status(document)
    if status == document.status:
        return False
    logger.info("Factura %s: estado de pago %s -> %s", document.document_number, document.status, status)
    document.status = status
    return True

async def _patch_fields(db: AsyncSession, document: FiscalDocument, kind: DocumentKind, payload: dict[str, Any]) -> list[str]:
    changed: list[str] = []
    for field in _PATCHABLE_FIELDS:
        if field not in payload or payload[field] is None:
            continue
        value = payload[field]
        if field == "status":
            try:
                status = DocumentStatus(value)
            except ValueError:
                raise ValidationError({"status": f"Estado desconocido: {value}"}) from None
            if status not in STATUSES_BY_KIND[kind] or status in _RESERVED_STATUSES:
                raise ValidationError({"status": f"Estado no permitido para {kind.label.lower()}: {value}"})
            value = status.value
        if field == "contact_id" and value != document.contact_id:
            await _require(db, Contact, value, "Contacto", "contact_id")
        if value != getattr(document, field):
            setattr(document, field, value)
            changed.append(field)
    return changed


async def _renumber(db: AsyncSession, document: FiscalDocument, kind: DocumentKind, payload: dict[str, Any]) -> list[str]:
    """Cambio de NCF o de tipo de comprobante: valida y avanza la secuencia de nuevo."""
    ncf = payload.get("ncf")
    subtype_id = payload.get("document_subtype_id") or document.document_subtype_id
    subtype_changed = subtype_id != document.document_subtype_id
    if not subtype_changed and (not ncf or ncf.strip() == document.document_number):
        return []

    subtype = await lock_sequence(db, subtype_id)
    _check_subtype_kind(subtype, kind)
    old_number = document.document_number
    document_number, number = await _assign_number(db, subtype, ncf, document.issue_date, exclude_document_id=document.id)
    document.document_subtype_id = subtype.id
    document.document_number = document_number
    await db.flush()
    await advance_to(db, subtype, number)

    # Los movimientos SALE referencian el número del comprobante
    await db.execute(
        update(StockMovement)
        .where(StockMovement.document_id == document.id)
        .values(reference_number=document_number)
    )
    logger.info("NCF cambiado: %s -> %s", old_number, document_number)
    return ["document_subtype_id", "document_number"] if subtype_changed else ["document_number"]


async def _sync_items(db: AsyncSession, document: FiscalDocument, submitted: list[dict[str, Any]], actor_id: int | None) -> None:
    existing = {item.id: item for item in await _items_of(db, document.id)}
    lines = _line_inputs(submitted)

    for idx, (item, _) in enumerate(lines):
        item_id = item.get("id")
        if item_id is not None and item_id not in existing:
            raise ValidationError({f"items.{idx}.id": "La línea no pertenece a este comprobante"})

    kept_ids = {item.get("id") for item, _ in lines if item.get("id") is not None}
    # Primero las bajas: devuelven stock que las altas/ediciones pueden usar
    for item_id, item in existing.items():
        if item_id not in kept_ids:
            await reconciler.remove_item(db, document, item)

    for item, amounts in lines:
        product = await reconciler.get_product(db, item["product_id"])
        if item.get("id") is not None:
            await reconciler.update_item(db, document, existing[item["id"]], product, amounts, item.get("description"), actor_id)
        else:
            await reconciler.create_item(db, document, product, amounts, item.get("description"), actor_id)


async def convert_quotation(
    db: AsyncSession,
    quotation_id: int,
    payload: dict[str, Any] | None = None,
    actor_id: int | None = None,
) -> FiscalDocument:
    """Genera una factura a partir de la cotización y la marca como convertida."""
    payload = payload or {}
    async with unit_of_work(db):
        quotation = await _lock_document(db, quotation_id)
        if quotation.kind != DocumentKind.QUOTATION.value:
            raise NotFoundError("Cotización", quotation_id)
        status = DocumentStatus(quotation.status)
        if status is DocumentStatus.CONVERTED:
            raise ValidationError({"status": "La cotización ya fue convertida a factura"})
        if status in LOCKED_STATUSES:
            raise ValidationError({"status": f"No se puede convertir una cotización en estado {status.label}"})

        subtype_id = payload.get("document_subtype_id")
        if subtype_id is None:
            subtype = await default_subtype(db, DocumentKind.INVOICE, quotation.workspace_id)
            if subtype is None:
                raise ValidationError({"document_subtype_id": "No hay un tipo de comprobante de factura disponible"})
            subtype_id = subtype.id

        note = f"Convertida desde cotización #{quotation.document_number}."
        if quotation.notes:
            note = f"{note} {quotation.notes}"
        items = [
            {
                "product_id": line.product_id,
                "description": line.description,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "discount_rate": line.discount_rate,
                "discount_amount": line.discount_amount,
                "tax_rate": line.tax_rate,
                "tax_amount": line.tax_amount,
            }
            for line in await _items_of(db, quotation.id)
        ]
        invoice = await _create_document(db, quotation.workspace_id, DocumentKind.INVOICE, {
            "contact_id": quotation.contact_id,
            "document_subtype_id": subtype_id,
            "ncf": payload.get("ncf"),
            "issue_date": payload.get("issue_date") or date.today(),
            "due_date": payload.get("due_date") or quotation.due_date,
            "payment_term": payload.get("payment_term") or quotation.payment_term,
            "notes": note,
            "items": items,
        }, actor_id, source_document_id=quotation.id)

        quotation.status = DocumentStatus.CONVERTED.value
        await db.flush()
        audit(db, "quotation_convert", "fiscal_documents", quotation.id, {
            "invoice_id": invoice.id,
            "invoice_number": invoice.document_number,
        }, actor_id)
        invoice_id = invoice.id
    return await get_document(db, invoice_id)


async def delete_document(db: AsyncSession, document_id: int, actor_id: int | None = None) -> str:
    """Devuelve el stock de todas las líneas.

    Con pagos registrados el comprobante queda ``deleted`` (se conservan las
    líneas); sin pagos se elimina físicamente. Devuelve ``"deleted"`` o
    ``"removed"`` según el caso.
    """
    async with unit_of_work(db):
        document = await _lock_document(db, document_id)
        if document.status == DocumentStatus.DELETED.value:
            raise ValidationError({"status": "El comprobante ya está anulado"})
        payments = (
            await db.execute(select(func.count(Payment.id)).where(Payment.document_id == document.id))
        ).scalar_one()
        soft = payments > 0
        for item in await _items_of(db, document.id):
            await reconciler.remove_item(db, document, item, keep_line=soft)

        number = document.document_number
        kind = DocumentKind(document.kind)
        if soft:
            document.status = DocumentStatus.DELETED.value
            outcome = "deleted"
        else:
            await db.delete(document)
            outcome = "removed"
        await db.flush()
        audit(db, f"{kind.value}_delete", "fiscal_documents", document_id, {"number": number, "mode": outcome}, actor_id)
    logger.info("%s %s eliminada (%s)", kind.label, number, outcome)
    return outcome


async def record_payment(
    db: AsyncSession,
    document_id: int,
    payload: dict[str, Any],
    actor_id: int | None = None,
) -> Payment:
    """Registra un cobro y actualiza el estado de pago de la factura."""
    amount = Decimal(str(payload.get("amount") or 0))
    if amount <= 0:
        raise ValidationError({"amount": "El monto debe ser mayor que cero"})
    if amount != amount.quantize(CENT):
        raise ValidationError({"amount": "El monto admite como máximo 2 decimales"})
    async with unit_of_work(db):
        document = await _lock_document(db, document_id)
        if document.kind != DocumentKind.INVOICE.value:
            raise ValidationError({"document_id": "Sólo las facturas admiten pagos"})
        status = DocumentStatus(document.status)
        if status in LOCKED_STATUSES or status is DocumentStatus.PAID:
            raise ValidationError({"status": f"No se pueden registrar pagos en estado {status.label}"})
        balance = Decimal(document.total_amount) - Decimal(document.paid_total or 0)
        if amount > balance:
            raise ValidationError({"amount": f"El monto excede el saldo pendiente ({balance})"})

        payment = Payment(
            document_id=document.id,
            amount=amount,
            method=payload.get("method") or "efectivo",
            reference=payload.get("reference"),
        )
        db.add(payment)
        document.paid_total = Decimal(document.paid_total or 0) + amount
        document.status = _payment_status(document)
        await db.flush()
        audit(db, "payment_create", "payments", payment.id, {
            "document_id": document.id,
            "amount": str(amount),
            "status": document.status,
        }, actor_id)
    logger.info("Pago de %s registrado en %s (estado=%s)", amount, document.document_number, document.status)
    return payment
