# NG-HEADER: Nombre de archivo: subtypes.py
# NG-HEADER: Ubicación: services/numbering/subtypes.py
# NG-HEADER: Descripción: Configuración de secuencias NCF (alta, edición, default, salud, seed DGII).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Configuración de tipos de comprobante (secuencias NCF).

- ``is_default=True`` limpia incondicionalmente cualquier otro default.
- ``next_number`` arranca en ``start_number`` y sólo puede avanzar.
- Un tipo referenciado por documentos no se elimina.
- Cada ubicación puede marcar una secuencia preferida por tipo de comprobante;
  ``default_subtype`` la usa si está vigente.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cuadra_core.config import settings
from db.enums import DocumentKind
from db.models import DocumentSubtype, FiscalDocument, Workspace, WorkspaceDocumentSubtype
from db.ncf_utils import PREFIX_LENGTH, format_ncf, max_ncf_number
from db.uow import unit_of_work
from services.audit import audit
from services.errors import NotFoundError, ValidationError

logger = logging.getLogger("cuadra.numbering")

# Series DGII sembradas por defecto: (prefijo, nombre)
DGII_SERIES: list[tuple[str, str]] = [
    ("B01", "Factura de Crédito Fiscal"),
    ("B02", "Factura de Consumo"),
    ("B03", "Nota de Débito"),
    ("B04", "Nota de Crédito"),
    ("B11", "Comprobante de Compras"),
    ("B12", "Registro Único de Ingresos"),
    ("B13", "Comprobante para Gastos Menores"),
    ("B14", "Comprobante de Regímenes Especiales"),
    ("B15", "Comprobante Gubernamental"),
    ("B16", "Comprobante para Exportaciones"),
    ("B17", "Comprobante para Pagos al Exterior"),
]
DEFAULT_END_NUMBER = 50_000_000
QUOTATION_PREFIX = "COT"

_EDITABLE_FIELDS = ("name", "kind", "start_number", "end_number", "next_number", "valid_until_date", "is_default")


@dataclass
class SequenceHealth:
    id: int
    prefix: str
    name: str
    next_ncf: str
    remaining: Optional[int]
    valid_until_date: Optional[date]
    valid: bool
    near_expiration: bool
    running_low: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "name": self.name,
            "next_ncf": self.next_ncf,
            "remaining": self.remaining,
            "valid_until_date": self.valid_until_date.isoformat() if self.valid_until_date else None,
            "valid": self.valid,
            "near_expiration": self.near_expiration,
            "running_low": self.running_low,
        }


def is_near_expiration(sequence: DocumentSubtype, today: date | None = None) -> bool:
    if sequence.valid_until_date is None:
        return False
    today = today or date.today()
    return sequence.valid_until_date <= today + timedelta(days=settings.ncf_expiry_warning_days)


def is_running_low(sequence: DocumentSubtype) -> bool:
    if sequence.end_number is None:
        return False
    return sequence.end_number - sequence.next_number < settings.ncf_low_remaining


def sequence_health(sequence: DocumentSubtype, today: date | None = None) -> SequenceHealth:
    remaining = None
    if sequence.end_number is not None:
        remaining = max(sequence.end_number - sequence.next_number + 1, 0)
    return SequenceHealth(
        id=sequence.id,
        prefix=sequence.prefix,
        name=sequence.name,
        next_ncf=format_ncf(sequence.prefix, sequence.next_number),
        remaining=remaining,
        valid_until_date=sequence.valid_until_date,
        valid=sequence.is_valid(today),
        near_expiration=is_near_expiration(sequence, today),
        running_low=is_running_low(sequence),
    )


async def list_subtypes(db: AsyncSession, kind: DocumentKind | None = None) -> list[DocumentSubtype]:
    stmt = select(DocumentSubtype).order_by(DocumentSubtype.prefix)
    if kind is not None:
        stmt = stmt.where(DocumentSubtype.kind == kind.value)
    return list((await db.execute(stmt)).scalars())


async def get_subtype(db: AsyncSession, subtype_id: int) -> DocumentSubtype:
    sequence = await db.get(DocumentSubtype, subtype_id)
    if sequence is None:
        raise NotFoundError("Tipo de comprobante", subtype_id)
    return sequence


async def find_by_prefix(db: AsyncSession, prefix: str) -> DocumentSubtype | None:
    return (
        await db.execute(select(DocumentSubtype).where(DocumentSubtype.prefix == prefix.strip().upper()))
    ).scalar_one_or_none()


async def default_subtype(
    db: AsyncSession,
    kind: DocumentKind = DocumentKind.INVOICE,
    workspace_id: int | None = None,
) -> DocumentSubtype | None:
    """Preferida vigente de la ubicación; si no, el default del ``kind`` o el primero vigente."""
    if workspace_id is not None:
        preferred = await preferred_subtype(db, workspace_id, kind)
        if preferred is not None and preferred.is_valid():
            return preferred
        if preferred is not None:
            logger.info("Secuencia preferida %s de ws=%s no vigente; se usa el default", preferred.prefix, workspace_id)
    candidates = await list_subtypes(db, kind)
    for sequence in candidates:
        if sequence.is_default:
            return sequence
    for sequence in candidates:
        if sequence.is_valid():
            return sequence
    return None


async def preferred_subtype(db: AsyncSession, workspace_id: int, kind: DocumentKind) -> DocumentSubtype | None:
    stmt = (
        select(DocumentSubtype)
        .join(WorkspaceDocumentSubtype, WorkspaceDocumentSubtype.document_subtype_id == DocumentSubtype.id)
        .where(
            WorkspaceDocumentSubtype.workspace_id == workspace_id,
            WorkspaceDocumentSubtype.is_preferred.is_(True),
            DocumentSubtype.kind == kind.value,
        )
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def preferred_workspace_ids(db: AsyncSession, subtype_id: int) -> list[int]:
    """Ubicaciones que tienen a la secuencia como preferida."""
    await get_subtype(db, subtype_id)
    rows = await db.execute(
        select(WorkspaceDocumentSubtype.workspace_id)
        .where(
            WorkspaceDocumentSubtype.document_subtype_id == subtype_id,
            WorkspaceDocumentSubtype.is_preferred.is_(True),
        )
        .order_by(WorkspaceDocumentSubtype.workspace_id)
    )
    return [ws_id for (ws_id,) in rows.all()]


async def set_workspace_preference(
    db: AsyncSession,
    workspace_id: int,
    subtype_id: int,
    is_preferred: bool = True,
    actor_id: int | None = None,
) -> WorkspaceDocumentSubtype:
    """Habilita la secuencia en la ubicación y la marca (o desmarca) como preferida.

    Marcarla desmarca a cualquier otra preferida del mismo tipo en esa ubicación.
    """
    async with unit_of_work(db):
        if await db.get(Workspace, workspace_id) is None:
            raise NotFoundError("Ubicación", workspace_id)
        sequence = await get_subtype(db, subtype_id)
        if is_preferred:
            same_kind = select(DocumentSubtype.id).where(DocumentSubtype.kind == sequence.kind)
            await db.execute(
                update(WorkspaceDocumentSubtype)
                .where(
                    WorkspaceDocumentSubtype.workspace_id == workspace_id,
                    WorkspaceDocumentSubtype.document_subtype_id.in_(same_kind),
                )
                .values(is_preferred=False)
                .execution_options(synchronize_session="fetch")
            )
        link = (
            await db.execute(
                select(WorkspaceDocumentSubtype).where(
                    WorkspaceDocumentSubtype.workspace_id == workspace_id,
                    WorkspaceDocumentSubtype.document_subtype_id == subtype_id,
                )
            )
        ).scalar_one_or_none()
        if link is None:
            link = WorkspaceDocumentSubtype(workspace_id=workspace_id, document_subtype_id=subtype_id)
            db.add(link)
        link.is_preferred = is_preferred
        await db.flush()
        audit(db, "subtype_preference", "workspace_document_subtypes", link.id, {
            "workspace_id": workspace_id,
            "prefix": sequence.prefix,
            "is_preferred": is_preferred,
        }, actor_id)
    logger.info("Secuencia %s %s en ws=%s", sequence.prefix, "preferida" if is_preferred else "no preferida", workspace_id)
    return link


def _check_bounds(start: int, end: int | None, next_number: int) -> dict[str, str]:
    errors: dict[str, str] = {}
    if start < 1:
        errors["start_number"] = "El número inicial debe ser mayor que cero"
    if end is not None and end < start:
        errors["end_number"] = "El número final debe ser mayor o igual al inicial"
    if end is not None and end > max_ncf_number():
        errors["end_number"] = f"El número final no puede superar {max_ncf_number()}"
    if next_number < start:
        errors["next_number"] = "El próximo número no puede ser menor al inicial"
    return errors


async def _clear_defaults(db: AsyncSession) -> None:
    await db.execute(update(DocumentSubtype).values(is_default=False))


async def create_subtype(db: AsyncSession, data: dict[str, Any], actor_id: int | None = None) -> DocumentSubtype:
    prefix = (data.get("prefix") or "").strip().upper()
    errors: dict[str, str] = {}
    if len(prefix) != PREFIX_LENGTH:
        errors["prefix"] = f"El prefijo debe tener {PREFIX_LENGTH} caracteres"
    start = int(data.get("start_number") or 1)
    end = data.get("end_number")
    errors.update(_check_bounds(start, end, start))
    if not errors and await find_by_prefix(db, prefix) is not None:
        errors["prefix"] = "Ya existe un tipo de comprobante con ese prefijo"
    if errors:
        raise ValidationError(errors)

    async with unit_of_work(db):
        is_default = bool(data.get("is_default"))
        if is_default:
            await _clear_defaults(db)
        sequence = DocumentSubtype(
            name=data["name"],
            kind=DocumentKind(data.get("kind") or DocumentKind.INVOICE).value,
            prefix=prefix,
            start_number=start,
            end_number=end,
            next_number=start,
            valid_until_date=data.get("valid_until_date"),
            is_default=is_default,
        )
        db.add(sequence)
        await db.flush()
        audit(db, "subtype_create", "document_subtypes", sequence.id, {"prefix": prefix}, actor_id)
    logger.info("Tipo de comprobante creado: %s (%s)", prefix, sequence.name)
    return sequence


async def update_subtype(db: AsyncSession, subtype_id: int, data: dict[str, Any], actor_id: int | None = None) -> DocumentSubtype:
    async with unit_of_work(db):
        # Lock: ``next_number`` compite con la emisión de documentos
        sequence = (
            await db.execute(
                select(DocumentSubtype)
                .where(DocumentSubtype.id == subtype_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if sequence is None:
            raise NotFoundError("Tipo de comprobante", subtype_id)

        changes = {k: data[k] for k in _EDITABLE_FIELDS if k in data and data[k] != getattr(sequence, k)}
        start = changes.get("start_number", sequence.start_number)
        end = changes.get("end_number", sequence.end_number)
        next_number = changes.get("next_number", sequence.next_number)
        errors = _check_bounds(start, end, next_number)
        if next_number < sequence.next_number:
            errors["next_number"] = f"La secuencia no puede retroceder (próximo actual: {sequence.next_number})"
        if errors:
            raise ValidationError(errors)

        if "kind" in changes:
            changes["kind"] = DocumentKind(changes["kind"]).value
        if changes.get("is_default"):
            await _clear_defaults(db)
        for field, value in changes.items():
            setattr(sequence, field, value)
        await db.flush()
        if changes:
            audit(db, "subtype_update", "document_subtypes", sequence.id, {"fields": sorted(changes)}, actor_id)
    return sequence


async def delete_subtype(db: AsyncSession, subtype_id: int, actor_id: int | None = None) -> None:
    async with unit_of_work(db):
        sequence = await get_subtype(db, subtype_id)
        used = (
            await db.execute(
                select(func.count(FiscalDocument.id)).where(FiscalDocument.document_subtype_id == subtype_id)
            )
        ).scalar_one()
        if used:
            raise ValidationError({
                "document_subtype_id": f"No se puede eliminar: {used} comprobante(s) usan la secuencia {sequence.prefix}"
            })
        prefix = sequence.prefix
        await db.execute(
            delete(WorkspaceDocumentSubtype).where(WorkspaceDocumentSubtype.document_subtype_id == subtype_id)
        )
        await db.delete(sequence)
        audit(db, "subtype_delete", "document_subtypes", subtype_id, {"prefix": prefix}, actor_id)
    logger.info("Tipo de comprobante eliminado: %s", prefix)


async def seed_default_subtypes(db: AsyncSession, today: date | None = None) -> list[str]:
    """Crea las series DGII y la de cotizaciones si faltan. Devuelve los prefijos creados."""
    today = today or date.today()
    valid_until = today + timedelta(days=365)
    existing = {p for (p,) in (await db.execute(select(DocumentSubtype.prefix))).all()}
    has_default = (
        await db.execute(select(DocumentSubtype.id).where(DocumentSubtype.is_default.is_(True)).limit(1))
    ).first() is not None

    created: list[str] = []
    async with unit_of_work(db):
        for prefix, name in DGII_SERIES:
            if prefix in existing:
                continue
            db.add(DocumentSubtype(
                name=name,
                kind=DocumentKind.INVOICE.value,
                prefix=prefix,
                start_number=1,
                end_number=DEFAULT_END_NUMBER,
                next_number=1,
                valid_until_date=valid_until,
                is_default=(prefix == "B01" and not has_default),
            ))
            created.append(prefix)
        if QUOTATION_PREFIX not in existing:
            db.add(DocumentSubtype(
                name="Cotización",
                kind=DocumentKind.QUOTATION.value,
                prefix=QUOTATION_PREFIX,
                start_number=1,
                end_number=None,
                next_number=1,
                valid_until_date=None,
                is_default=False,
            ))
            created.append(QUOTATION_PREFIX)
    if created:
        logger.info("Series NCF sembradas: %s", ", ".join(created))
    return created
