# NG-HEADER: Nombre de archivo: validator.py
# NG-HEADER: Ubicación: services/numbering/validator.py
# NG-HEADER: Descripción: Validación de NCF contra la secuencia y unicidad global.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Validador de NCF ingresados o propuestos.

Orden de chequeos (el primero que falla define el mensaje):
  1. formato (prefijo + sólo dígitos)
  2. prefijo existente
  3. prefijo del tipo de comprobante seleccionado
  4. secuencia vigente y no agotada; fecha de emisión dentro de la vigencia
  5. número dentro de [inicio, fin]
  6. no usado por otro comprobante (facturas y cotizaciones, sin importar el workspace)
  7. número >= próximo (no se rellenan huecos)

Es una consulta pura: no modifica nada.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import DocumentSubtype, FiscalDocument
from db.ncf_utils import format_ncf, max_ncf_number, split_ncf
from services.errors import ValidationError

MSG_FORMAT = "Formato de NCF inválido"
MSG_PREFIX = "Prefijo de NCF no encontrado"
MSG_WRONG_SUBTYPE = "El prefijo no corresponde al tipo de comprobante seleccionado"
MSG_EXPIRED = "La secuencia de NCF está expirada o agotada"
MSG_DUPLICATE = "Este NCF ya está en uso por otro comprobante"
MSG_OK = "NCF válido"


@dataclass
class NCFCheck:
    valid: bool
    message: str
    prefix: Optional[str] = None
    number: Optional[int] = None
    subtype_id: Optional[int] = None


async def find_subtype_by_prefix(db: AsyncSession, prefix: str) -> DocumentSubtype | None:
    return (
        await db.execute(select(DocumentSubtype).where(DocumentSubtype.prefix == prefix))
    ).scalar_one_or_none()


async def ncf_holder(db: AsyncSession, ncf: str) -> int | None:
    """Id del comprobante (factura o cotización) que tiene asignado ``ncf``."""
    return (
        await db.execute(select(FiscalDocument.id).where(FiscalDocument.document_number == ncf).limit(1))
    ).scalar_one_or_none()


async def validate_ncf(
    db: AsyncSession,
    ncf: str | None,
    subtype: DocumentSubtype | None = None,
    *,
    issue_date: date | None = None,
    exclude_document_id: int | None = None,
    today: date | None = None,
) -> NCFCheck:
    """Valida ``ncf`` para el tipo de comprobante ``subtype``.

    Si ``subtype`` es None se valida contra la secuencia dueña del prefijo.
    ``exclude_document_id`` excluye al propio documento al editarlo.
    """
    parts = split_ncf(ncf)
    if parts is None:
        return NCFCheck(False, MSG_FORMAT)
    prefix, number = parts

    sequence = await find_subtype_by_prefix(db, prefix)
    if sequence is None:
        return NCFCheck(False, MSG_PREFIX, prefix, number)
    if subtype is not None and subtype.id != sequence.id:
        return NCFCheck(False, MSG_WRONG_SUBTYPE, prefix, number, sequence.id)

    today = today or date.today()
    issued_late = (
        issue_date is not None
        and sequence.valid_until_date is not None
        and issue_date > sequence.valid_until_date
    )
    if not sequence.is_valid(today) or issued_late:
        return NCFCheck(False, MSG_EXPIRED, prefix, number, sequence.id)

    if number < sequence.start_number or (sequence.end_number is not None and number > sequence.end_number):
        upper = sequence.end_number if sequence.end_number is not None else max_ncf_number()
        return NCFCheck(
            False,
            f"El número está fuera del rango autorizado ({sequence.start_number} - {upper})",
            prefix,
            number,
            sequence.id,
        )

    holder = await ncf_holder(db, format_ncf(prefix, number))
    if holder is not None and holder != exclude_document_id:
        return NCFCheck(False, MSG_DUPLICATE, prefix, number, sequence.id)
    if holder is not None:
        # Número ya asignado al mismo comprobante que se edita
        return NCFCheck(True, MSG_OK, prefix, number, sequence.id)

    if number < sequence.next_number:
        expected = format_ncf(prefix, sequence.next_number)
        return NCFCheck(
            False,
            f"El número debe ser igual o mayor a {sequence.next_number} ({expected})",
            prefix,
            number,
            sequence.id,
        )

    return NCFCheck(True, MSG_OK, prefix, number, sequence.id)


async def ensure_valid_ncf(db: AsyncSession, ncf: str | None, subtype: DocumentSubtype | None = None, **kwargs) -> NCFCheck:
    """Igual que ``validate_ncf`` pero lanza ``ValidationError({"ncf": ...})``."""
    check = await validate_ncf(db, ncf, subtype, **kwargs)
    if not check.valid:
        raise ValidationError({"ncf": check.message})
    return check
