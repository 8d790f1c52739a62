# NG-HEADER: Nombre de archivo: allocator.py
# NG-HEADER: Ubicación: services/numbering/allocator.py
# NG-HEADER: Descripción: Asignación transaccional de números de secuencia NCF.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Asignador de números fiscales por secuencia (DocumentSubtype).

Reglas:
 - ``next_number`` sólo avanza: ``max(next_number, usado + 1)``.
 - La fila de la secuencia se lee con ``SELECT ... FOR UPDATE`` antes de
   validar o avanzar; dos transacciones sobre la misma secuencia se serializan.
   En SQLite la cláusula no se emite y el lock de escritura de la base cumple
   ese papel.
 - Nada de esto hace commit: corre dentro de la transacción del documento.
"""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import DocumentSubtype
from db.ncf_utils import format_ncf
from services.errors import InvariantViolation, NotFoundError, ValidationError

logger = logging.getLogger("cuadra.numbering")


def invalid_sequence_message(sequence: DocumentSubtype) -> str:
    return (
        f"La secuencia de NCF para {sequence.name} es inválida o ha expirado. "
        "Por favor, actualice la configuración de NCF para este tipo de documento."
    )


async def lock_sequence(db: AsyncSession, subtype_id: int) -> DocumentSubtype:
    """Obtiene y bloquea la fila de la secuencia, refrescando el identity map."""
    stmt = (
        select(DocumentSubtype)
        .where(DocumentSubtype.id == subtype_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    sequence = (await db.execute(stmt)).scalar_one_or_none()
    if sequence is None:
        raise NotFoundError("Tipo de comprobante", subtype_id)
    return sequence


def allocate_next(sequence: DocumentSubtype, today: date | None = None) -> str:
    """Devuelve el próximo NCF formateado sin persistir nada."""
    if not sequence.is_valid(today):
        raise ValidationError({"document_subtype_id": invalid_sequence_message(sequence)})
    return format_ncf(sequence.prefix, sequence.next_number)


async def advance_to(db: AsyncSession, sequence: DocumentSubtype, used_number: int) -> DocumentSubtype:
    """Marca ``used_number`` como consumido: ``next = max(next, used + 1)``."""
    locked = await lock_sequence(db, sequence.id)
    before = locked.next_number
    if used_number < before:
        # Un número por debajo del contador ya pasó por aquí; nunca retrocede
        logger.error(
            "%s",
            InvariantViolation(
                f"Intento de retroceder la secuencia {locked.prefix}: next={before}, usado={used_number}"
            ),
        )
        return locked
    locked.next_number = max(before, used_number + 1)
    await db.flush()
    logger.info("Secuencia %s avanzada: %s -> %s", locked.prefix, before, locked.next_number)
    return locked


async def consume_next(db: AsyncSession, sequence: DocumentSubtype | int, today: date | None = None) -> str:
    """Bloquea, asigna y avanza en un solo paso. Devuelve el NCF consumido."""
    subtype_id = sequence if isinstance(sequence, int) else sequence.id
    locked = await lock_sequence(db, subtype_id)
    ncf = allocate_next(locked, today)
    await advance_to(db, locked, locked.next_number)
    return ncf
