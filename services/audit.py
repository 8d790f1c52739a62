# NG-HEADER: Nombre de archivo: audit.py
# NG-HEADER: Ubicación: services/audit.py
# NG-HEADER: Descripción: Registro de auditoría de escrituras de negocio.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AuditLog


def audit(db: AsyncSession, action: str, table: str, entity_id: int | None, meta: dict | None = None, actor_id: int | None = None) -> None:
    """Agrega una fila de auditoría a la transacción en curso (sin commit)."""
    db.add(AuditLog(action=action, table=table, entity_id=entity_id, meta=dict(meta or {}), user_id=actor_id))
