# NG-HEADER: Nombre de archivo: util.py
# NG-HEADER: Ubicación: db/migrations/util.py
# NG-HEADER: Descripción: Chequeos idempotentes (tablas, índices) para las migraciones.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.engine import Connection


def has_table(bind: Connection, name: str) -> bool:
    """Devuelve True si la tabla existe."""
    return sa.inspect(bind).has_table(name)


def index_exists(bind: Connection, table: str, name: str) -> bool:
    if not has_table(bind, table):
        return False
    return any(ix["name"] == name for ix in sa.inspect(bind).get_indexes(table))


def ensure_index(bind: Connection, name: str, table: str, columns: list[str]) -> None:
    """Crea el índice si falta (bases creadas antes con ``cq init-db``)."""
    if not index_exists(bind, table, name):
        op.create_index(name, table, columns)
