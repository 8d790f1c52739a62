# NG-HEADER: Nombre de archivo: base.py
# NG-HEADER: Ubicación: db/base.py
# NG-HEADER: Descripción: Declaración base de SQLAlchemy para los modelos ORM.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Declarative base para los modelos."""
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Nombres estables para índices y FKs sin nombre explícito (diffs de Alembic)
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
