# NG-HEADER: Nombre de archivo: uow.py
# NG-HEADER: Ubicación: db/uow.py
# NG-HEADER: Descripción: Unidad de trabajo: commit al salir bien, rollback ante cualquier error.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Límite transaccional de las operaciones de negocio.

Uso:
    async with unit_of_work(db):
        ...  # flush/add; el commit lo hace el contexto

Los servicios internos nunca hacen commit; sólo las operaciones públicas abren
una unidad de trabajo. Ante una excepción se hace rollback y se relanza.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    else:
        await db.commit()
