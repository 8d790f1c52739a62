# NG-HEADER: Nombre de archivo: session.py
# NG-HEADER: Ubicación: db/session.py
# NG-HEADER: Descripción: Creación del engine y sesiones de SQLAlchemy.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Sesión asíncrona para SQLAlchemy."""
import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cuadra_core.config import settings

# ``DEBUG_SQL=1`` activa el modo ``echo`` para ver las consultas generadas.
ECHO = settings.debug_sql

# SQLite en memoria durante tests: un solo pool/conn compartido.
# DB_URL del entorno tiene prioridad (los tests la setean a :memory:).
db_url = os.getenv("DB_URL") or settings.db_url
kwargs: dict = {"echo": ECHO, "pool_pre_ping": True, "future": True}
if db_url.startswith("sqlite+") and ":memory:" in db_url:
    # DB en memoria compartida y con nombre para múltiples sesiones
    db_url = "sqlite+aiosqlite:///file:cuadradb?mode=memory&cache=shared"
    kwargs.update({"connect_args": {"uri": True}, "poolclass": StaticPool})

engine = create_async_engine(db_url, **kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

_schema_initialized = False


async def _ensure_schema_if_memory() -> None:
    global _schema_initialized
    if _schema_initialized:
        return
    url = str(engine.url)
    if url.startswith("sqlite+") and (":memory:" in url or "mode=memory" in url):
        # Importar modelos para poblar metadata
        import db.models  # noqa: F401
        from db.base import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    _schema_initialized = True


async def init_schema() -> None:
    """Crea todas las tablas declaradas (uso en dev/CLI; en prod usar Alembic)."""
    import db.models  # noqa: F401
    from db.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    await _ensure_schema_if_memory()
    async with SessionLocal() as session:
        yield session
