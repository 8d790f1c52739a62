#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: conftest.py
# NG-HEADER: Ubicación: tests/conftest.py
# NG-HEADER: Descripción: Fixtures y configuración compartida de Pytest.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

# Asegurar path del proyecto antes de importar módulos internos
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

# -------- Entorno base de tests --------
# DB en memoria compartida (db.session la traduce a un URI con StaticPool)
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import db.session as _session  # noqa: E402
import db.base as _base  # noqa: E402
import db.models  # noqa: F401,E402
from db.enums import DocumentKind  # noqa: E402
from db.models import Contact, DocumentSubtype, Product, ProductStock, StockMovement, Workspace  # noqa: E402
from sqlalchemy import select  # noqa: E402

Base = _base.Base


@pytest_asyncio.fixture(scope="function", autouse=True)
async def db_session():
    """DB limpia por test (SQLite memoria compartida). Retorna sesión para usar en fixtures/tests."""
    engine = _session.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _session.SessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# -------- Datos base --------

@pytest_asyncio.fixture
async def workspace(db_session):
    ws = Workspace(name="Principal")
    db_session.add(ws)
    await db_session.commit()
    return ws


@pytest_asyncio.fixture
async def other_workspace(db_session):
    ws = Workspace(name="Sucursal Norte")
    db_session.add(ws)
    await db_session.commit()
    return ws


@pytest_asyncio.fixture
async def contact(db_session, workspace):
    c = Contact(name="Ferretería Los Próceres", tax_id="131000001", workspace_id=workspace.id)
    db_session.add(c)
    await db_session.commit()
    return c


@pytest_asyncio.fixture
async def make_subtype(db_session):
    async def _make(prefix="B01", *, name=None, kind=DocumentKind.INVOICE, start=1, end=1000, next_number=None,
                    valid_until=None, is_default=False):
        s = DocumentSubtype(
            name=name or f"Serie {prefix}",
            kind=kind.value,
            prefix=prefix,
            start_number=start,
            end_number=end,
            next_number=start if next_number is None else next_number,
            valid_until_date=valid_until,
            is_default=is_default,
        )
        db_session.add(s)
        await db_session.commit()
        return s

    return _make


@pytest_asyncio.fixture
async def b01(make_subtype):
    return await make_subtype(
        "B01",
        name="Factura de Crédito Fiscal",
        valid_until=date.today() + timedelta(days=365),
        is_default=True,
    )


@pytest_asyncio.fixture
async def cot(make_subtype):
    return await make_subtype("COT", name="Cotización", kind=DocumentKind.QUOTATION, end=None)


@pytest_asyncio.fixture
async def make_product(db_session):
    """Crea un producto y, si se indica ``stock``, su fila de stock en ``workspace_id``."""

    async def _make(name="Cemento gris 42.5kg", *, price="450.00", cost=None, track_stock=True,
                    stock=None, workspace_id=None, minimum="0"):
        p = Product(
            name=name,
            price=Decimal(price),
            cost=Decimal(cost) if cost is not None else None,
            track_stock=track_stock,
        )
        db_session.add(p)
        await db_session.flush()
        if stock is not None:
            db_session.add(ProductStock(
                product_id=p.id,
                workspace_id=workspace_id,
                quantity=Decimal(str(stock)),
                minimum_quantity=Decimal(minimum),
            ))
        await db_session.commit()
        return p

    return _make


# -------- Lecturas frescas (no dependen del identity map) --------

@pytest.fixture
def stock_of(db_session):
    async def _read(product_id: int, workspace_id: int):
        return (
            await db_session.execute(
                select(ProductStock.quantity).where(
                    ProductStock.product_id == product_id,
                    ProductStock.workspace_id == workspace_id,
                )
            )
        ).scalar_one_or_none()

    return _read


@pytest.fixture
def movements_of(db_session):
    async def _read(product_id: int, **filters):
        stmt = (
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.id)
            .execution_options(populate_existing=True)
        )
        for field, value in filters.items():
            stmt = stmt.where(getattr(StockMovement, field) == value)
        return list((await db_session.execute(stmt)).scalars())

    return _read


@pytest.fixture
def next_number_of(db_session):
    async def _read(prefix: str) -> int:
        return (
            await db_session.execute(select(DocumentSubtype.next_number).where(DocumentSubtype.prefix == prefix))
        ).scalar_one()

    return _read


# -------- Cliente HTTP --------

@pytest_asyncio.fixture
async def client():
    from httpx import ASGITransport, AsyncClient
    from services.api import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
