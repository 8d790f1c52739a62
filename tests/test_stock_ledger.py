# NG-HEADER: Nombre de archivo: test_stock_ledger.py
# NG-HEADER: Ubicación: tests/test_stock_ledger.py
# NG-HEADER: Descripción: Pruebas del libro de stock (decremento, incremento, estado).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from decimal import Decimal

import pytest

from db.enums import StockStatus
from db.uow import unit_of_work
from services.errors import InsufficientStockError
from services.inventory import ledger

pytestmark = pytest.mark.asyncio


async def test_decrement_insufficient_has_no_effect(db_session, workspace, make_product, stock_of):
    p = await make_product(stock=3, workspace_id=workspace.id)
    async with unit_of_work(db_session):
        ok = await ledger.decrement(db_session, p, workspace.id, 5)
    assert ok is False
    assert await stock_of(p.id, workspace.id) == Decimal("3")


async def test_decrement_without_row(db_session, workspace, make_product, stock_of):
    p = await make_product()
    async with unit_of_work(db_session):
        assert await ledger.decrement(db_session, p, workspace.id, 1) is False
    assert await stock_of(p.id, workspace.id) is None


async def test_decrement_exact_quantity(db_session, workspace, make_product, stock_of):
    p = await make_product(stock=4, workspace_id=workspace.id)
    async with unit_of_work(db_session):
        assert await ledger.decrement(db_session, p, workspace.id, 4) is True
    assert await stock_of(p.id, workspace.id) == Decimal("0")


async def test_require_decrement_reports_shortfall(db_session, workspace, make_product):
    p = await make_product("Varilla 3/8", stock=2, workspace_id=workspace.id)
    with pytest.raises(InsufficientStockError) as exc:
        async with unit_of_work(db_session):
            await ledger.require_decrement(db_session, p, workspace.id, 5)
    err = exc.value
    assert err.available == Decimal("2")
    assert err.shortfall == Decimal("3")
    assert "Varilla 3/8" in err.message


async def test_increment_creates_row(db_session, workspace, make_product, stock_of):
    p = await make_product()
    async with unit_of_work(db_session):
        await ledger.increment(db_session, p, workspace.id, Decimal("2.5"))
    assert await stock_of(p.id, workspace.id) == Decimal("2.5")


async def test_untracked_product_bypasses_ledger(db_session, workspace, make_product, stock_of):
    service = await make_product("Servicio de transporte", track_stock=False)
    async with unit_of_work(db_session):
        assert await ledger.decrement(db_session, service, workspace.id, 100) is True
        assert await ledger.increment(db_session, service, workspace.id, 1) is None
        assert await ledger.has_sufficient_stock(db_session, service, workspace.id, 1000)
    assert await stock_of(service.id, workspace.id) is None


async def test_record_movement_derives_total_cost(db_session, workspace, make_product):
    p = await make_product()
    async with unit_of_work(db_session):
        m = await ledger.record_movement(
            db_session, product_id=p.id, workspace_id=workspace.id, type="adjustment", quantity=-3, unit_cost="10.50"
        )
    assert m.total_cost == Decimal("-31.50")
    assert m.type == "adjustment"


async def test_stock_status(db_session, workspace, make_product):
    p = await make_product(stock=2, workspace_id=workspace.id, minimum="5")
    stock = await ledger.get_stock(db_session, p.id, workspace.id)
    assert ledger.stock_status(p, stock) is StockStatus.LOW_STOCK
    assert ledger.stock_status(p, None) is StockStatus.OUT_OF_STOCK
    untracked = await make_product("Flete", track_stock=False)
    assert ledger.stock_status(untracked, None) is StockStatus.NOT_TRACKED
