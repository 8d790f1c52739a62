# NG-HEADER: Nombre de archivo: test_stock_operations.py
# NG-HEADER: Ubicación: tests/test_stock_operations.py
# NG-HEADER: Descripción: Pruebas de stock inicial, ajustes, transferencias y ajuste masivo.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from decimal import Decimal

import pytest
from sqlalchemy import select

from db.models import InventoryAdjustmentItem
from services.errors import ValidationError
from services.inventory import operations as ops

pytestmark = pytest.mark.asyncio


async def test_initial_stock_records_movement(db_session, workspace, make_product, stock_of, movements_of):
    p = await make_product()
    await ops.set_initial_stock(db_session, {"product_id": p.id, "workspace_id": workspace.id, "quantity": 25, "unit_cost": "300"})
    assert await stock_of(p.id, workspace.id) == Decimal("25")
    [m] = await movements_of(p.id)
    assert m.type == "initial"
    assert m.note == "Stock inicial"
    assert m.total_cost == Decimal("7500")


async def test_initial_stock_rejects_existing_row(db_session, workspace, make_product, stock_of):
    p = await make_product(stock=5, workspace_id=workspace.id)
    product_id, ws_id = p.id, workspace.id
    with pytest.raises(ValidationError) as exc:
        await ops.set_initial_stock(db_session, {"product_id": product_id, "workspace_id": ws_id, "quantity": 10})
    assert "ya fue definido" in exc.value.errors["product_id"]
    assert await stock_of(product_id, ws_id) == Decimal("5")


async def test_initial_stock_rejects_negative(db_session, workspace, make_product, stock_of):
    p = await make_product()
    product_id = p.id
    ws_id = workspace.id
    with pytest.raises(ValidationError):
        await ops.set_initial_stock(db_session, {"product_id": product_id, "workspace_id": ws_id, "quantity": -1})
    assert await stock_of(product_id, ws_id) is None


@pytest.mark.parametrize(
    "adjustment_type,quantity,expected,delta",
    [
        ("set_quantity", 4, "4", "-6"),
        ("add_quantity", 3, "13", "3"),
        ("remove_quantity", 7, "3", "-7"),
    ],
)
async def test_adjust_stock(db_session, workspace, make_product, stock_of, adjustment_type, quantity, expected, delta):
    p = await make_product(stock=10, workspace_id=workspace.id)
    m = await ops.adjust_stock(db_session, {
        "product_id": p.id,
        "workspace_id": workspace.id,
        "adjustment_type": adjustment_type,
        "quantity": quantity,
        "reason": "Conteo",
        "reference": "C-1",
    })
    assert await stock_of(p.id, workspace.id) == Decimal(expected)
    assert m.quantity == Decimal(delta)
    assert m.note == "[C-1] Conteo"


async def test_adjust_stock_rejects_negative_result(db_session, workspace, make_product, stock_of, movements_of):
    p = await make_product(stock=2, workspace_id=workspace.id)
    product_id, ws_id = p.id, workspace.id
    with pytest.raises(ValidationError) as exc:
        await ops.adjust_stock(db_session, {
            "product_id": product_id, "workspace_id": ws_id, "adjustment_type": "remove_quantity", "quantity": 3,
        })
    assert "negativo" in exc.value.errors["quantity"]
    assert await stock_of(product_id, ws_id) == Decimal("2")
    assert await movements_of(product_id) == []


async def test_adjust_stock_invalid_type(db_session, workspace, make_product):
    p = await make_product(stock=2, workspace_id=workspace.id)
    with pytest.raises(ValidationError) as exc:
        await ops.adjust_stock(db_session, {
            "product_id": p.id, "workspace_id": workspace.id, "adjustment_type": "double", "quantity": 3,
        })
    assert "adjustment_type" in exc.value.errors


async def test_transfer_moves_stock_between_workspaces(db_session, workspace, other_workspace, make_product, stock_of, movements_of):
    p = await make_product(stock=10, workspace_id=workspace.id)
    result = await ops.transfer_stock(db_session, {
        "product_id": p.id,
        "from_workspace_id": workspace.id,
        "to_workspace_id": other_workspace.id,
        "quantity": 4,
    })
    assert await stock_of(p.id, workspace.id) == Decimal("6")
    assert await stock_of(p.id, other_workspace.id) == Decimal("4")
    [m] = await movements_of(p.id)
    assert m.type == "transfer"
    assert m.quantity == Decimal("4")
    assert (m.from_workspace_id, m.to_workspace_id) == (workspace.id, other_workspace.id)
    assert m.note == "Transferido desde Principal hacia Sucursal Norte"
    assert m.reference_number.startswith(f"TRANSFERENCIA-{workspace.id}-{other_workspace.id}-")
    assert result.to_stock.quantity == Decimal("4")


async def test_transfer_insufficient_leaves_both_untouched(db_session, workspace, other_workspace, make_product, stock_of, movements_of):
    p = await make_product(stock=3, workspace_id=workspace.id)
    product_id, from_id, to_id = p.id, workspace.id, other_workspace.id
    with pytest.raises(ValidationError) as exc:
        await ops.transfer_stock(db_session, {
            "product_id": product_id, "from_workspace_id": from_id, "to_workspace_id": to_id, "quantity": 5,
        })
    assert "Disponible: 3" in exc.value.errors["quantity"]
    assert await stock_of(product_id, from_id) == Decimal("3")
    assert await stock_of(product_id, to_id) is None
    assert await movements_of(product_id) == []


async def test_transfer_validation(db_session, workspace, other_workspace, make_product):
    p = await make_product(stock=3, workspace_id=workspace.id)
    with pytest.raises(ValidationError) as same:
        await ops.transfer_stock(db_session, {
            "product_id": p.id, "from_workspace_id": workspace.id, "to_workspace_id": workspace.id, "quantity": 1,
        })
    assert "to_workspace_id" in same.value.errors
    with pytest.raises(ValidationError) as zero:
        await ops.transfer_stock(db_session, {
            "product_id": p.id, "from_workspace_id": workspace.id, "to_workspace_id": other_workspace.id, "quantity": 0,
        })
    assert "quantity" in zero.value.errors
    untracked = await make_product("Flete", track_stock=False)
    with pytest.raises(ValidationError) as tracked:
        await ops.transfer_stock(db_session, {
            "product_id": untracked.id, "from_workspace_id": workspace.id, "to_workspace_id": other_workspace.id, "quantity": 1,
        })
    assert "product_id" in tracked.value.errors


async def test_inventory_adjustment_batch(db_session, workspace, make_product, stock_of, movements_of):
    cement = await make_product("Cemento", cost="300", stock=10, workspace_id=workspace.id)
    sand = await make_product("Arena", cost="50.50", stock=5, workspace_id=workspace.id)
    adjustment = await ops.create_inventory_adjustment(db_session, {
        "workspace_id": workspace.id,
        "notes": "Conteo mensual",
        "items": [
            {"product_id": cement.id, "adjustment_type": "increment", "quantity": 2},
            {"product_id": sand.id, "adjustment_type": "decrement", "quantity": 1},
        ],
    })
    assert await stock_of(cement.id, workspace.id) == Decimal("12")
    assert await stock_of(sand.id, workspace.id) == Decimal("4")
    [m] = await movements_of(sand.id)
    assert m.reference_number == f"ADJ-{adjustment.id}"
    assert m.note == f"[ADJ-{adjustment.id}] Ajuste de inventario #{adjustment.id}: Conteo mensual"

    items = (await db_session.execute(
        select(InventoryAdjustmentItem).where(InventoryAdjustmentItem.adjustment_id == adjustment.id)
        .order_by(InventoryAdjustmentItem.id)
    )).scalars().all()
    assert [(i.current_quantity, i.final_quantity) for i in items] == [(Decimal("10"), Decimal("12")), (Decimal("5"), Decimal("4"))]
    assert adjustment.total_adjusted == Decimal("549.50")


async def test_inventory_adjustment_is_atomic(db_session, workspace, make_product, stock_of):
    cement = await make_product("Cemento", stock=10, workspace_id=workspace.id)
    sand = await make_product("Arena", stock=1, workspace_id=workspace.id)
    cement_id, sand_id, ws_id = cement.id, sand.id, workspace.id
    with pytest.raises(ValidationError):
        await ops.create_inventory_adjustment(db_session, {
            "workspace_id": ws_id,
            "items": [
                {"product_id": cement_id, "adjustment_type": "increment", "quantity": 2},
                {"product_id": sand_id, "adjustment_type": "decrement", "quantity": 3},
            ],
        })
    assert await stock_of(cement_id, ws_id) == Decimal("10")
    assert await stock_of(sand_id, ws_id) == Decimal("1")


async def test_inventory_adjustment_reads_locked_row(db_session, workspace, make_product, stock_of):
    from db.session import SessionLocal
    from services.inventory.ledger import get_stock

    cement = await make_product("Cemento", cost="300", stock=10, workspace_id=workspace.id)
    cement_id, ws_id = cement.id, workspace.id
    # La sesión conserva la fila con 10 en su identity map
    assert (await get_stock(db_session, cement_id, ws_id)).quantity == Decimal("10")
    await db_session.commit()

    # Otra sesión cambia el stock antes del ajuste
    async with SessionLocal() as other:
        row = await get_stock(other, cement_id, ws_id)
        row.quantity = Decimal("7")
        await other.commit()

    adjustment = await ops.create_inventory_adjustment(db_session, {
        "workspace_id": ws_id,
        "items": [{"product_id": cement_id, "adjustment_type": "increment", "quantity": 2}],
    })
    [item] = (await db_session.execute(
        select(InventoryAdjustmentItem).where(InventoryAdjustmentItem.adjustment_id == adjustment.id)
    )).scalars().all()
    assert (item.current_quantity, item.final_quantity) == (Decimal("7"), Decimal("9"))
    assert await stock_of(cement_id, ws_id) == Decimal("9")


@pytest.mark.parametrize("quantity", ["1.005", "0.125"])
async def test_stock_operations_reject_more_than_two_decimals(db_session, workspace, other_workspace, make_product, stock_of, movements_of, quantity):
    p = await make_product(stock=10, workspace_id=workspace.id)
    product_id, ws_id, other_id = p.id, workspace.id, other_workspace.id

    with pytest.raises(ValidationError) as exc:
        await ops.adjust_stock(db_session, {"product_id": product_id, "workspace_id": ws_id, "adjustment_type": "remove_quantity", "quantity": quantity})
    assert "quantity" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await ops.transfer_stock(db_session, {"product_id": product_id, "from_workspace_id": ws_id, "to_workspace_id": other_id, "quantity": quantity})
    assert "quantity" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await ops.create_inventory_adjustment(db_session, {
            "workspace_id": ws_id,
            "items": [{"product_id": product_id, "adjustment_type": "decrement", "quantity": quantity}],
        })
    assert "items.0.quantity" in exc.value.errors

    fresh = await make_product("Arena")
    with pytest.raises(ValidationError) as exc:
        await ops.set_initial_stock(db_session, {"product_id": fresh.id, "workspace_id": ws_id, "quantity": quantity})
    assert "quantity" in exc.value.errors

    assert await stock_of(product_id, ws_id) == Decimal("10")
    assert await stock_of(product_id, other_id) is None
    assert await movements_of(product_id) == []


async def test_fractional_adjustment_keeps_exact_quantity(db_session, workspace, make_product, stock_of, movements_of):
    p = await make_product(stock=10, workspace_id=workspace.id)
    await ops.adjust_stock(db_session, {"product_id": p.id, "workspace_id": workspace.id, "adjustment_type": "remove_quantity", "quantity": "2.75"})
    assert await stock_of(p.id, workspace.id) == Decimal("7.25")
    [m] = await movements_of(p.id)
    assert m.quantity == Decimal("-2.75")
