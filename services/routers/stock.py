# NG-HEADER: Nombre de archivo: stock.py
# NG-HEADER: Ubicación: services/routers/stock.py
# NG-HEADER: Descripción: Endpoints de inventario: stock inicial, ajustes, transferencias e historial.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InventoryAdjustmentItem, Product
from db.session import get_session
from services.errors import NotFoundError
from services.inventory import ledger, operations
from services.routers.deps import actor_id
from services.schemas import (
    InitialStockRequest,
    InventoryAdjustmentRequest,
    StockAdjustmentRequest,
    StockTransferRequest,
    adjustment_out,
    movement_out,
    stock_out,
)

router = APIRouter(prefix="/stock", tags=["stock"])


@router.get("/{product_id}/workspaces/{workspace_id}")
async def product_stock(product_id: int, workspace_id: int, db: AsyncSession = Depends(get_session)):
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Producto", product_id)
    stock = await ledger.get_stock(db, product_id, workspace_id)
    return {
        "product_id": product_id,
        "workspace_id": workspace_id,
        "quantity": str(stock.quantity) if stock else "0",
        "status": ledger.stock_status(product, stock).value,
    }


@router.get("/{product_id}/movements")
async def product_movements(
    product_id: int,
    workspace_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
):
    """Historial de movimientos del producto (más reciente primero)."""
    if await db.get(Product, product_id) is None:
        raise NotFoundError("Producto", product_id)
    rows = await ledger.movements_for(db, product_id, workspace_id, limit)
    return {"product_id": product_id, "items": [movement_out(m) for m in rows]}


@router.post("/initial", status_code=201)
async def initial_stock(payload: InitialStockRequest, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    stock = await operations.set_initial_stock(db, payload.model_dump(), actor)
    return stock_out(stock)


@router.post("/adjustments", status_code=201)
async def adjust(payload: StockAdjustmentRequest, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    movement = await operations.adjust_stock(db, payload.model_dump(), actor)
    return movement_out(movement)


@router.post("/transfers", status_code=201)
async def transfer(payload: StockTransferRequest, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    result = await operations.transfer_stock(db, payload.model_dump(), actor)
    return {
        "movement": movement_out(result.movement),
        "from_stock": stock_out(result.from_stock),
        "to_stock": stock_out(result.to_stock),
    }


@router.post("/inventory-adjustments", status_code=201)
async def inventory_adjustment(payload: InventoryAdjustmentRequest, db: AsyncSession = Depends(get_session), actor: Optional[int] = Depends(actor_id)):
    adjustment = await operations.create_inventory_adjustment(db, payload.model_dump(), actor)
    items = (
        await db.execute(
            select(InventoryAdjustmentItem)
            .where(InventoryAdjustmentItem.adjustment_id == adjustment.id)
            .order_by(InventoryAdjustmentItem.id)
        )
    ).scalars().all()
    return adjustment_out(adjustment, list(items))
