# NG-HEADER: Nombre de archivo: ledger.py
# NG-HEADER: Ubicación: services/inventory/ledger.py
# NG-HEADER: Descripción: Stock por producto/ubicación y libro de movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Libro de inventario.

``ProductStock`` guarda la cantidad corriente por (producto, workspace) y
``StockMovement`` la historia. Reglas:
 - Un decremento nunca deja cantidad negativa: devuelve False y no toca nada.
 - Los productos con ``track_stock = False`` no pasan por el libro.
 - Las filas se leen con ``FOR UPDATE`` antes de leer-validar-escribir.
 - Este módulo no abre ni confirma transacciones.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import StockMovementType, StockStatus
from db.models import Product, ProductStock, StockMovement
from services.errors import InsufficientStockError, ValidationError

logger = logging.getLogger("cuadra.stock")

ZERO = Decimal("0")
# Las columnas de cantidad son Numeric(12, 2)
QUANTITY_STEP = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def check_quantity(value, field: str = "quantity") -> Decimal:
    """Convierte a Decimal; más de 2 decimales es un error de validación (no se redondea)."""
    qty = to_decimal(value)
    if qty != qty.quantize(QUANTITY_STEP):
        raise ValidationError({field: "La cantidad admite como máximo 2 decimales"})
    return qty


async def get_stock(db: AsyncSession, product_id: int, workspace_id: int, *, lock: bool = False) -> ProductStock | None:
    stmt = select(ProductStock).where(
        ProductStock.product_id == product_id,
        ProductStock.workspace_id == workspace_id,
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def available_quantity(db: AsyncSession, product_id: int, workspace_id: int) -> Decimal:
    stock = await get_stock(db, product_id, workspace_id)
    return to_decimal(stock.quantity) if stock else ZERO


async def has_sufficient_stock(db: AsyncSession, product: Product, workspace_id: int, quantity) -> bool:
    if not product.track_stock:
        return True
    return await available_quantity(db, product.id, workspace_id) >= to_decimal(quantity)


async def decrement(db: AsyncSession, product: Product, workspace_id: int, quantity) -> bool:
    """Resta ``quantity``. False (sin efectos) si no hay fila o no alcanza."""
    if not product.track_stock:
        return True
    qty = to_decimal(quantity)
    stock = await get_stock(db, product.id, workspace_id, lock=True)
    if stock is None or qty > to_decimal(stock.quantity):
        return False
    before = to_decimal(stock.quantity)
    stock.quantity = before - qty
    await db.flush()
    logger.info("Stock producto=%s ws=%s: %s -> %s (-%s)", product.id, workspace_id, before, stock.quantity, qty)
    return True


async def require_decrement(db: AsyncSession, product: Product, workspace_id: int, quantity) -> None:
    if not await decrement(db, product, workspace_id, quantity):
        available = await available_quantity(db, product.id, workspace_id)
        raise InsufficientStockError(product.name, to_decimal(quantity), available)


async def increment(db: AsyncSession, product: Product, workspace_id: int, quantity) -> ProductStock | None:
    """Suma ``quantity``; crea la fila si falta. Siempre tiene éxito."""
    if not product.track_stock:
        return None
    qty = to_decimal(quantity)
    stock = await get_stock(db, product.id, workspace_id, lock=True)
    if stock is None:
        stock = ProductStock(product_id=product.id, workspace_id=workspace_id, quantity=ZERO, minimum_quantity=ZERO)
        db.add(stock)
    before = to_decimal(stock.quantity)
    stock.quantity = before + qty
    await db.flush()
    logger.info("Stock producto=%s ws=%s: %s -> %s (+%s)", product.id, workspace_id, before, stock.quantity, qty)
    return stock


async def record_movement(
    db: AsyncSession,
    *,
    product_id: int,
    workspace_id: int,
    type: StockMovementType,
    quantity,
    unit_cost=None,
    reference_number: str | None = None,
    note: str | None = None,
    from_workspace_id: int | None = None,
    to_workspace_id: int | None = None,
    document_id: int | None = None,
    document_item_id: int | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Agrega una entrada al libro. ``total_cost`` se deriva si hay costo unitario."""
    qty = to_decimal(quantity)
    cost: Optional[Decimal] = to_decimal(unit_cost) if unit_cost is not None else None
    movement = StockMovement(
        product_id=product_id,
        workspace_id=workspace_id,
        type=StockMovementType(type).value,
        quantity=qty,
        unit_cost=cost,
        total_cost=(qty * cost) if cost is not None else None,
        reference_number=reference_number,
        note=note,
        from_workspace_id=from_workspace_id,
        to_workspace_id=to_workspace_id,
        document_id=document_id,
        document_item_id=document_item_id,
        user_id=user_id,
    )
    db.add(movement)
    await db.flush()
    return movement


def stock_status(product: Product, stock: ProductStock | None) -> StockStatus:
    if not product.track_stock:
        return StockStatus.NOT_TRACKED
    quantity = to_decimal(stock.quantity) if stock else ZERO
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if stock is not None and quantity <= to_decimal(stock.minimum_quantity):
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


async def movements_for(db: AsyncSession, product_id: int, workspace_id: int | None = None, limit: int = 100) -> list[StockMovement]:
    """Historial de movimientos, del más reciente al más antiguo."""
    stmt = select(StockMovement).where(StockMovement.product_id == product_id)
    if workspace_id is not None:
        stmt = stmt.where(StockMovement.workspace_id == workspace_id)
    stmt = stmt.order_by(StockMovement.id.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars())
