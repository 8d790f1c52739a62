# NG-HEADER: Nombre de archivo: operations.py
# NG-HEADER: Ubicación: services/inventory/operations.py
# NG-HEADER: Descripción: Stock inicial, ajustes, ajuste masivo y transferencias entre ubicaciones.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Operaciones de inventario fuera de los comprobantes.

Cada operación pública corre en su propia unidad de trabajo. La transferencia
es la única que toca el stock de dos ubicaciones: bloquea ambas filas en orden
ascendente de workspace para no generar deadlocks entre transferencias
cruzadas.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import StockMovementType
from db.models import (
    InventoryAdjustment,
    InventoryAdjustmentItem,
    Product,
    ProductStock,
    StockMovement,
    Workspace,
)
from db.uow import unit_of_work
from services.audit import audit
from services.errors import NotFoundError, ValidationError
from services.inventory.ledger import ZERO, check_quantity, get_stock, record_movement, to_decimal

logger = logging.getLogger("cuadra.stock")

ADJUSTMENT_TYPES = ("set_quantity", "add_quantity", "remove_quantity")
CENT = Decimal("0.01")


@dataclass
class AdjustmentResult:
    movement: StockMovement
    before: Decimal
    after: Decimal


@dataclass
class TransferResult:
    movement: StockMovement
    from_stock: ProductStock
    to_stock: ProductStock


async def _get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Producto", product_id)
    return product


async def _get_workspace(db: AsyncSession, workspace_id: int) -> Workspace:
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Ubicación", workspace_id)
    return workspace


async def _stock_for_update(db: AsyncSession, product_id: int, workspace_id: int) -> ProductStock:
    """Fila de stock bloqueada; la crea en 0 si no existe."""
    stock = await get_stock(db, product_id, workspace_id, lock=True)
    if stock is None:
        stock = ProductStock(product_id=product_id, workspace_id=workspace_id, quantity=ZERO, minimum_quantity=ZERO)
        db.add(stock)
        await db.flush()
    return stock


async def set_initial_stock(db: AsyncSession, data: dict[str, Any], actor_id: int | None = None) -> ProductStock:
    async with unit_of_work(db):
        product = await _get_product(db, data["product_id"])
        if not product.track_stock:
            raise ValidationError({"product_id": "No se puede definir stock inicial para productos que no rastrean inventario."})
        workspace_id = data["workspace_id"]
        await _get_workspace(db, workspace_id)
        quantity = check_quantity(data.get("quantity"))
        minimum = check_quantity(data.get("minimum_quantity"), "minimum_quantity")

        existing = await get_stock(db, product.id, workspace_id, lock=True)
        if existing is not None:
            raise ValidationError({
                "product_id": (
                    "El stock inicial ya fue definido para este producto en la ubicación. "
                    f"Cantidad actual: {existing.quantity}. Use un ajuste de stock."
                )
            })
        if quantity < 0:
            raise ValidationError({"quantity": "El stock inicial no puede ser negativo."})

        stock = ProductStock(
            product_id=product.id,
            workspace_id=workspace_id,
            quantity=quantity,
            minimum_quantity=minimum,
        )
        db.add(stock)
        await db.flush()
        if quantity:
            await record_movement(
                db,
                product_id=product.id,
                workspace_id=workspace_id,
                type=StockMovementType.INITIAL,
                quantity=quantity,
                unit_cost=data.get("unit_cost"),
                note=data.get("notes") or "Stock inicial",
                user_id=actor_id,
            )
        audit(db, "stock_initial", "product_stocks", stock.id, {"product_id": product.id, "quantity": str(quantity)}, actor_id)
    logger.info("Stock inicial producto=%s ws=%s: %s", product.id, workspace_id, quantity)
    return stock


async def _adjust(db: AsyncSession, product: Product, workspace_id: int, data: dict[str, Any], actor_id: int | None) -> AdjustmentResult:
    if not product.track_stock:
        raise ValidationError({"product_id": "No se puede ajustar el inventario para productos que no rastrean inventario."})
    adjustment_type = data.get("adjustment_type")
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError({
            "adjustment_type": "Tipo de ajuste inválido. Debe ser: set_quantity, add_quantity, o remove_quantity."
        })
    quantity = check_quantity(data.get("quantity"))

    stock = await _stock_for_update(db, product.id, workspace_id)
    current = to_decimal(stock.quantity)
    if adjustment_type == "set_quantity":
        delta = quantity - current
    elif adjustment_type == "add_quantity":
        delta = quantity
    else:
        delta = -abs(quantity)

    new_quantity = current + delta
    if new_quantity < 0:
        raise ValidationError({
            "quantity": (
                "No se puede ajustar el stock a un valor negativo. "
                f"Stock actual: {current}, intento de ajuste: {delta}."
            )
        })
    stock.quantity = new_quantity
    await db.flush()

    reference = data.get("reference")
    reason = data.get("reason") or ""
    movement = await record_movement(
        db,
        product_id=product.id,
        workspace_id=workspace_id,
        type=StockMovementType.ADJUSTMENT,
        quantity=delta,
        unit_cost=data.get("unit_cost"),
        reference_number=reference,
        note=(f"[{reference}] " if reference else "") + reason,
        user_id=actor_id,
    )
    logger.info("Ajuste producto=%s ws=%s: %s -> %s (%s)", product.id, workspace_id, current, new_quantity, adjustment_type)
    return AdjustmentResult(movement=movement, before=current, after=new_quantity)


async def adjust_stock(db: AsyncSession, data: dict[str, Any], actor_id: int | None = None) -> StockMovement:
    """Ajuste puntual: fija, suma o resta cantidad. Rechaza resultados negativos."""
    async with unit_of_work(db):
        product = await _get_product(db, data["product_id"])
        await _get_workspace(db, data["workspace_id"])
        movement = (await _adjust(db, product, data["workspace_id"], data, actor_id)).movement
        audit(db, "stock_adjust", "stock_movements", movement.id, {
            "product_id": product.id,
            "workspace_id": data["workspace_id"],
            "adjustment_type": data.get("adjustment_type"),
            "quantity": str(movement.quantity),
        }, actor_id)
    return movement


async def transfer_stock(db: AsyncSession, data: dict[str, Any], actor_id: int | None = None) -> TransferResult:
    from_id = data["from_workspace_id"]
    to_id = data["to_workspace_id"]
    quantity = check_quantity(data.get("quantity"))
    if from_id == to_id:
        raise ValidationError({"to_workspace_id": "No se puede transferir stock a la misma ubicación de trabajo."})
    if quantity <= 0:
        raise ValidationError({"quantity": "La cantidad a transferir debe ser mayor que cero."})

    async with unit_of_work(db):
        product = await _get_product(db, data["product_id"])
        if not product.track_stock:
            raise ValidationError({
                "product_id": "No se puede transferir stock de un producto que no tiene el seguimiento de inventario habilitado."
            })
        from_ws = await _get_workspace(db, from_id)
        to_ws = await _get_workspace(db, to_id)

        # Orden de lock fijo: workspace de menor id primero
        locked: dict[int, ProductStock | None] = {}
        for ws_id in sorted((from_id, to_id)):
            locked[ws_id] = await get_stock(db, product.id, ws_id, lock=True)

        from_stock = locked[from_id]
        available = to_decimal(from_stock.quantity) if from_stock else ZERO
        if from_stock is None or available < quantity:
            raise ValidationError({
                "quantity": (
                    "No hay suficiente stock en la ubicación de trabajo de origen. "
                    f"Disponible: {available}, Requerido: {quantity}."
                )
            })
        to_stock = locked[to_id]
        if to_stock is None:
            to_stock = ProductStock(product_id=product.id, workspace_id=to_id, quantity=ZERO, minimum_quantity=ZERO)
            db.add(to_stock)

        from_stock.quantity = available - quantity
        to_stock.quantity = to_decimal(to_stock.quantity) + quantity
        await db.flush()

        movement = await record_movement(
            db,
            product_id=product.id,
            workspace_id=from_id,
            type=StockMovementType.TRANSFER,
            quantity=quantity,
            reference_number=data.get("reference") or f"TRANSFERENCIA-{from_id}-{to_id}-{int(time.time())}",
            note=data.get("notes") or f"Transferido desde {from_ws.name} hacia {to_ws.name}",
            from_workspace_id=from_id,
            to_workspace_id=to_id,
            user_id=actor_id,
        )
        audit(db, "stock_transfer", "stock_movements", movement.id, {
            "product_id": product.id,
            "from": from_id,
            "to": to_id,
            "quantity": str(quantity),
        }, actor_id)
    logger.info("Transferencia producto=%s %s -> %s: %s", product.id, from_id, to_id, quantity)
    return TransferResult(movement=movement, from_stock=from_stock, to_stock=to_stock)


async def create_inventory_adjustment(db: AsyncSession, data: dict[str, Any], actor_id: int | None = None) -> InventoryAdjustment:
    """Ajuste masivo (conteo físico): un ajuste add/remove por ítem, referencia ``ADJ-{id}``."""
    items = data.get("items") or []
    if not items:
        raise ValidationError({"items": "Debe indicar al menos un producto a ajustar."})
    for idx, item in enumerate(items):
        if item.get("adjustment_type") not in ("increment", "decrement"):
            raise ValidationError({f"items.{idx}.adjustment_type": "Tipo de ajuste inválido. Debe ser: increment o decrement."})
        if check_quantity(item.get("quantity"), f"items.{idx}.quantity") <= 0:
            raise ValidationError({f"items.{idx}.quantity": "La cantidad debe ser mayor que cero."})

    workspace_id = data["workspace_id"]
    notes = data.get("notes")
    async with unit_of_work(db):
        await _get_workspace(db, workspace_id)
        adjustment = InventoryAdjustment(
            workspace_id=workspace_id,
            user_id=actor_id,
            adjustment_date=data.get("adjustment_date") or date.today(),
            notes=notes,
            total_adjusted=ZERO,
        )
        db.add(adjustment)
        await db.flush()

        total = ZERO
        for item in items:
            product = await _get_product(db, item["product_id"])
            quantity = to_decimal(item["quantity"])
            is_increment = item["adjustment_type"] == "increment"
            average_cost = to_decimal(product.cost)
            line_total = ((quantity if is_increment else -quantity) * average_cost).quantize(CENT)

            reason = f"Ajuste de inventario #{adjustment.id}"
            if notes:
                reason = f"{reason}: {notes}"
            # Antes/después salen de la fila bloqueada que escribe _adjust
            result = await _adjust(db, product, workspace_id, {
                "adjustment_type": "add_quantity" if is_increment else "remove_quantity",
                "quantity": quantity,
                "reason": reason,
                "reference": f"ADJ-{adjustment.id}",
            }, actor_id)

            db.add(InventoryAdjustmentItem(
                adjustment_id=adjustment.id,
                product_id=product.id,
                adjustment_type=item["adjustment_type"],
                quantity=quantity,
                current_quantity=result.before,
                final_quantity=result.after,
                average_cost=average_cost,
                total_adjusted=line_total,
            ))
            total += line_total

        adjustment.total_adjusted = total.quantize(CENT)
        await db.flush()
        audit(db, "inventory_adjustment", "inventory_adjustments", adjustment.id, {
            "items": len(items),
            "total_adjusted": str(adjustment.total_adjusted),
        }, actor_id)
    logger.info("Ajuste de inventario #%s ws=%s: %s ítems", adjustment.id, workspace_id, len(items))
    return adjustment
