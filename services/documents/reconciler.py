# NG-HEADER: Nombre de archivo: reconciler.py
# NG-HEADER: Ubicación: services/documents/reconciler.py
# NG-HEADER: Descripción: Conciliación de stock por línea de comprobante (alta, edición, baja).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Conciliación de líneas de comprobante contra el libro de inventario.

Cada línea de una factura con producto inventariable tiene exactamente un
movimiento SALE (``quantity = -cantidad_de_la_línea``) enlazado por
``document_item_id``. Al editar la línea se ajusta el stock por la diferencia
y se actualiza ese movimiento en el lugar; al borrarla se devuelve el stock y
se elimina el movimiento. Las cotizaciones no mueven stock.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.enums import DocumentKind, StockMovementType
from db.models import DocumentItem, FiscalDocument, Product, StockMovement
from services.documents.totals import LineAmounts
from services.errors import InsufficientStockError, InvariantViolation, NotFoundError
from services.inventory import ledger

logger = logging.getLogger("cuadra.documents")


def _moves_stock(document: FiscalDocument) -> bool:
    return DocumentKind(document.kind).moves_stock


async def get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Producto", product_id)
    return product


async def find_sale_movement(db: AsyncSession, item_id: int) -> StockMovement | None:
    stmt = (
        select(StockMovement)
        .where(
            StockMovement.document_item_id == item_id,
            StockMovement.type == StockMovementType.SALE.value,
        )
        .order_by(StockMovement.id)
        .with_for_update()
    )
    return (await db.execute(stmt)).scalars().first()


async def _consume(db: AsyncSession, document: FiscalDocument, product: Product, quantity: Decimal) -> None:
    if not await ledger.has_sufficient_stock(db, product, document.workspace_id, quantity):
        available = await ledger.available_quantity(db, product.id, document.workspace_id)
        raise InsufficientStockError(product.name, quantity, available)
    await ledger.require_decrement(db, product, document.workspace_id, quantity)


async def _sale_movement(db: AsyncSession, document: FiscalDocument, item: DocumentItem, product_id: int, quantity: Decimal, actor_id: int | None) -> StockMovement:
    return await ledger.record_movement(
        db,
        product_id=product_id,
        workspace_id=document.workspace_id,
        type=StockMovementType.SALE,
        quantity=-quantity,
        reference_number=document.document_number,
        document_id=document.id,
        document_item_id=item.id,
        user_id=actor_id,
    )


async def create_item(
    db: AsyncSession,
    document: FiscalDocument,
    product: Product,
    amounts: LineAmounts,
    description: str | None = None,
    actor_id: int | None = None,
) -> DocumentItem:
    """Valida stock, descuenta, inserta la línea y su movimiento SALE."""
    tracked = _moves_stock(document) and product.track_stock
    if tracked:
        await _consume(db, document, product, amounts.quantity)

    item = DocumentItem(document_id=document.id, product_id=product.id, description=description, **amounts.as_columns())
    db.add(item)
    await db.flush()

    if tracked:
        await _sale_movement(db, document, item, product.id, amounts.quantity, actor_id)
        logger.info("Línea %s creada en %s: producto=%s cantidad=%s", item.id, document.document_number, product.id, amounts.quantity)
    return item


async def update_item(
    db: AsyncSession,
    document: FiscalDocument,
    item: DocumentItem,
    product: Product,
    amounts: LineAmounts,
    description: str | None = None,
    actor_id: int | None = None,
) -> DocumentItem:
    """Concilia stock por la diferencia de cantidad y actualiza la línea."""
    old_quantity = ledger.to_decimal(item.quantity)
    new_quantity = amounts.quantity

    if _moves_stock(document):
        if item.product_id != product.id:
            await _swap_product(db, document, item, product, old_quantity, new_quantity, actor_id)
        elif product.track_stock:
            await _reconcile_quantity(db, document, item, product, old_quantity, new_quantity, actor_id)

    item.product_id = product.id
    item.description = description
    for field, value in amounts.as_columns().items():
        setattr(item, field, value)
    await db.flush()
    return item


async def _reconcile_quantity(
    db: AsyncSession,
    document: FiscalDocument,
    item: DocumentItem,
    product: Product,
    old_quantity: Decimal,
    new_quantity: Decimal,
    actor_id: int | None,
) -> None:
    delta = new_quantity - old_quantity
    movement = await find_sale_movement(db, item.id)
    before = await ledger.available_quantity(db, product.id, document.workspace_id)

    if delta > 0:
        if not await ledger.has_sufficient_stock(db, product, document.workspace_id, delta):
            raise InsufficientStockError(
                product.name, delta, before,
                f"Stock insuficiente para incrementar la cantidad del producto {product.name}. "
                f"Disponible: {before}, requerido: {delta}.",
            )
        await ledger.require_decrement(db, product, document.workspace_id, delta)
    elif delta < 0:
        await ledger.increment(db, product, document.workspace_id, -delta)

    if movement is None:
        logger.error("%s", InvariantViolation(
            f"Línea {item.id} de {document.document_number} sin movimiento SALE; se crea uno nuevo"
        ))
        await _sale_movement(db, document, item, product.id, new_quantity, actor_id)
    else:
        movement.quantity = -new_quantity
        await db.flush()

    after = await ledger.available_quantity(db, product.id, document.workspace_id)
    logger.info(
        "Línea %s conciliada: cantidad %s -> %s, stock %s -> %s",
        item.id, old_quantity, new_quantity, before, after,
    )


async def _swap_product(
    db: AsyncSession,
    document: FiscalDocument,
    item: DocumentItem,
    product: Product,
    old_quantity: Decimal,
    new_quantity: Decimal,
    actor_id: int | None,
) -> None:
    """Cambio de producto en una línea: devuelve el anterior y consume el nuevo."""
    old_product = await get_product(db, item.product_id)
    movement = await find_sale_movement(db, item.id)

    if old_product.track_stock and movement is not None:
        await ledger.increment(db, old_product, document.workspace_id, old_quantity)
    if product.track_stock:
        await _consume(db, document, product, new_quantity)

    if movement is not None and product.track_stock:
        movement.product_id = product.id
        movement.quantity = -new_quantity
        await db.flush()
    elif movement is not None:
        await db.delete(movement)
        await db.flush()
    elif product.track_stock:
        await _sale_movement(db, document, item, product.id, new_quantity, actor_id)
    logger.info(
        "Línea %s: producto %s (%s) reemplazado por %s (%s)",
        item.id, old_product.id, old_quantity, product.id, new_quantity,
    )


async def remove_item(db: AsyncSession, document: FiscalDocument, item: DocumentItem, keep_line: bool = False) -> None:
    """Devuelve el stock de la línea y elimina su movimiento (y la línea salvo ``keep_line``)."""
    if _moves_stock(document):
        product = await get_product(db, item.product_id)
        if product.track_stock:
            movement = await find_sale_movement(db, item.id)
            if movement is not None:
                quantity = ledger.to_decimal(item.quantity)
                await ledger.increment(db, product, document.workspace_id, quantity)
                await db.delete(movement)
                logger.info("Línea %s eliminada: %s devuelto al stock de producto=%s", item.id, quantity, product.id)
            else:
                logger.warning("Línea %s sin movimiento SALE; no se devuelve stock", item.id)
    if not keep_line:
        await db.delete(item)
    await db.flush()
