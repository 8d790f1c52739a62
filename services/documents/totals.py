# NG-HEADER: Nombre de archivo: totals.py
# NG-HEADER: Ubicación: services/documents/totals.py
# NG-HEADER: Descripción: Cálculo server-side de montos por línea y totales del comprobante.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Montos de líneas y totales de comprobantes.

``total = cantidad * precio - descuento + impuesto`` se recalcula siempre en el
servidor. Si el cliente envía un ``total`` distinto se registra un warning y se
usa el valor calculado.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from services.errors import ValidationError

logger = logging.getLogger("cuadra.documents")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _dec(value, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class LineAmounts:
    quantity: Decimal
    unit_price: Decimal
    gross: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal

    def as_columns(self) -> dict[str, Decimal]:
        """Valores para las columnas de ``DocumentItem``."""
        return {
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount_rate": self.discount_rate,
            "discount_amount": self.discount_amount,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }


def compute_line(item: dict[str, Any], index: int = 0) -> LineAmounts:
    quantity = _dec(item.get("quantity"))
    unit_price = _dec(item.get("unit_price"))
    errors: dict[str, str] = {}
    # Cantidad y precio se guardan con 2 decimales; no se redondean aquí
    if quantity <= 0:
        errors[f"items.{index}.quantity"] = "La cantidad debe ser mayor que cero"
    elif quantity != quantity.quantize(CENT):
        errors[f"items.{index}.quantity"] = "La cantidad admite como máximo 2 decimales"
    if unit_price < 0:
        errors[f"items.{index}.unit_price"] = "El precio no puede ser negativo"
    elif unit_price != unit_price.quantize(CENT):
        errors[f"items.{index}.unit_price"] = "El precio admite como máximo 2 decimales"
    if errors:
        raise ValidationError(errors)

    gross = _money(quantity * unit_price)
    discount_rate = _dec(item.get("discount_rate"))
    if item.get("discount_amount") is not None:
        discount = _money(_dec(item["discount_amount"]))
    else:
        discount = _money(gross * discount_rate / HUNDRED)
    tax_rate = _dec(item.get("tax_rate"))
    if item.get("tax_amount") is not None:
        tax = _money(_dec(item["tax_amount"]))
    else:
        tax = _money((gross - discount) * tax_rate / HUNDRED)
    total = gross - discount + tax

    sent = item.get("total")
    if sent is not None and _money(_dec(sent)) != total:
        logger.warning(
            "Total de línea %s recalculado: enviado=%s calculado=%s (producto=%s)",
            index, sent, total, item.get("product_id"),
        )
    return LineAmounts(
        quantity=quantity,
        unit_price=unit_price,
        gross=gross,
        discount_rate=discount_rate,
        discount_amount=discount,
        tax_rate=tax_rate,
        tax_amount=tax,
        total=total,
    )


def document_totals(lines: Iterable[Any]) -> dict[str, Decimal]:
    """Suma los montos de las líneas (``LineAmounts`` o ``DocumentItem``)."""
    subtotal = discount = tax = total = Decimal("0")
    for line in lines:
        subtotal += _money(_dec(line.quantity) * _dec(line.unit_price))
        discount += _dec(line.discount_amount)
        tax += _dec(line.tax_amount)
        total += _dec(line.total)
    return {
        "subtotal_amount": _money(subtotal),
        "discount_amount": _money(discount),
        "tax_amount": _money(tax),
        "total_amount": _money(total),
    }


def apply_totals(document, lines: Iterable[Any]) -> None:
    for field, value in document_totals(lines).items():
        setattr(document, field, value)
