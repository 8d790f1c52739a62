# NG-HEADER: Nombre de archivo: errors.py
# NG-HEADER: Ubicación: services/errors.py
# NG-HEADER: Descripción: Errores de dominio y su representación HTTP.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Jerarquía de errores de dominio.

Los servicios lanzan estas excepciones y no las capturan; ``unit_of_work``
hace rollback y las relanza, y ``services/api.py`` las traduce a respuestas.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message}


class ValidationError(DomainError):
    """Errores por campo, pensados para resaltar inputs en la UI."""

    code = "validation_error"
    status_code = 422

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "errors": self.errors}


class InsufficientStockError(DomainError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product_name: str, requested: Decimal, available: Decimal, message: str | None = None) -> None:
        self.product_name = product_name
        self.requested = Decimal(requested)
        self.available = Decimal(available)
        self.shortfall = self.requested - self.available
        super().__init__(message or (
            f"No hay stock ({self.requested}) suficiente para el producto: {product_name}. "
            f"Disponible: {self.available}, faltan: {self.shortfall}."
        ))

    def to_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "detail": self.message,
            "product": self.product_name,
            "requested": str(self.requested),
            "available": str(self.available),
        }


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} no encontrado")


class InvariantViolation(DomainError):
    """Estado interno inconsistente. Se registra y se informa como error genérico."""

    code = "internal_error"
    status_code = 500

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "detail": "Error interno"}
