# NG-HEADER: Nombre de archivo: enums.py
# NG-HEADER: Ubicación: db/enums.py
# NG-HEADER: Descripción: Enumeraciones de dominio (tipos de documento, estados, movimientos).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Enumeraciones compartidas por modelos y servicios.

Se guardan como texto en la base (``String`` + ``CheckConstraint``) para que
las migraciones no dependan de tipos ENUM nativos del motor.
"""
from __future__ import annotations

from enum import Enum


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"

    @property
    def label(self) -> str:
        return "Factura" if self is DocumentKind.INVOICE else "Cotización"

    @property
    def moves_stock(self) -> bool:
        # Las cotizaciones nunca afectan inventario
        return self is DocumentKind.INVOICE


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"
    NON_CONVERTED = "non_converted"
    CONVERTED = "converted"
    DELETED = "deleted"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    DocumentStatus.DRAFT: "Borrador",
    DocumentStatus.PENDING_PAYMENT: "Pendiente de pago",
    DocumentStatus.PARTIALLY_PAID: "Parcialmente pagada",
    DocumentStatus.PAID: "Pagada",
    DocumentStatus.CANCELLED: "Cancelada",
    DocumentStatus.NON_CONVERTED: "No convertida",
    DocumentStatus.CONVERTED: "Convertida",
    DocumentStatus.DELETED: "Anulada",
}

# Estados admitidos por tipo de documento
STATUSES_BY_KIND: dict[DocumentKind, frozenset[DocumentStatus]] = {
    DocumentKind.INVOICE: frozenset({
        DocumentStatus.DRAFT,
        DocumentStatus.PENDING_PAYMENT,
        DocumentStatus.PARTIALLY_PAID,
        DocumentStatus.PAID,
        DocumentStatus.CANCELLED,
        DocumentStatus.DELETED,
    }),
    DocumentKind.QUOTATION: frozenset({
        DocumentStatus.NON_CONVERTED,
        DocumentStatus.CONVERTED,
        DocumentStatus.CANCELLED,
        DocumentStatus.DELETED,
    }),
}

INITIAL_STATUS: dict[DocumentKind, DocumentStatus] = {
    DocumentKind.INVOICE: DocumentStatus.DRAFT,
    DocumentKind.QUOTATION: DocumentStatus.NON_CONVERTED,
}

# Documentos en estos estados ya no admiten edición
LOCKED_STATUSES = frozenset({
    DocumentStatus.CANCELLED,
    DocumentStatus.CONVERTED,
    DocumentStatus.DELETED,
})


class StockMovementType(str, Enum):
    INITIAL = "initial"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    NOT_TRACKED = "not_tracked"


def sql_in(enum_cls: type[Enum]) -> str:
    """Lista SQL para ``CheckConstraint`` a partir de una enumeración."""
    return ",".join(f"'{m.value}'" for m in enum_cls)
