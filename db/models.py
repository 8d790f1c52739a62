# NG-HEADER: Nombre de archivo: models.py
# NG-HEADER: Ubicación: db/models.py
# NG-HEADER: Descripción: Modelos ORM: secuencias NCF, comprobantes, líneas, stock y movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Modelos principales de la base de datos."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import DocumentKind, DocumentStatus, StockMovementType, sql_in
from .ncf_utils import max_ncf_number


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(150))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(primary_key=True)
    workspace_id: Mapped[Optional[int]] = mapped_column(ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True)
    name: Mapped[str] = mapped_column(String(200))
    tax_id: Mapped[Optional[str]] = mapped_column(String(20))  # RNC / cédula
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    track_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    stocks: Mapped[list["ProductStock"]] = relationship(back_populates="product")


class ProductStock(Base):
    __tablename__ = "product_stocks"
    __table_args__ = (
        UniqueConstraint("product_id", "workspace_id", name="uq_product_stocks_product_workspace"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    minimum_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    product: Mapped["Product"] = relationship(back_populates="stocks")


class DocumentSubtype(Base):
    """Secuencia de numeración fiscal (p. ej. B01: Factura de Crédito Fiscal)."""

    __tablename__ = "document_subtypes"
    __table_args__ = (
        UniqueConstraint("prefix", name="uq_document_subtypes_prefix"),
        CheckConstraint(f"kind IN ({sql_in(DocumentKind)})", name="ck_document_subtypes_kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    kind: Mapped[str] = mapped_column(String(16), default=DocumentKind.INVOICE.value)
    prefix: Mapped[str] = mapped_column(String(3))
    start_number: Mapped[int] = mapped_column(Integer, default=1)
    end_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    next_number: Mapped[int] = mapped_column(Integer, default=1)
    valid_until_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, today: date | None = None) -> bool:
        today = today or date.today()
        return self.valid_until_date is not None and self.valid_until_date < today

    def is_exhausted(self) -> bool:
        # Sin número final el tope lo da el ancho del NCF
        upper = self.end_number if self.end_number is not None else max_ncf_number()
        return self.next_number > upper

    def is_valid(self, today: date | None = None) -> bool:
        """Vigente (no vencida) y con números disponibles."""
        return not self.is_expired(today) and not self.is_exhausted()


class WorkspaceDocumentSubtype(Base):
    """Secuencia habilitada en una ubicación; ``is_preferred`` marca la preferida por tipo."""

    __tablename__ = "workspace_document_subtypes"
    __table_args__ = (
        UniqueConstraint("workspace_id", "document_subtype_id", name="uq_workspace_document_subtypes_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"))
    document_subtype_id: Mapped[int] = mapped_column(ForeignKey("document_subtypes.id", ondelete="CASCADE"))
    is_preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class FiscalDocument(Base):
    """Factura o cotización. ``kind`` discrimina el tipo de comprobante."""

    __tablename__ = "fiscal_documents"
    __table_args__ = (
        UniqueConstraint("document_number", name="uq_fiscal_documents_number"),
        CheckConstraint(f"kind IN ({sql_in(DocumentKind)})", name="ck_fiscal_documents_kind"),
        CheckConstraint(f"status IN ({sql_in(DocumentStatus)})", name="ck_fiscal_documents_status"),
        Index("ix_fiscal_documents_workspace_kind", "workspace_id", "kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(16))
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"))
    contact_id: Mapped[int] = mapped_column(ForeignKey("contacts.id"))
    document_subtype_id: Mapped[int] = mapped_column(ForeignKey("document_subtypes.id"))
    document_number: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20))
    issue_date: Mapped[date] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_term: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    paid_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    source_document_id: Mapped[Optional[int]] = mapped_column(ForeignKey("fiscal_documents.id", ondelete="SET NULL"), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    items: Mapped[list["DocumentItem"]] = relationship(back_populates="document", order_by="DocumentItem.id")


class DocumentItem(Base):
    __tablename__ = "document_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("fiscal_documents.id", ondelete="CASCADE"))
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    # Snapshot de la tasa al momento de emitir; cambios posteriores no aplican
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    document: Mapped["FiscalDocument"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()


class StockMovement(Base):
    """Entrada del libro de inventario. Cantidad con signo (negativa = salida)."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(StockMovementType)})", name="ck_stock_movements_type"),
        Index("ix_stock_movements_product_workspace", "product_id", "workspace_id"),
        Index("ix_stock_movements_document_item", "document_item_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"))
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    type: Mapped[str] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_workspace_id: Mapped[Optional[int]] = mapped_column(ForeignKey("workspaces.id"), nullable=True)
    to_workspace_id: Mapped[Optional[int]] = mapped_column(ForeignKey("workspaces.id"), nullable=True)
    document_id: Mapped[Optional[int]] = mapped_column(ForeignKey("fiscal_documents.id", ondelete="SET NULL"), nullable=True)
    document_item_id: Mapped[Optional[int]] = mapped_column(ForeignKey("document_items.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("fiscal_documents.id", ondelete="CASCADE"))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    method: Mapped[str] = mapped_column(String(30), default="efectivo")
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class InventoryAdjustment(Base):
    """Documento de ajuste masivo (conteo físico) por ubicación."""

    __tablename__ = "inventory_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"))
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    adjustment_date: Mapped[date] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_adjusted: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    items: Mapped[list["InventoryAdjustmentItem"]] = relationship(back_populates="adjustment", order_by="InventoryAdjustmentItem.id")


class InventoryAdjustmentItem(Base):
    __tablename__ = "inventory_adjustment_items"
    __table_args__ = (
        CheckConstraint("adjustment_type IN ('increment','decrement')", name="ck_inventory_adjustment_items_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    adjustment_id: Mapped[int] = mapped_column(ForeignKey("inventory_adjustments.id", ondelete="CASCADE"))
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    adjustment_type: Mapped[str] = mapped_column(String(10))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    current_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    final_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    average_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_adjusted: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    adjustment: Mapped["InventoryAdjustment"] = relationship(back_populates="items")


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    action: Mapped[str] = mapped_column(String(64))
    table: Mapped[str] = mapped_column(String(64))
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
