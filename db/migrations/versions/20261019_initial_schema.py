# NG-HEADER: Nombre de archivo: 20261019_initial_schema.py
# NG-HEADER: Ubicación: db/migrations/versions/20261019_initial_schema.py
# NG-HEADER: Descripción: Esquema inicial: secuencias NCF, comprobantes, stock y auditoría.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from alembic import op
import sqlalchemy as sa

from db.migrations.util import ensure_index, has_table

# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

DOCUMENT_KINDS = "'invoice','quotation'"
DOCUMENT_STATUSES = "'draft','pending_payment','partially_paid','paid','cancelled','non_converted','converted','deleted'"
MOVEMENT_TYPES = "'initial','sale','adjustment','transfer'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not has_table(bind, "workspaces"):
        op.create_table(
            "workspaces",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(150), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not has_table(bind, "contacts"):
        op.create_table(
            "contacts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("tax_id", sa.String(20), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not has_table(bind, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("sku", sa.String(100), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("cost", sa.Numeric(12, 2), nullable=True),
            sa.Column("track_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )

    if not has_table(bind, "product_stocks"):
        op.create_table(
            "product_stocks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("minimum_quantity", sa.Numeric(12, 2), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("product_id", "workspace_id", name="uq_product_stocks_product_workspace"),
        )

    if not has_table(bind, "document_subtypes"):
        op.create_table(
            "document_subtypes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(120), nullable=False),
            sa.Column("kind", sa.String(16), nullable=False, server_default="invoice"),
            sa.Column("prefix", sa.String(3), nullable=False),
            sa.Column("start_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("end_number", sa.Integer(), nullable=True),
            sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("valid_until_date", sa.Date(), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.UniqueConstraint("prefix", name="uq_document_subtypes_prefix"),
            sa.CheckConstraint(f"kind IN ({DOCUMENT_KINDS})", name="ck_document_subtypes_kind"),
        )

    if not has_table(bind, "workspace_document_subtypes"):
        op.create_table(
            "workspace_document_subtypes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_subtype_id", sa.Integer(), sa.ForeignKey("document_subtypes.id", ondelete="CASCADE"), nullable=False),
            sa.Column("is_preferred", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("workspace_id", "document_subtype_id", name="uq_workspace_document_subtypes_pair"),
        )

    if not has_table(bind, "fiscal_documents"):
        op.create_table(
            "fiscal_documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("kind", sa.String(16), nullable=False),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
            sa.Column("contact_id", sa.Integer(), sa.ForeignKey("contacts.id"), nullable=False),
            sa.Column("document_subtype_id", sa.Integer(), sa.ForeignKey("document_subtypes.id"), nullable=False),
            sa.Column("document_number", sa.String(20), nullable=False),
            sa.Column("status", sa.String(20), nullable=False),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("payment_term", sa.String(50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("subtotal_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("paid_total", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("source_document_id", sa.Integer(), sa.ForeignKey("fiscal_documents.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("document_number", name="uq_fiscal_documents_number"),
            sa.CheckConstraint(f"kind IN ({DOCUMENT_KINDS})", name="ck_fiscal_documents_kind"),
            sa.CheckConstraint(f"status IN ({DOCUMENT_STATUSES})", name="ck_fiscal_documents_status"),
        )

    if not has_table(bind, "document_items"):
        op.create_table(
            "document_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("fiscal_documents.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("quantity", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("discount_rate", sa.Numeric(6, 2), nullable=False, server_default="0"),
            sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("tax_rate", sa.Numeric(6, 2), nullable=False, server_default="0"),
            sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total", sa.Numeric(14, 2), nullable=False, server_default="0"),
        )

    if not has_table(bind, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("type", sa.String(20), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
            sa.Column("unit_cost", sa.Numeric(12, 2), nullable=True),
            sa.Column("total_cost", sa.Numeric(14, 2), nullable=True),
            sa.Column("reference_number", sa.String(100), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("from_workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=True),
            sa.Column("to_workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=True),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("fiscal_documents.id", ondelete="SET NULL"), nullable=True),
            sa.Column("document_item_id", sa.Integer(), sa.ForeignKey("document_items.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(f"type IN ({MOVEMENT_TYPES})", name="ck_stock_movements_type"),
        )

    if not has_table(bind, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("fiscal_documents.id", ondelete="CASCADE"), nullable=False),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("method", sa.String(30), nullable=False, server_default="efectivo"),
            sa.Column("reference", sa.String(100), nullable=True),
            sa.Column("paid_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not has_table(bind, "inventory_adjustments"):
        op.create_table(
            "inventory_adjustments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("adjustment_date", sa.Date(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("total_adjusted", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not has_table(bind, "inventory_adjustment_items"):
        op.create_table(
            "inventory_adjustment_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("adjustment_id", sa.Integer(), sa.ForeignKey("inventory_adjustments.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("adjustment_type", sa.String(10), nullable=False),
            sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
            sa.Column("current_quantity", sa.Numeric(12, 2), nullable=False),
            sa.Column("final_quantity", sa.Numeric(12, 2), nullable=False),
            sa.Column("average_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_adjusted", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.CheckConstraint("adjustment_type IN ('increment','decrement')", name="ck_inventory_adjustment_items_type"),
        )

    if not has_table(bind, "audit_log"):
        op.create_table(
            "audit_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("action", sa.String(64), nullable=False),
            sa.Column("table", sa.String(64), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("meta", sa.JSON(), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    ensure_index(bind, "ix_fiscal_documents_workspace_kind", "fiscal_documents", ["workspace_id", "kind"])
    ensure_index(bind, "ix_stock_movements_product_workspace", "stock_movements", ["product_id", "workspace_id"])
    ensure_index(bind, "ix_stock_movements_document_item", "stock_movements", ["document_item_id"])


def downgrade() -> None:
    bind = op.get_bind()
    for name in (
        "audit_log",
        "inventory_adjustment_items",
        "inventory_adjustments",
        "payments",
        "stock_movements",
        "document_items",
        "fiscal_documents",
        "workspace_document_subtypes",
        "document_subtypes",
        "product_stocks",
        "products",
        "contacts",
        "workspaces",
    ):
        if has_table(bind, name):
            op.drop_table(name)
