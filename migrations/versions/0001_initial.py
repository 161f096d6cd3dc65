"""initial stock allocation schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "vehicle_companies",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "service_centers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("vehicle_company_id", GUID(), sa.ForeignKey("vehicle_companies.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_service_centers_vehicle_company_id", "service_centers", ["vehicle_company_id"])

    op.create_table(
        "warehouses",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("vehicle_company_id", GUID(), sa.ForeignKey("vehicle_companies.id"), nullable=False),
        sa.Column("service_center_id", GUID(), sa.ForeignKey("service_centers.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_warehouses_vehicle_company_id", "warehouses", ["vehicle_company_id"])
    op.create_index("ix_warehouses_service_center_id", "warehouses", ["service_center_id"])

    op.create_table(
        "type_components",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=False, unique=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "stocks",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("type_component_id", GUID(), sa.ForeignKey("type_components.id"), nullable=False),
        sa.Column("quantity_in_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("warehouse_id", "type_component_id", name="uq_stocks_warehouse_type"),
        sa.CheckConstraint("quantity_in_stock >= 0", name="ck_stocks_in_stock_non_negative"),
        sa.CheckConstraint("quantity_reserved >= 0", name="ck_stocks_reserved_non_negative"),
        sa.CheckConstraint("quantity_reserved <= quantity_in_stock", name="ck_stocks_reserved_within_stock"),
    )
    op.create_index("ix_stocks_warehouse_id", "stocks", ["warehouse_id"])
    op.create_index("ix_stocks_type_component_id", "stocks", ["type_component_id"])
    op.create_index("ix_stocks_type_warehouse", "stocks", ["type_component_id", "warehouse_id"])

    op.create_table(
        "case_lines",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("type_component_id", GUID(), sa.ForeignKey("type_components.id"), nullable=False),
        sa.Column("service_center_id", GUID(), sa.ForeignKey("service_centers.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_case_lines_type_component_id", "case_lines", ["type_component_id"])
    op.create_index("ix_case_lines_service_center_id", "case_lines", ["service_center_id"])

    op.create_table(
        "stock_transfer_requests",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("requesting_warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("requested_by_user_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("approved_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(), nullable=True),
        sa.Column("estimated_delivery_date", sa.Date(), nullable=True),
        sa.Column("received_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_stock_transfer_requests_requesting_warehouse_id",
        "stock_transfer_requests",
        ["requesting_warehouse_id"],
    )
    op.create_index("ix_stock_transfer_requests_status", "stock_transfer_requests", ["status"])

    op.create_table(
        "stock_transfer_request_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("request_id", GUID(), sa.ForeignKey("stock_transfer_requests.id"), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("type_component_id", GUID(), sa.ForeignKey("type_components.id"), nullable=False),
        sa.Column("quantity_requested", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("case_line_id", GUID(), sa.ForeignKey("case_lines.id"), nullable=True),
        sa.CheckConstraint("quantity_requested > 0", name="ck_transfer_items_quantity_positive"),
    )
    op.create_index("ix_stock_transfer_request_items_request_id", "stock_transfer_request_items", ["request_id"])
    op.create_index(
        "ix_stock_transfer_request_items_type_component_id",
        "stock_transfer_request_items",
        ["type_component_id"],
    )
    op.create_index("ix_stock_transfer_request_items_case_line_id", "stock_transfer_request_items", ["case_line_id"])

    op.create_table(
        "components",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("serial_number", sa.String(length=120), nullable=False, unique=True),
        sa.Column("type_component_id", GUID(), sa.ForeignKey("type_components.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=True),
        sa.Column("vehicle_vin", sa.String(length=32), nullable=True),
        sa.Column(
            "stock_transfer_request_item_id",
            GUID(),
            sa.ForeignKey("stock_transfer_request_items.id"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_components_type_component_id", "components", ["type_component_id"])
    op.create_index("ix_components_status", "components", ["status"])
    op.create_index("ix_components_warehouse_id", "components", ["warehouse_id"])
    op.create_index(
        "ix_components_stock_transfer_request_item_id",
        "components",
        ["stock_transfer_request_item_id"],
    )
    op.create_index("ix_components_item_status", "components", ["stock_transfer_request_item_id", "status"])

    op.create_table(
        "stock_reservations",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("stock_id", GUID(), sa.ForeignKey("stocks.id"), nullable=False),
        sa.Column(
            "request_item_id",
            GUID(),
            sa.ForeignKey("stock_transfer_request_items.id"),
            nullable=True,
        ),
        sa.Column("case_line_id", GUID(), sa.ForeignKey("case_lines.id"), nullable=True),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity_reserved > 0", name="ck_reservations_quantity_positive"),
        sa.CheckConstraint(
            "(request_item_id IS NULL) <> (case_line_id IS NULL)",
            name="ck_reservations_single_context",
        ),
    )
    op.create_index("ix_stock_reservations_stock_id", "stock_reservations", ["stock_id"])
    op.create_index("ix_stock_reservations_request_item_id", "stock_reservations", ["request_item_id"])
    op.create_index("ix_stock_reservations_case_line_id", "stock_reservations", ["case_line_id"])
    op.create_index("ix_stock_reservations_status", "stock_reservations", ["status"])
    op.create_index("ix_reservations_stock_status", "stock_reservations", ["stock_id", "status"])

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("company_id", GUID(), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=False),
        sa.Column("trace_id", sa.String(length=100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_company_id", "audit_events", ["company_id"])
    op.create_index("ix_audit_events_user_id", "audit_events", ["user_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("stock_reservations")
    op.drop_table("components")
    op.drop_table("stock_transfer_request_items")
    op.drop_table("stock_transfer_requests")
    op.drop_table("case_lines")
    op.drop_table("stocks")
    op.drop_table("type_components")
    op.drop_table("warehouses")
    op.drop_table("service_centers")
    op.drop_table("vehicle_companies")
