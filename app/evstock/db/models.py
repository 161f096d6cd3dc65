import uuid
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR

from app.evstock.core.statuses import CaseLineStatus, ComponentStatus, ReservationStatus, TransferStatus


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class VehicleCompany(Base):
    __tablename__ = "vehicle_companies"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    service_centers = relationship("ServiceCenter", back_populates="vehicle_company")
    warehouses = relationship("Warehouse", back_populates="vehicle_company")


class ServiceCenter(Base):
    __tablename__ = "service_centers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    vehicle_company_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("vehicle_companies.id"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    vehicle_company = relationship("VehicleCompany", back_populates="service_centers")


class Warehouse(Base):
    __tablename__ = "warehouses"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    vehicle_company_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("vehicle_companies.id"), index=True, nullable=False
    )
    service_center_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("service_centers.id"), index=True, nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    vehicle_company = relationship("VehicleCompany", back_populates="warehouses")
    service_center = relationship("ServiceCenter")


class TypeComponent(Base):
    __tablename__ = "type_components"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Stock(Base):
    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "type_component_id", name="uq_stocks_warehouse_type"),
        CheckConstraint("quantity_in_stock >= 0", name="ck_stocks_in_stock_non_negative"),
        CheckConstraint("quantity_reserved >= 0", name="ck_stocks_reserved_non_negative"),
        CheckConstraint("quantity_reserved <= quantity_in_stock", name="ck_stocks_reserved_within_stock"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("warehouses.id"), index=True, nullable=False)
    type_component_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("type_components.id"), index=True, nullable=False
    )
    quantity_in_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    warehouse = relationship("Warehouse")
    type_component = relationship("TypeComponent")

    @property
    def quantity_available(self) -> int:
        return max((self.quantity_in_stock or 0) - (self.quantity_reserved or 0), 0)


class CaseLine(Base):
    __tablename__ = "case_lines"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    type_component_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("type_components.id"), index=True, nullable=False
    )
    service_center_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("service_centers.id"), index=True, nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(40), default=CaseLineStatus.DRAFT, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class StockTransferRequest(Base):
    __tablename__ = "stock_transfer_requests"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    requesting_warehouse_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("warehouses.id"), index=True, nullable=False
    )
    requested_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default=TransferStatus.PENDING_APPROVAL, index=True, nullable=False
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    approved_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    estimated_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejected_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    requesting_warehouse = relationship("Warehouse")
    items = relationship(
        "StockTransferRequestItem",
        back_populates="request",
        order_by="StockTransferRequestItem.line_no",
    )


class StockTransferRequestItem(Base):
    __tablename__ = "stock_transfer_request_items"
    __table_args__ = (
        CheckConstraint("quantity_requested > 0", name="ck_transfer_items_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("stock_transfer_requests.id"), index=True, nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    type_component_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("type_components.id"), index=True, nullable=False
    )
    quantity_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    case_line_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("case_lines.id"), index=True, nullable=True
    )

    request = relationship("StockTransferRequest", back_populates="items")
    type_component = relationship("TypeComponent")


class Component(Base):
    __tablename__ = "components"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    serial_number: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    type_component_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("type_components.id"), index=True, nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=ComponentStatus.IN_WAREHOUSE, index=True, nullable=False)
    warehouse_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("warehouses.id"), index=True, nullable=True
    )
    vehicle_vin: Mapped[str | None] = mapped_column(String(32), nullable=True)
    stock_transfer_request_item_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("stock_transfer_request_items.id"), index=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class StockReservation(Base):
    __tablename__ = "stock_reservations"
    __table_args__ = (
        CheckConstraint("quantity_reserved > 0", name="ck_reservations_quantity_positive"),
        CheckConstraint(
            "(request_item_id IS NULL) <> (case_line_id IS NULL)",
            name="ck_reservations_single_context",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    stock_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("stocks.id"), index=True, nullable=False)
    request_item_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("stock_transfer_request_items.id"), index=True, nullable=True
    )
    case_line_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("case_lines.id"), index=True, nullable=True
    )
    quantity_reserved: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ReservationStatus.RESERVED, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    stock = relationship("Stock")
    request_item = relationship("StockTransferRequestItem")


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    trace_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


Index("ix_stocks_type_warehouse", Stock.type_component_id, Stock.warehouse_id)
Index("ix_reservations_stock_status", StockReservation.stock_id, StockReservation.status)
Index("ix_components_item_status", Component.stock_transfer_request_item_id, Component.status)
