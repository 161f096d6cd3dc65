from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, or_, select

from app.evstock.core.metrics import metrics
from app.evstock.core.statuses import ComponentStatus, ReservationStatus, TransferStatus
from app.evstock.db.models import (
    Component,
    Stock,
    StockReservation,
    StockTransferRequest,
    StockTransferRequestItem,
    VehicleCompany,
    Warehouse,
)


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    company_id: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def resolve_companies(db, company: str) -> list[str]:
    if company.lower() != "all":
        return [company]
    return [str(row.id) for row in db.execute(select(VehicleCompany.id)).all()]


def _company_warehouse_ids(company_id: str):
    return select(Warehouse.id).where(Warehouse.vehicle_company_id == company_id)


def _report(check_id: str, findings: list[IntegrityFinding]) -> list[IntegrityFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def check_stock_counter_bounds(db, company_id: str) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Stock.id, Stock.warehouse_id, Stock.quantity_in_stock, Stock.quantity_reserved)
        .where(Stock.warehouse_id.in_(_company_warehouse_ids(company_id)))
        .where(
            or_(
                Stock.quantity_in_stock < 0,
                Stock.quantity_reserved < 0,
                Stock.quantity_reserved > Stock.quantity_in_stock,
            )
        )
    ).all()
    findings = [
        IntegrityFinding(
            check_id="stock_counter_bounds",
            severity=SEVERITY_CRITICAL,
            company_id=company_id,
            message="Stock counters outside 0 <= reserved <= in_stock.",
            entity="stocks",
            entity_id=str(row.id),
            details={
                "warehouse_id": str(row.warehouse_id),
                "quantity_in_stock": row.quantity_in_stock,
                "quantity_reserved": row.quantity_reserved,
            },
        )
        for row in rows
    ]
    return _report("stock_counter_bounds", findings)


def check_reserved_matches_reservations(db, company_id: str) -> list[IntegrityFinding]:
    reserved_totals = (
        select(
            StockReservation.stock_id.label("stock_id"),
            func.sum(StockReservation.quantity_reserved).label("total"),
        )
        .where(StockReservation.status == ReservationStatus.RESERVED)
        .group_by(StockReservation.stock_id)
        .subquery()
    )
    rows = db.execute(
        select(Stock.id, Stock.quantity_reserved, func.coalesce(reserved_totals.c.total, 0).label("reservations_total"))
        .outerjoin(reserved_totals, reserved_totals.c.stock_id == Stock.id)
        .where(Stock.warehouse_id.in_(_company_warehouse_ids(company_id)))
    ).all()
    findings = []
    for row in rows:
        reservations_total = int(row.reservations_total or 0)
        if reservations_total == row.quantity_reserved:
            continue
        findings.append(
            IntegrityFinding(
                check_id="reserved_matches_reservations",
                severity=SEVERITY_CRITICAL,
                company_id=company_id,
                message="Reserved counter differs from the sum of RESERVED reservations.",
                entity="stocks",
                entity_id=str(row.id),
                details={"quantity_reserved": row.quantity_reserved, "reservations_total": reservations_total},
            )
        )
    return _report("reserved_matches_reservations", findings)


def _transfer_timestamps_valid(row) -> bool:
    approved = row.approved_at is not None
    shipped = row.shipped_at is not None
    received = row.received_at is not None
    rejected = row.rejected_at is not None
    cancelled = row.cancelled_at is not None
    status = row.status
    if status == TransferStatus.PENDING_APPROVAL:
        return not any([approved, shipped, received, rejected, cancelled])
    if status == TransferStatus.APPROVED:
        return approved and not any([shipped, received, rejected, cancelled])
    if status == TransferStatus.SHIPPED:
        return approved and shipped and row.estimated_delivery_date is not None and not any([received, rejected, cancelled])
    if status == TransferStatus.RECEIVED:
        return approved and shipped and received and not any([rejected, cancelled])
    if status == TransferStatus.REJECTED:
        return rejected and not any([approved, shipped, received, cancelled])
    if status == TransferStatus.CANCELLED:
        return cancelled and not any([shipped, received, rejected])
    return False


def check_transfer_fsm(db, company_id: str) -> list[IntegrityFinding]:
    rows = db.execute(
        select(
            StockTransferRequest.id,
            StockTransferRequest.status,
            StockTransferRequest.approved_at,
            StockTransferRequest.shipped_at,
            StockTransferRequest.estimated_delivery_date,
            StockTransferRequest.received_at,
            StockTransferRequest.rejected_at,
            StockTransferRequest.cancelled_at,
        ).where(StockTransferRequest.requesting_warehouse_id.in_(_company_warehouse_ids(company_id)))
    ).all()
    findings = []
    for row in rows:
        if _transfer_timestamps_valid(row):
            continue
        findings.append(
            IntegrityFinding(
                check_id="transfer_fsm",
                severity=SEVERITY_CRITICAL,
                company_id=company_id,
                message="Stock transfer request state/timestamps inconsistent.",
                entity="stock_transfer_requests",
                entity_id=str(row.id),
                details={
                    "status": row.status,
                    "approved_at": _format_datetime(row.approved_at),
                    "shipped_at": _format_datetime(row.shipped_at),
                    "estimated_delivery_date": _format_datetime(row.estimated_delivery_date),
                    "received_at": _format_datetime(row.received_at),
                    "rejected_at": _format_datetime(row.rejected_at),
                    "cancelled_at": _format_datetime(row.cancelled_at),
                },
            )
        )
    return _report("transfer_fsm", findings)


def _custody_problem(row) -> str | None:
    has_warehouse = row.warehouse_id is not None
    has_vehicle = bool(row.vehicle_vin)
    has_claim = row.stock_transfer_request_item_id is not None
    if row.status == ComponentStatus.IN_WAREHOUSE and (not has_warehouse or has_vehicle):
        return "IN_WAREHOUSE unit must have a warehouse and no vehicle."
    if row.status == ComponentStatus.IN_TRANSIT and (has_warehouse or not has_claim):
        return "IN_TRANSIT unit must have no warehouse and a claiming transfer item."
    if row.status == ComponentStatus.INSTALLED and (has_warehouse or not has_vehicle):
        return "INSTALLED unit must have a vehicle and no warehouse."
    return None


def check_component_custody(db, company_id: str) -> list[IntegrityFinding]:
    warehouse_ids = _company_warehouse_ids(company_id)
    claimed_item_ids = (
        select(StockTransferRequestItem.id)
        .join(StockTransferRequest, StockTransferRequest.id == StockTransferRequestItem.request_id)
        .where(StockTransferRequest.requesting_warehouse_id.in_(_company_warehouse_ids(company_id)))
    )
    rows = db.execute(
        select(
            Component.id,
            Component.serial_number,
            Component.status,
            Component.warehouse_id,
            Component.vehicle_vin,
            Component.stock_transfer_request_item_id,
        ).where(
            or_(
                Component.warehouse_id.in_(warehouse_ids),
                Component.stock_transfer_request_item_id.in_(claimed_item_ids),
            )
        )
    ).all()
    findings = []
    for row in rows:
        problem = _custody_problem(row)
        if problem is None:
            continue
        findings.append(
            IntegrityFinding(
                check_id="component_custody",
                severity=SEVERITY_CRITICAL,
                company_id=company_id,
                message=problem,
                entity="components",
                entity_id=str(row.id),
                details={
                    "serial_number": row.serial_number,
                    "status": row.status,
                    "warehouse_id": str(row.warehouse_id) if row.warehouse_id else None,
                    "vehicle_vin": row.vehicle_vin,
                    "stock_transfer_request_item_id": (
                        str(row.stock_transfer_request_item_id) if row.stock_transfer_request_item_id else None
                    ),
                },
            )
        )
    return _report("component_custody", findings)


def check_received_conservation(db, company_id: str) -> list[IntegrityFinding]:
    shipped_totals = (
        select(
            StockReservation.request_item_id.label("request_item_id"),
            func.sum(StockReservation.quantity_reserved).label("total"),
        )
        .where(StockReservation.status == ReservationStatus.SHIPPED)
        .group_by(StockReservation.request_item_id)
        .subquery()
    )
    rows = db.execute(
        select(
            StockTransferRequest.id.label("request_id"),
            StockTransferRequestItem.id.label("item_id"),
            StockTransferRequestItem.quantity_requested,
            StockTransferRequestItem.quantity_received,
            func.coalesce(shipped_totals.c.total, 0).label("shipped"),
        )
        .join(StockTransferRequestItem, StockTransferRequestItem.request_id == StockTransferRequest.id)
        .outerjoin(shipped_totals, shipped_totals.c.request_item_id == StockTransferRequestItem.id)
        .where(StockTransferRequest.status == TransferStatus.RECEIVED)
        .where(StockTransferRequest.requesting_warehouse_id.in_(_company_warehouse_ids(company_id)))
    ).all()
    findings = []
    for row in rows:
        shipped = int(row.shipped or 0)
        received = int(row.quantity_received or 0)
        if shipped == received == row.quantity_requested:
            continue
        findings.append(
            IntegrityFinding(
                check_id="received_conservation",
                severity=SEVERITY_CRITICAL,
                company_id=company_id,
                message="Received request item does not balance requested, shipped and received quantities.",
                entity="stock_transfer_request_items",
                entity_id=str(row.item_id),
                details={
                    "request_id": str(row.request_id),
                    "quantity_requested": row.quantity_requested,
                    "shipped": shipped,
                    "received": received,
                },
            )
        )
    return _report("received_conservation", findings)


def _format_datetime(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def run_integrity_checks(db, company_id: str) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_stock_counter_bounds(db, company_id))
    findings.extend(check_reserved_matches_reservations(db, company_id))
    findings.extend(check_transfer_fsm(db, company_id))
    findings.extend(check_component_custody(db, company_id))
    findings.extend(check_received_conservation(db, company_id))
    return findings
