from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import select

from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.ids import as_optional_uuid, as_uuid
from app.evstock.core.logging import log_json
from app.evstock.core.metrics import metrics
from app.evstock.core.roles import EMV_STAFF, SERVICE_CENTER_MANAGER, is_service_center_role, normalize_role
from app.evstock.core.statuses import CaseLineStatus, ComponentStatus, ReservationStatus, TransferStatus
from app.evstock.db.models import (
    Component,
    StockReservation,
    StockTransferRequest,
    StockTransferRequestItem,
    TypeComponent,
)
from app.evstock.db.session import transaction
from app.evstock.repos.case_lines import CaseLineRepository
from app.evstock.repos.components import ComponentRepository
from app.evstock.repos.reservations import ReservationRepository
from app.evstock.repos.stock import StockRepository
from app.evstock.repos.transfers import TransferQueryFilters, TransferRequestRepository
from app.evstock.repos.warehouses import WarehouseRepository
from app.evstock.services import allocation
from app.evstock.services.audit import AuditEventPayload, AuditService
from app.evstock.services.notifications import (
    NotificationHub,
    NotificationService,
    emv_staff_room,
    parts_coordinator_company_room,
    parts_coordinator_service_center_room,
    service_center_manager_room,
    service_center_staff_room,
)
from app.evstock.services.reservation_ledger import ReservationLedger
from app.evstock.services.stock_ledger import StockLedger

logger = logging.getLogger("evstock.transfers")


@dataclass(frozen=True)
class TransferItemInput:
    type_component_id: object
    quantity_requested: int
    case_line_id: object | None = None


@dataclass
class ApprovalResult:
    request: StockTransferRequest
    reservations: list[StockReservation]


@dataclass
class ShipmentResult:
    request: StockTransferRequest
    reservation: StockReservation
    components: list[Component]
    fully_shipped: bool


@dataclass
class ReceiptResult:
    request: StockTransferRequest
    components: list[Component]
    received_by_type: dict = field(default_factory=dict)


@dataclass(frozen=True)
class _Scope:
    company_id: object
    service_center_id: object


def _coerce_item(raw, index: int) -> TransferItemInput:
    if isinstance(raw, TransferItemInput):
        item = raw
    elif isinstance(raw, Mapping):
        item = TransferItemInput(
            type_component_id=raw.get("type_component_id"),
            quantity_requested=raw.get("quantity_requested"),
            case_line_id=raw.get("case_line_id"),
        )
    else:
        raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": f"items[{index}] is not a valid item"})
    quantity = item.quantity_requested
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise AppError(
            ErrorCatalog.BAD_REQUEST,
            details={"message": f"items[{index}].quantity_requested must be a positive integer"},
        )
    return TransferItemInput(
        type_component_id=as_uuid(item.type_component_id, f"items[{index}].type_component_id"),
        quantity_requested=quantity,
        case_line_id=as_optional_uuid(item.case_line_id, f"items[{index}].case_line_id"),
    )


def _invalid_transition(request: StockTransferRequest, message: str) -> AppError:
    return AppError(
        ErrorCatalog.INVALID_STATUS_TRANSITION,
        details={
            "message": f"{message}. Current status: {request.status}",
            "request_id": str(request.id),
            "status": request.status,
        },
    )


def _component_unavailable(component: Component, message: str) -> AppError:
    return AppError(
        ErrorCatalog.COMPONENT_UNAVAILABLE,
        details={
            "message": message,
            "component_id": str(component.id),
            "serial_number": component.serial_number,
        },
    )


class TransferRequestWorkflow:
    """State machine for stock transfer requests.

    Every transition runs in a single transaction. Metrics, audit, the transition log
    line and room notifications are emitted only once that transaction has committed.
    """

    def __init__(
        self,
        db,
        *,
        transfers: TransferRequestRepository,
        warehouses: WarehouseRepository,
        stocks: StockRepository,
        components: ComponentRepository,
        case_lines: CaseLineRepository,
        stock_ledger: StockLedger,
        reservation_ledger: ReservationLedger,
        notifications: NotificationService,
        audit: AuditService | None = None,
        trace_id: str | None = None,
    ):
        self.db = db
        self.transfers = transfers
        self.warehouses = warehouses
        self.stocks = stocks
        self.components = components
        self.case_lines = case_lines
        self.stock_ledger = stock_ledger
        self.reservation_ledger = reservation_ledger
        self.notifications = notifications
        self.audit = audit
        self.trace_id = trace_id

    # -- loading and visibility ------------------------------------------------

    def _load_request(
        self,
        request_id,
        *,
        company_id=None,
        role_name: str | None = None,
        service_center_id=None,
        lock: bool = False,
    ) -> tuple[StockTransferRequest, _Scope]:
        request_uuid = as_uuid(request_id, "request_id")
        request = self.transfers.get(request_uuid, lock=lock)
        not_found = AppError(
            ErrorCatalog.NOT_FOUND,
            details={"message": f"Stock transfer request with ID {request_id} not found"},
        )
        if request is None:
            raise not_found
        warehouse = self.warehouses.get(request.requesting_warehouse_id)
        if warehouse is None:
            raise not_found
        if company_id is not None and warehouse.vehicle_company_id != as_uuid(company_id, "company_id"):
            raise not_found
        if is_service_center_role(role_name) and service_center_id is not None:
            if warehouse.service_center_id != as_uuid(service_center_id, "service_center_id"):
                raise not_found
        return request, _Scope(company_id=warehouse.vehicle_company_id, service_center_id=warehouse.service_center_id)

    def _load_items(self, request: StockTransferRequest, *, lock: bool = False) -> list[StockTransferRequestItem]:
        items = self.transfers.get_items(request.id, lock=lock)
        if not items:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": f"Request {request.id} has no items."},
            )
        return items

    # -- after-commit side effects --------------------------------------------

    def _committed(
        self,
        transition: str,
        *,
        request_id,
        status: str,
        scope: _Scope,
        user_id,
        role_name: str | None,
        metadata: dict | None = None,
    ) -> None:
        metrics.record_transition(transition)
        payload = {
            "event": "stock_transfer_transition",
            "transition": transition,
            "request_id": str(request_id),
            "status": status,
            "company_id": str(scope.company_id),
            "service_center_id": str(scope.service_center_id) if scope.service_center_id else None,
            "user_id": str(user_id) if user_id is not None else None,
            "role": role_name,
            "trace_id": self.trace_id,
        }
        if metadata:
            payload.update(metadata)
        log_json(logger, payload)
        if self.audit is not None:
            self.audit.record_event(
                AuditEventPayload(
                    company_id=str(scope.company_id),
                    user_id=str(user_id) if user_id is not None else None,
                    trace_id=self.trace_id,
                    action=f"stock_transfer_request.{transition}",
                    entity_type="stock_transfer_request",
                    entity_id=str(request_id),
                    metadata={"status": status, **(metadata or {})},
                    actor_role=role_name,
                )
            )

    def _service_center_rooms(self, service_center_id, *, include_coordinator: bool = False) -> list[str]:
        if service_center_id is None:
            return []
        rooms = [service_center_staff_room(service_center_id), service_center_manager_room(service_center_id)]
        if include_coordinator:
            rooms.append(parts_coordinator_service_center_room(service_center_id))
        return rooms

    # -- transitions -----------------------------------------------------------

    def create_request(
        self,
        requesting_warehouse_id,
        items: Iterable,
        requested_by_user_id,
        company_id,
        *,
        role_name: str | None = None,
        service_center_id=None,
    ) -> StockTransferRequest:
        raw_items = list(items or [])
        if not raw_items:
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "items must be a non-empty list"})
        parsed_items = [_coerce_item(raw, index) for index, raw in enumerate(raw_items)]
        warehouse_uuid = as_uuid(requesting_warehouse_id, "requesting_warehouse_id")
        company_uuid = as_uuid(company_id, "company_id")

        with transaction(self.db):
            warehouse = self.warehouses.get(warehouse_uuid)
            if warehouse is None or warehouse.vehicle_company_id != company_uuid:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Warehouse with ID {requesting_warehouse_id} not found"},
                )
            if is_service_center_role(role_name) and service_center_id is not None:
                if warehouse.service_center_id != as_uuid(service_center_id, "service_center_id"):
                    raise AppError(
                        ErrorCatalog.NOT_FOUND,
                        details={"message": f"Warehouse with ID {requesting_warehouse_id} not found"},
                    )

            type_ids = {item.type_component_id for item in parsed_items}
            known_types = set(self.db.execute(select(TypeComponent.id).where(TypeComponent.id.in_(list(type_ids)))).scalars())
            unknown_types = [str(type_id) for type_id in type_ids if type_id not in known_types]
            if unknown_types:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Type component {unknown_types[0]} not found", "type_component_ids": unknown_types},
                )

            case_line_ids = [item.case_line_id for item in parsed_items if item.case_line_id is not None]
            case_lines_by_id = {case_line.id: case_line for case_line in self.case_lines.list_by_ids(case_line_ids)}
            for item in parsed_items:
                if item.case_line_id is None:
                    continue
                case_line = case_lines_by_id.get(item.case_line_id)
                if case_line is None or case_line.service_center_id != warehouse.service_center_id:
                    raise AppError(
                        ErrorCatalog.NOT_FOUND,
                        details={"message": f"Case line {item.case_line_id} not found"},
                    )
                if case_line.type_component_id != item.type_component_id:
                    raise AppError(
                        ErrorCatalog.BAD_REQUEST,
                        details={
                            "message": (
                                f"Case line {case_line.id} needs type component {case_line.type_component_id}, "
                                f"not {item.type_component_id}"
                            )
                        },
                    )

            request = StockTransferRequest(
                requesting_warehouse_id=warehouse.id,
                requested_by_user_id=str(requested_by_user_id),
                status=TransferStatus.PENDING_APPROVAL,
                requested_at=datetime.utcnow(),
            )
            self.transfers.add(request)
            self.db.flush()
            for line_no, item in enumerate(parsed_items, start=1):
                self.db.add(
                    StockTransferRequestItem(
                        request_id=request.id,
                        line_no=line_no,
                        type_component_id=item.type_component_id,
                        quantity_requested=item.quantity_requested,
                        case_line_id=item.case_line_id,
                    )
                )
            self.case_lines.bulk_update_status_by_ids(case_line_ids, CaseLineStatus.WAITING_FOR_PARTS)
            self.db.flush()
            request_id = request.id
            scope = _Scope(company_id=warehouse.vehicle_company_id, service_center_id=warehouse.service_center_id)

        self._committed(
            "create",
            request_id=request_id,
            status=TransferStatus.PENDING_APPROVAL,
            scope=scope,
            user_id=requested_by_user_id,
            role_name=role_name,
            metadata={"items": len(parsed_items)},
        )
        self.notifications.send_to_room(
            emv_staff_room(scope.company_id),
            "new_stock_transfer_request",
            {"request_id": str(request_id), "requesting_warehouse_id": str(warehouse_uuid)},
        )
        return request

    def approve_request(
        self,
        request_id,
        role_name: str | None,
        company_id,
        approved_by_user_id,
    ) -> ApprovalResult:
        with transaction(self.db):
            request, scope = self._load_request(request_id, company_id=company_id, lock=True)
            if request.status != TransferStatus.PENDING_APPROVAL:
                raise _invalid_transition(request, "Only pending requests can be approved")
            items = self._load_items(request, lock=True)

            # Every candidate row is locked before any availability is computed.
            candidates = self.stocks.list_candidates(
                {item.type_component_id for item in items},
                company_id=scope.company_id,
                exclude_warehouse_id=request.requesting_warehouse_id,
                lock=True,
            )
            demands = [
                allocation.Demand(type_component_id=item.type_component_id, quantity=item.quantity_requested, key=item.id)
                for item in items
            ]
            request_plan = allocation.plan_many(demands, allocation.group_candidates_by_type(candidates))
            if not request_plan.satisfied:
                raise allocation.shortfall_error(request_plan)

            reservations: list[StockReservation] = []
            for item_plan in request_plan.plans:
                reservations.extend(
                    self.reservation_ledger.create_many(item_plan.allocations, request_item_id=item_plan.demand.key)
                )

            request.status = TransferStatus.APPROVED
            request.approved_by_user_id = str(approved_by_user_id)
            request.approved_at = datetime.utcnow()
            self.db.flush()
            reserved_units = sum(reservation.quantity_reserved for reservation in reservations)
            reservation_count = len(reservations)

        metrics.record_units_reserved("transfer_request", reserved_units)
        self._committed(
            "approve",
            request_id=request.id,
            status=TransferStatus.APPROVED,
            scope=scope,
            user_id=approved_by_user_id,
            role_name=role_name,
            metadata={"reservations": reservation_count, "reserved_units": reserved_units},
        )
        self.notifications.send_to_room(
            parts_coordinator_company_room(scope.company_id),
            "stock_transfer_request_approved",
            {"request_id": str(request.id), "reservations": reservation_count},
        )
        return ApprovalResult(request=request, reservations=reservations)

    def ship_reservation(
        self,
        request_id,
        reservation_id,
        component_ids,
        role_name: str | None,
        company_id,
        service_center_id=None,
        estimated_delivery_date: date | None = None,
        *,
        shipped_by_user_id=None,
    ) -> ShipmentResult:
        if not reservation_id:
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "reservation_id is required"})
        if not isinstance(component_ids, (list, tuple)) or not component_ids:
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "component_ids must be a non-empty array"})
        parsed_ids = [as_uuid(component_id, f"component_ids[{index}]") for index, component_id in enumerate(component_ids)]
        if len(set(parsed_ids)) != len(parsed_ids):
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "component_ids must not contain duplicates"})
        reservation_uuid = as_uuid(reservation_id, "reservation_id")

        with transaction(self.db):
            request, scope = self._load_request(
                request_id,
                company_id=company_id,
                role_name=role_name,
                service_center_id=service_center_id,
                lock=True,
            )
            if request.status != TransferStatus.APPROVED:
                raise _invalid_transition(request, "Only approved requests can be shipped")
            items = {item.id: item for item in self._load_items(request, lock=True)}

            reservation = self.reservation_ledger.reservations.get(reservation_uuid, lock=True)
            if reservation is None:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Reservation with ID {reservation_id} not found"},
                )
            if reservation.request_item_id not in items:
                raise AppError(
                    ErrorCatalog.CONFLICT,
                    details={"message": f"Reservation {reservation.id} does not belong to request {request.id}"},
                )
            if reservation.status != ReservationStatus.RESERVED:
                raise AppError(
                    ErrorCatalog.CONFLICT,
                    details={
                        "message": f"Reservation {reservation.id} is not in RESERVED status. Current status: {reservation.status}",
                        "reservation_id": str(reservation.id),
                    },
                )
            if len(parsed_ids) != reservation.quantity_reserved:
                raise AppError(
                    ErrorCatalog.RESERVATION_QUANTITY_MISMATCH,
                    details={
                        "message": f"Reservation requires {reservation.quantity_reserved} components",
                        "provided": len(parsed_ids),
                    },
                )

            stock = self.stocks.get(reservation.stock_id, lock=True)
            if stock is None:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Stock {reservation.stock_id} for reservation {reservation.id} not found"},
                )

            components = self.components.list_by_ids(parsed_ids, lock=True)
            found = {component.id for component in components}
            missing = [str(component_id) for component_id in parsed_ids if component_id not in found]
            if missing:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Component {missing[0]} not found", "component_ids": missing},
                )
            for component in components:
                if component.status != ComponentStatus.IN_WAREHOUSE:
                    raise _component_unavailable(
                        component,
                        f"Component {component.serial_number} is not in IN_WAREHOUSE state. Current status: {component.status}",
                    )
                if component.warehouse_id is None or component.warehouse_id != stock.warehouse_id:
                    raise _component_unavailable(
                        component,
                        f"Component {component.serial_number} is not stored in warehouse {stock.warehouse_id}",
                    )
                if component.type_component_id != stock.type_component_id:
                    raise _component_unavailable(
                        component,
                        f"Component {component.serial_number} does not match type {stock.type_component_id}",
                    )
                if component.stock_transfer_request_item_id not in (None, reservation.request_item_id):
                    raise _component_unavailable(
                        component,
                        f"Component {component.serial_number} is already claimed by another request item",
                    )

            for component in components:
                component.status = ComponentStatus.IN_TRANSIT
                component.warehouse_id = None
                component.stock_transfer_request_item_id = reservation.request_item_id
            self.reservation_ledger.mark_shipped([reservation.id])

            fully_shipped = self.reservation_ledger.count_reserved_by_request_id(request.id) == 0
            if fully_shipped:
                if estimated_delivery_date is None:
                    raise AppError(
                        ErrorCatalog.BAD_REQUEST,
                        details={"message": "estimated_delivery_date is required when shipping the last reservation"},
                    )
                request.status = TransferStatus.SHIPPED
                request.shipped_at = datetime.utcnow()
                request.estimated_delivery_date = estimated_delivery_date
            self.db.flush()
            status = request.status
            shipped_quantity = reservation.quantity_reserved

        self._committed(
            "ship",
            request_id=request.id,
            status=status,
            scope=scope,
            user_id=shipped_by_user_id,
            role_name=role_name,
            metadata={
                "reservation_id": str(reservation_uuid),
                "quantity": shipped_quantity,
                "fully_shipped": fully_shipped,
            },
        )
        if fully_shipped:
            self.notifications.send_to_rooms(
                self._service_center_rooms(scope.service_center_id, include_coordinator=True),
                "stock_transfer_request_shipped",
                {"request_id": str(request.id)},
            )
        return ShipmentResult(request=request, reservation=reservation, components=components, fully_shipped=fully_shipped)

    def receive_request(
        self,
        request_id,
        user_id,
        role_name: str | None,
        service_center_id=None,
        *,
        company_id=None,
    ) -> ReceiptResult:
        with transaction(self.db):
            request, scope = self._load_request(
                request_id,
                company_id=company_id,
                role_name=role_name,
                service_center_id=service_center_id,
                lock=True,
            )
            if request.status != TransferStatus.SHIPPED:
                raise _invalid_transition(request, "Only shipped requests can be received")
            items = self._load_items(request, lock=True)

            target = self.warehouses.get(request.requesting_warehouse_id, lock=True)
            if target is None:
                raise AppError(
                    ErrorCatalog.NOT_FOUND,
                    details={"message": f"Target warehouse with ID {request.requesting_warehouse_id} not found"},
                )

            components = self.components.list_in_transit_for_request(request.id, lock=True)
            if not components:
                raise AppError(
                    ErrorCatalog.CONFLICT,
                    details={"message": f"No components in transit found for request {request.id}"},
                )

            in_transit_by_item: dict = {}
            by_type: OrderedDict = OrderedDict()
            for component in components:
                in_transit_by_item[component.stock_transfer_request_item_id] = (
                    in_transit_by_item.get(component.stock_transfer_request_item_id, 0) + 1
                )
                by_type.setdefault(component.type_component_id, []).append(component)

            shipped_by_item: dict = {}
            for reservation in self.reservation_ledger.find_by_request_id(request.id, [ReservationStatus.SHIPPED]):
                shipped_by_item[reservation.request_item_id] = (
                    shipped_by_item.get(reservation.request_item_id, 0) + reservation.quantity_reserved
                )
            for item in items:
                shipped = shipped_by_item.get(item.id, 0)
                arriving = in_transit_by_item.get(item.id, 0)
                if not (shipped == arriving == item.quantity_requested):
                    raise AppError(
                        ErrorCatalog.STOCK_LEDGER_CONFLICT,
                        details={
                            "message": (
                                f"Item {item.line_no} of request {request.id} does not balance: "
                                f"requested {item.quantity_requested}, shipped {shipped}, in transit {arriving}"
                            ),
                            "request_item_id": str(item.id),
                        },
                    )

            received_by_type = {}
            for type_component_id, group in by_type.items():
                self.stock_ledger.receive(target.id, type_component_id, len(group))
                received_by_type[str(type_component_id)] = len(group)
            for component in components:
                component.status = ComponentStatus.IN_WAREHOUSE
                component.warehouse_id = target.id
                component.stock_transfer_request_item_id = None
            for item in items:
                item.quantity_received = in_transit_by_item.get(item.id, 0)

            request.status = TransferStatus.RECEIVED
            request.received_by_user_id = str(user_id)
            request.received_at = datetime.utcnow()
            self.case_lines.bulk_update_status_by_ids(
                [item.case_line_id for item in items],
                CaseLineStatus.PARTS_AVAILABLE,
            )
            self.db.flush()

        self._committed(
            "receive",
            request_id=request.id,
            status=TransferStatus.RECEIVED,
            scope=scope,
            user_id=user_id,
            role_name=role_name,
            metadata={"received_by_type": received_by_type},
        )
        self.notifications.send_to_rooms(
            self._service_center_rooms(scope.service_center_id),
            "stock_transfer_request_received",
            {"request_id": str(request.id)},
        )
        return ReceiptResult(request=request, components=components, received_by_type=received_by_type)

    def reject_request(
        self,
        request_id,
        rejected_by_user_id,
        rejection_reason: str | None,
        *,
        company_id=None,
        role_name: str | None = None,
    ) -> StockTransferRequest:
        with transaction(self.db):
            request, scope = self._load_request(request_id, company_id=company_id, lock=True)
            if request.status != TransferStatus.PENDING_APPROVAL:
                raise _invalid_transition(request, "Only pending requests can be rejected")
            items = self.transfers.get_items(request.id, lock=True)
            self.case_lines.bulk_update_status_by_ids(
                [item.case_line_id for item in items],
                CaseLineStatus.REJECTED_BY_OEM,
            )
            request.status = TransferStatus.REJECTED
            request.rejected_by_user_id = str(rejected_by_user_id)
            request.rejected_at = datetime.utcnow()
            request.rejection_reason = rejection_reason
            self.db.flush()

        self._committed(
            "reject",
            request_id=request.id,
            status=TransferStatus.REJECTED,
            scope=scope,
            user_id=rejected_by_user_id,
            role_name=role_name,
        )
        self.notifications.send_to_rooms(
            self._service_center_rooms(scope.service_center_id),
            "stock_transfer_request_rejected",
            {"request_id": str(request.id)},
        )
        return request

    def cancel_request(
        self,
        request_id,
        cancelled_by_user_id,
        cancellation_reason: str | None,
        role_name: str | None,
        company_id,
        *,
        service_center_id=None,
    ) -> StockTransferRequest:
        role = normalize_role(role_name)
        if role not in (SERVICE_CENTER_MANAGER, EMV_STAFF):
            raise AppError(
                ErrorCatalog.ROLE_NOT_ALLOWED,
                details={"message": f"Role '{role_name}' cannot cancel stock transfer requests"},
            )

        with transaction(self.db):
            request, scope = self._load_request(
                request_id,
                company_id=company_id,
                role_name=role,
                service_center_id=service_center_id,
                lock=True,
            )
            released: list[StockReservation] = []
            if role == SERVICE_CENTER_MANAGER:
                if request.status != TransferStatus.PENDING_APPROVAL:
                    raise _invalid_transition(request, "Service center managers can only cancel pending requests")
            else:
                if request.status not in (TransferStatus.PENDING_APPROVAL, TransferStatus.APPROVED):
                    raise _invalid_transition(request, "EMV staff can only cancel pending or approved requests")
                if request.status == TransferStatus.APPROVED:
                    self.transfers.get_items(request.id, lock=True)
                    reservations = self.reservation_ledger.find_by_request_id(
                        request.id, [ReservationStatus.RESERVED], lock=True
                    )
                    if reservations:
                        released = self.reservation_ledger.cancel([reservation.id for reservation in reservations])

            request.status = TransferStatus.CANCELLED
            request.cancelled_by_user_id = str(cancelled_by_user_id)
            request.cancelled_at = datetime.utcnow()
            request.cancellation_reason = cancellation_reason
            self.db.flush()
            released_units = sum(reservation.quantity_reserved for reservation in released)

        self._committed(
            "cancel",
            request_id=request.id,
            status=TransferStatus.CANCELLED,
            scope=scope,
            user_id=cancelled_by_user_id,
            role_name=role,
            metadata={"released_reservations": len(released), "released_units": released_units},
        )
        self.notifications.send_to_rooms(
            [emv_staff_room(scope.company_id)],
            "stock_transfer_request_cancelled",
            {"request_id": str(request.id)},
        )
        return request

    # -- queries ---------------------------------------------------------------

    def list_requests(
        self,
        *,
        company_id,
        role_name: str | None = None,
        service_center_id=None,
        status: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[StockTransferRequest], int]:
        if status is not None and status.upper() not in TransferStatus.ALL:
            raise AppError(
                ErrorCatalog.BAD_REQUEST,
                details={"message": f"Unknown request status: {status}", "allowed": list(TransferStatus.ALL)},
            )
        filters = TransferQueryFilters(
            company_id=as_uuid(company_id, "company_id"),
            service_center_id=(
                as_uuid(service_center_id, "service_center_id")
                if is_service_center_role(role_name) and service_center_id is not None
                else None
            ),
            status=status.upper() if status else None,
        )
        return self.transfers.list_requests(filters, page=page, page_size=page_size)

    def get_request(
        self,
        request_id,
        *,
        company_id=None,
        role_name: str | None = None,
        service_center_id=None,
    ) -> StockTransferRequest:
        request, _ = self._load_request(
            request_id,
            company_id=company_id,
            role_name=role_name,
            service_center_id=service_center_id,
        )
        return request

    def list_reservations(
        self,
        request_id,
        statuses=None,
        *,
        company_id=None,
        role_name: str | None = None,
        service_center_id=None,
    ) -> list[StockReservation]:
        request, _ = self._load_request(
            request_id,
            company_id=company_id,
            role_name=role_name,
            service_center_id=service_center_id,
        )
        return self.reservation_ledger.find_by_request_id(request.id, statuses)


def build_transfer_workflow(
    db,
    *,
    notifications: NotificationService | None = None,
    trace_id: str | None = None,
    audit: bool = True,
) -> TransferRequestWorkflow:
    stocks = StockRepository(db)
    stock_ledger = StockLedger(db, stocks)
    return TransferRequestWorkflow(
        db,
        transfers=TransferRequestRepository(db),
        warehouses=WarehouseRepository(db),
        stocks=stocks,
        components=ComponentRepository(db),
        case_lines=CaseLineRepository(db),
        stock_ledger=stock_ledger,
        reservation_ledger=ReservationLedger(db, stock_ledger, ReservationRepository(db)),
        notifications=notifications or NotificationService(NotificationHub()),
        audit=AuditService(db) if audit else None,
        trace_id=trace_id,
    )
