import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.roles import (
    EMV_STAFF,
    PARTS_COORDINATOR_COMPANY,
    SERVICE_CENTER_MANAGER,
    SERVICE_CENTER_STAFF,
    SERVICE_CENTER_TECHNICIAN,
)
from app.evstock.core.statuses import (
    CaseLineStatus,
    ComponentStatus,
    ReservationStatus,
    TransferStatus,
)
from app.evstock.db.models import (
    AuditEvent,
    CaseLine,
    Component,
    Stock,
    StockReservation,
    StockTransferRequest,
    StockTransferRequestItem,
)
from app.evstock.repos.stock import StockRepository
from app.evstock.services.notifications import NotificationHub, NotificationService
from app.evstock.services.transfer_workflow import build_transfer_workflow
from tests.evstock_helpers import (
    create_case_line,
    create_company,
    create_components,
    create_network,
    create_service_center,
    create_stock,
    create_type_component,
    reload,
)

DELIVERY = date(2026, 11, 2)


def _workflow(db_session, events=None):
    hub = NotificationHub()
    if events is not None:
        hub.subscribe(lambda room, event, payload: events.append((room, event, payload)))
    return build_transfer_workflow(db_session, notifications=NotificationService(hub, enabled=True), trace_id="trace-test")


def _create(workflow, network, items, *, user_id="manager-1"):
    return workflow.create_request(
        network.requesting.id,
        items,
        user_id,
        network.company.id,
        role_name=SERVICE_CENTER_MANAGER,
        service_center_id=network.service_center.id,
    )


def _approve(workflow, network, request_id):
    return workflow.approve_request(request_id, EMV_STAFF, network.company.id, "emv-1")


def _ship(workflow, network, request_id, reservation_id, components, delivery=DELIVERY):
    return workflow.ship_reservation(
        request_id,
        reservation_id,
        [str(component.id) for component in components],
        PARTS_COORDINATOR_COMPANY,
        network.company.id,
        None,
        delivery,
        shipped_by_user_id="coordinator-1",
    )


def _reservation_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(StockReservation)).scalar_one()


def test_create_request_writes_numbered_items_and_marks_case_lines(db_session):
    network = create_network(db_session)
    second_part = create_type_component(db_session, name="Charge port")
    case_line = create_case_line(db_session, network.part, network.service_center, quantity=2)
    events = []

    request = _create(
        _workflow(db_session, events),
        network,
        [
            {"type_component_id": str(network.part.id), "quantity_requested": 2, "case_line_id": str(case_line.id)},
            {"type_component_id": str(second_part.id), "quantity_requested": 1},
        ],
    )

    stored = reload(db_session, StockTransferRequest, request.id)
    assert stored.status == TransferStatus.PENDING_APPROVAL
    assert stored.requested_by_user_id == "manager-1"
    assert [(item.line_no, item.quantity_requested) for item in stored.items] == [(1, 2), (2, 1)]
    assert db_session.get(CaseLine, case_line.id).status == CaseLineStatus.WAITING_FOR_PARTS
    assert events == [
        (
            f"emv_staff_{network.company.id}",
            "new_stock_transfer_request",
            {"request_id": str(request.id), "requesting_warehouse_id": str(network.requesting.id)},
        )
    ]
    actions = db_session.execute(select(AuditEvent.action)).scalars().all()
    assert actions == ["stock_transfer_request.create"]


@pytest.mark.parametrize(
    "items",
    [
        [],
        [{"type_component_id": "not-a-uuid", "quantity_requested": 1}],
        [{"type_component_id": str(uuid.uuid4()), "quantity_requested": 0}],
    ],
)
def test_create_request_rejects_malformed_items(db_session, items):
    network = create_network(db_session)

    with pytest.raises(AppError) as exc_info:
        _create(_workflow(db_session), network, items)

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST


def test_create_request_for_unknown_type_is_not_found(db_session):
    network = create_network(db_session)

    with pytest.raises(AppError) as exc_info:
        _create(_workflow(db_session), network, [{"type_component_id": str(uuid.uuid4()), "quantity_requested": 1}])

    assert exc_info.value.error == ErrorCatalog.NOT_FOUND
    assert db_session.execute(select(func.count()).select_from(StockTransferRequest)).scalar_one() == 0


def test_create_request_for_another_service_center_warehouse_is_not_found(db_session):
    network = create_network(db_session)
    other_center = create_service_center(db_session, network.company, name="Other center")

    with pytest.raises(AppError) as exc_info:
        _workflow(db_session).create_request(
            network.requesting.id,
            [{"type_component_id": str(network.part.id), "quantity_requested": 1}],
            "manager-2",
            network.company.id,
            role_name=SERVICE_CENTER_MANAGER,
            service_center_id=other_center.id,
        )

    assert exc_info.value.error == ErrorCatalog.NOT_FOUND


def test_create_request_with_case_lines_of_other_service_centers_is_not_found(db_session):
    network = create_network(db_session)
    other_center = create_service_center(db_session, network.company, name="Other center")
    _other_company, foreign_center = create_company(db_session, suffix="foreign")
    sibling_line = create_case_line(db_session, network.part, other_center, quantity=1)
    foreign_line = create_case_line(db_session, network.part, foreign_center, quantity=1)
    workflow = _workflow(db_session)

    for case_line in (sibling_line, foreign_line):
        with pytest.raises(AppError) as exc_info:
            _create(
                workflow,
                network,
                [{"type_component_id": str(network.part.id), "quantity_requested": 1, "case_line_id": str(case_line.id)}],
            )
        db_session.rollback()

        assert exc_info.value.error == ErrorCatalog.NOT_FOUND
        assert reload(db_session, CaseLine, case_line.id).status == CaseLineStatus.DRAFT

    assert db_session.execute(select(func.count()).select_from(StockTransferRequest)).scalar_one() == 0


def test_create_request_with_case_line_of_another_type_is_bad_request(db_session):
    network = create_network(db_session)
    other_part = create_type_component(db_session)
    case_line = create_case_line(db_session, other_part, network.service_center, quantity=1)

    with pytest.raises(AppError) as exc_info:
        _create(
            _workflow(db_session),
            network,
            [{"type_component_id": str(network.part.id), "quantity_requested": 1, "case_line_id": str(case_line.id)}],
        )
    db_session.rollback()

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST
    assert reload(db_session, CaseLine, case_line.id).status == CaseLineStatus.DRAFT


def test_approve_splits_demand_across_warehouses_by_priority(db_session):
    network = create_network(db_session)
    central = create_stock(db_session, network.central, network.part, in_stock=5)
    regional = create_stock(db_session, network.regional, network.part, in_stock=10)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 8}])

    result = _approve(workflow, network, request.id)

    assert [(row.stock_id, row.quantity_reserved) for row in result.reservations] == [(central.id, 5), (regional.id, 3)]
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.APPROVED
    assert db_session.get(Stock, central.id).quantity_reserved == 5
    assert db_session.get(Stock, regional.id).quantity_reserved == 3


def test_approve_never_takes_stock_from_the_requesting_warehouse(db_session):
    network = create_network(db_session)
    create_stock(db_session, network.requesting, network.part, in_stock=20)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])

    with pytest.raises(AppError) as exc_info:
        _approve(workflow, network, request.id)

    assert exc_info.value.error == ErrorCatalog.INSUFFICIENT_STOCK


def test_approve_with_insufficient_stock_changes_nothing(db_session):
    network = create_network(db_session)
    central = create_stock(db_session, network.central, network.part, in_stock=2)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 3}])

    with pytest.raises(AppError) as exc_info:
        _approve(workflow, network, request.id)

    assert exc_info.value.error == ErrorCatalog.INSUFFICIENT_STOCK
    assert exc_info.value.details["message"] == (
        f"Not enough stock for component {network.part.id}. Requested: 3, Reserved: 2"
    )
    assert _reservation_count(db_session) == 0
    stored = reload(db_session, Stock, central.id)
    assert (stored.quantity_in_stock, stored.quantity_reserved) == (2, 0)
    assert db_session.get(StockTransferRequest, request.id).status == TransferStatus.PENDING_APPROVAL


def test_approve_is_all_or_nothing_across_items(db_session):
    network = create_network(db_session)
    missing_part = create_type_component(db_session, name="Inverter")
    central = create_stock(db_session, network.central, network.part, in_stock=5)
    workflow = _workflow(db_session)
    request = _create(
        workflow,
        network,
        [
            {"type_component_id": str(network.part.id), "quantity_requested": 2},
            {"type_component_id": str(missing_part.id), "quantity_requested": 1},
        ],
    )

    with pytest.raises(AppError) as exc_info:
        _approve(workflow, network, request.id)

    assert exc_info.value.error == ErrorCatalog.INSUFFICIENT_STOCK
    assert _reservation_count(db_session) == 0
    assert reload(db_session, Stock, central.id).quantity_reserved == 0


def test_approve_twice_is_invalid_transition(db_session):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=5)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])
    _approve(workflow, network, request.id)

    with pytest.raises(AppError) as exc_info:
        _approve(workflow, network, request.id)

    assert exc_info.value.error == ErrorCatalog.INVALID_STATUS_TRANSITION
    assert _reservation_count(db_session) == 1


def test_approve_reads_candidates_under_lock(db_session):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=5)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])
    calls = []

    class SpyStockRepository(StockRepository):
        def list_candidates(self, type_component_ids, **kwargs):
            calls.append(kwargs)
            return super().list_candidates(type_component_ids, **kwargs)

    workflow.stocks = SpyStockRepository(db_session)
    _approve(workflow, network, request.id)

    assert len(calls) == 1
    assert calls[0]["lock"] is True
    assert calls[0]["exclude_warehouse_id"] == network.requesting.id


def _approved_request(db_session, network, *, in_stock=10, quantity=2, case_line=None, events=None):
    stock = create_stock(db_session, network.central, network.part, in_stock=in_stock)
    components = create_components(db_session, network.central, network.part, count=quantity)
    workflow = _workflow(db_session, events)
    item = {"type_component_id": str(network.part.id), "quantity_requested": quantity}
    if case_line is not None:
        item["case_line_id"] = str(case_line.id)
    request = _create(workflow, network, [item])
    approval = _approve(workflow, network, request.id)
    return workflow, request, approval.reservations[0], stock, components


def test_ship_last_reservation_moves_units_into_transit(db_session):
    network = create_network(db_session)
    workflow, request, reservation, stock, components = _approved_request(db_session, network)
    stored_stock = db_session.get(Stock, stock.id)
    assert (stored_stock.quantity_in_stock, stored_stock.quantity_reserved) == (10, 2)

    result = _ship(workflow, network, request.id, reservation.id, components)

    assert result.fully_shipped is True
    stored_stock = reload(db_session, Stock, stock.id)
    assert (stored_stock.quantity_in_stock, stored_stock.quantity_reserved) == (8, 0)
    assert db_session.get(StockReservation, reservation.id).status == ReservationStatus.SHIPPED
    for component in components:
        stored = db_session.get(Component, component.id)
        assert stored.status == ComponentStatus.IN_TRANSIT
        assert stored.warehouse_id is None
        assert stored.stock_transfer_request_item_id == reservation.request_item_id
    stored_request = db_session.get(StockTransferRequest, request.id)
    assert stored_request.status == TransferStatus.SHIPPED
    assert stored_request.estimated_delivery_date == DELIVERY
    assert stored_request.shipped_at is not None


def test_request_stays_approved_until_every_reservation_ships(db_session):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=5)
    create_stock(db_session, network.regional, network.part, in_stock=10)
    central_units = create_components(db_session, network.central, network.part, count=5)
    regional_units = create_components(db_session, network.regional, network.part, count=3)
    events = []
    workflow = _workflow(db_session, events)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 8}])
    first, second = _approve(workflow, network, request.id).reservations
    del events[:]

    partial = _ship(workflow, network, request.id, first.id, central_units, delivery=None)

    assert partial.fully_shipped is False
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.APPROVED
    assert events == []

    final = _ship(workflow, network, request.id, second.id, regional_units)

    assert final.fully_shipped is True
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.SHIPPED
    rooms = [room for room, event, _payload in events if event == "stock_transfer_request_shipped"]
    service_center_id = network.service_center.id
    assert rooms == [
        f"service_center_staff_{service_center_id}",
        f"service_center_manager_{service_center_id}",
        f"parts_coordinator_service_center_{service_center_id}",
    ]


def test_shipping_same_reservation_twice_is_conflict(db_session):
    network = create_network(db_session)
    central = create_stock(db_session, network.central, network.part, in_stock=5)
    create_stock(db_session, network.regional, network.part, in_stock=10)
    central_units = create_components(db_session, network.central, network.part, count=5)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 8}])
    first, _second = _approve(workflow, network, request.id).reservations
    _ship(workflow, network, request.id, first.id, central_units)

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, first.id, central_units)

    assert exc_info.value.error == ErrorCatalog.CONFLICT
    assert "is not in RESERVED status" in exc_info.value.details["message"]
    stored = reload(db_session, Stock, central.id)
    assert (stored.quantity_in_stock, stored.quantity_reserved) == (0, 0)


def test_last_shipment_without_delivery_date_rolls_back(db_session):
    network = create_network(db_session)
    workflow, request, reservation, stock, components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, reservation.id, components, delivery=None)

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST
    stored_stock = reload(db_session, Stock, stock.id)
    assert (stored_stock.quantity_in_stock, stored_stock.quantity_reserved) == (10, 2)
    assert db_session.get(StockReservation, reservation.id).status == ReservationStatus.RESERVED
    assert {db_session.get(Component, component.id).status for component in components} == {ComponentStatus.IN_WAREHOUSE}
    assert db_session.get(StockTransferRequest, request.id).status == TransferStatus.APPROVED


def test_ship_with_wrong_component_count_is_quantity_mismatch(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, reservation.id, components[:1])

    assert exc_info.value.error == ErrorCatalog.RESERVATION_QUANTITY_MISMATCH
    assert exc_info.value.details["message"] == "Reservation requires 2 components"


def test_ship_with_component_from_another_warehouse_is_unavailable(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    stray = create_components(db_session, network.regional, network.part, count=1)

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, reservation.id, [components[0], stray[0]])

    assert exc_info.value.error == ErrorCatalog.COMPONENT_UNAVAILABLE
    assert db_session.get(Component, components[0].id).status == ComponentStatus.IN_WAREHOUSE


def test_ship_with_installed_component_is_unavailable(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    installed = db_session.get(Component, components[1].id)
    installed.status = ComponentStatus.INSTALLED
    db_session.commit()

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, reservation.id, components)

    assert exc_info.value.error == ErrorCatalog.COMPONENT_UNAVAILABLE
    assert "is not in IN_WAREHOUSE state" in exc_info.value.details["message"]


@pytest.mark.parametrize("component_ids", [[], "abc"])
def test_ship_requires_component_list(db_session, component_ids):
    network = create_network(db_session)
    workflow, request, reservation, _stock, _components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        workflow.ship_reservation(request.id, reservation.id, component_ids, PARTS_COORDINATOR_COMPANY, network.company.id)

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST


def test_ship_rejects_duplicate_component_ids(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        _ship(workflow, network, request.id, reservation.id, [components[0], components[0]])

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST


def test_ship_unknown_reservation_is_not_found(db_session):
    network = create_network(db_session)
    workflow, request, _reservation, _stock, components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        workflow.ship_reservation(
            request.id,
            str(uuid.uuid4()),
            [str(component.id) for component in components],
            PARTS_COORDINATOR_COMPANY,
            network.company.id,
            estimated_delivery_date=DELIVERY,
        )

    assert exc_info.value.error == ErrorCatalog.NOT_FOUND


def test_receive_creates_destination_stock_and_frees_case_lines(db_session):
    network = create_network(db_session)
    case_line = create_case_line(db_session, network.part, network.service_center, quantity=2)
    events = []
    workflow, request, reservation, _stock, components = _approved_request(
        db_session, network, case_line=case_line, events=events
    )
    _ship(workflow, network, request.id, reservation.id, components)
    del events[:]

    result = workflow.receive_request(
        request.id,
        "staff-1",
        SERVICE_CENTER_STAFF,
        network.service_center.id,
        company_id=network.company.id,
    )

    assert result.received_by_type == {str(network.part.id): 2}
    destination = db_session.execute(
        select(Stock).where(Stock.warehouse_id == network.requesting.id, Stock.type_component_id == network.part.id)
    ).scalar_one()
    assert (destination.quantity_in_stock, destination.quantity_reserved) == (2, 0)
    for component in components:
        stored = reload(db_session, Component, component.id)
        assert stored.status == ComponentStatus.IN_WAREHOUSE
        assert stored.warehouse_id == network.requesting.id
        assert stored.stock_transfer_request_item_id is None
    stored_request = db_session.get(StockTransferRequest, request.id)
    assert stored_request.status == TransferStatus.RECEIVED
    assert stored_request.received_by_user_id == "staff-1"
    assert stored_request.items[0].quantity_received == 2
    assert db_session.get(CaseLine, case_line.id).status == CaseLineStatus.PARTS_AVAILABLE
    assert [room for room, _event, _payload in events] == [
        f"service_center_staff_{network.service_center.id}",
        f"service_center_manager_{network.service_center.id}",
    ]


def test_receive_adds_to_existing_destination_stock(db_session):
    network = create_network(db_session)
    destination = create_stock(db_session, network.requesting, network.part, in_stock=1)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    _ship(workflow, network, request.id, reservation.id, components)

    workflow.receive_request(request.id, "staff-1", SERVICE_CENTER_STAFF, network.service_center.id)

    assert reload(db_session, Stock, destination.id).quantity_in_stock == 3


def test_receive_before_shipping_is_invalid_transition(db_session):
    network = create_network(db_session)
    workflow, request, _reservation, _stock, _components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        workflow.receive_request(request.id, "staff-1", SERVICE_CENTER_STAFF, network.service_center.id)

    assert exc_info.value.error == ErrorCatalog.INVALID_STATUS_TRANSITION


def test_receive_from_another_service_center_is_not_found(db_session):
    network = create_network(db_session)
    other_center = create_service_center(db_session, network.company, name="Other center")
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    _ship(workflow, network, request.id, reservation.id, components)

    with pytest.raises(AppError) as exc_info:
        workflow.receive_request(request.id, "staff-2", SERVICE_CENTER_STAFF, other_center.id)

    assert exc_info.value.error == ErrorCatalog.NOT_FOUND
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.SHIPPED


def test_receive_refuses_unbalanced_shipment(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    _ship(workflow, network, request.id, reservation.id, components)
    lost = db_session.get(Component, components[0].id)
    lost.status = ComponentStatus.RETURNED
    db_session.commit()

    with pytest.raises(AppError) as exc_info:
        workflow.receive_request(request.id, "staff-1", SERVICE_CENTER_STAFF, network.service_center.id)

    assert exc_info.value.error == ErrorCatalog.STOCK_LEDGER_CONFLICT
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.SHIPPED


def test_reject_pending_request_marks_case_lines(db_session):
    network = create_network(db_session)
    case_line = create_case_line(db_session, network.part, network.service_center, quantity=1)
    events = []
    workflow = _workflow(db_session, events)
    request = _create(
        workflow,
        network,
        [{"type_component_id": str(network.part.id), "quantity_requested": 1, "case_line_id": str(case_line.id)}],
    )
    del events[:]

    workflow.reject_request(request.id, "emv-1", "Covered by recall", company_id=network.company.id, role_name=EMV_STAFF)

    stored = reload(db_session, StockTransferRequest, request.id)
    assert stored.status == TransferStatus.REJECTED
    assert stored.rejection_reason == "Covered by recall"
    assert stored.rejected_by_user_id == "emv-1"
    assert db_session.get(CaseLine, case_line.id).status == CaseLineStatus.REJECTED_BY_OEM
    assert {event for _room, event, _payload in events} == {"stock_transfer_request_rejected"}


def test_reject_approved_request_is_invalid_transition(db_session):
    network = create_network(db_session)
    workflow, request, _reservation, _stock, _components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        workflow.reject_request(request.id, "emv-1", "Too late", company_id=network.company.id)

    assert exc_info.value.error == ErrorCatalog.INVALID_STATUS_TRANSITION


def test_emv_staff_cancel_of_approved_request_releases_reservations(db_session):
    network = create_network(db_session)
    workflow, request, reservation, stock, _components = _approved_request(db_session, network)

    workflow.cancel_request(request.id, "emv-1", "Duplicate", EMV_STAFF, network.company.id)

    stored = reload(db_session, StockTransferRequest, request.id)
    assert stored.status == TransferStatus.CANCELLED
    assert stored.cancellation_reason == "Duplicate"
    assert db_session.get(StockReservation, reservation.id).status == ReservationStatus.CANCELLED
    stored_stock = db_session.get(Stock, stock.id)
    assert (stored_stock.quantity_in_stock, stored_stock.quantity_reserved) == (10, 0)


def test_manager_cannot_cancel_approved_request(db_session):
    network = create_network(db_session)
    workflow, request, reservation, stock, _components = _approved_request(db_session, network)

    with pytest.raises(AppError) as exc_info:
        workflow.cancel_request(
            request.id,
            "manager-1",
            "Changed mind",
            SERVICE_CENTER_MANAGER,
            network.company.id,
            service_center_id=network.service_center.id,
        )

    assert exc_info.value.error == ErrorCatalog.INVALID_STATUS_TRANSITION
    assert exc_info.value.error.status_code == 409
    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.APPROVED
    assert db_session.get(StockReservation, reservation.id).status == ReservationStatus.RESERVED
    assert db_session.get(Stock, stock.id).quantity_reserved == 2


def test_manager_can_cancel_pending_request(db_session):
    network = create_network(db_session)
    events = []
    workflow = _workflow(db_session, events)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])
    del events[:]

    workflow.cancel_request(
        request.id,
        "manager-1",
        None,
        SERVICE_CENTER_MANAGER,
        network.company.id,
        service_center_id=network.service_center.id,
    )

    assert reload(db_session, StockTransferRequest, request.id).status == TransferStatus.CANCELLED
    assert events == [
        (f"emv_staff_{network.company.id}", "stock_transfer_request_cancelled", {"request_id": str(request.id)})
    ]


def test_cancel_by_other_roles_is_not_allowed(db_session):
    network = create_network(db_session)
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])

    with pytest.raises(AppError) as exc_info:
        workflow.cancel_request(request.id, "tech-1", None, SERVICE_CENTER_TECHNICIAN, network.company.id)

    assert exc_info.value.error == ErrorCatalog.ROLE_NOT_ALLOWED


def test_cancel_shipped_request_is_invalid_transition(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    _ship(workflow, network, request.id, reservation.id, components)

    with pytest.raises(AppError) as exc_info:
        workflow.cancel_request(request.id, "emv-1", None, EMV_STAFF, network.company.id)

    assert exc_info.value.error == ErrorCatalog.INVALID_STATUS_TRANSITION


def test_requests_of_another_company_are_invisible(db_session):
    network = create_network(db_session)
    other_company, _center = create_company(db_session, suffix="other")
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])

    with pytest.raises(AppError) as exc_info:
        workflow.get_request(request.id, company_id=other_company.id, role_name=EMV_STAFF)

    assert exc_info.value.error == ErrorCatalog.NOT_FOUND
    assert exc_info.value.details["message"] == f"Stock transfer request with ID {request.id} not found"


def test_list_requests_scopes_service_center_roles(db_session):
    network = create_network(db_session)
    other_center = create_service_center(db_session, network.company, name="Other center")
    workflow = _workflow(db_session)
    request = _create(workflow, network, [{"type_component_id": str(network.part.id), "quantity_requested": 1}])

    company_rows, company_total = workflow.list_requests(company_id=network.company.id, role_name=EMV_STAFF)
    own_rows, _ = workflow.list_requests(
        company_id=network.company.id,
        role_name=SERVICE_CENTER_STAFF,
        service_center_id=network.service_center.id,
    )
    other_rows, other_total = workflow.list_requests(
        company_id=network.company.id,
        role_name=SERVICE_CENTER_STAFF,
        service_center_id=other_center.id,
    )

    assert [row.id for row in company_rows] == [request.id]
    assert company_total == 1
    assert [row.id for row in own_rows] == [request.id]
    assert other_rows == []
    assert other_total == 0


def test_list_requests_rejects_unknown_status(db_session):
    network = create_network(db_session)

    with pytest.raises(AppError) as exc_info:
        _workflow(db_session).list_requests(company_id=network.company.id, status="LOST")

    assert exc_info.value.error == ErrorCatalog.BAD_REQUEST


def test_transitions_are_audited(db_session):
    network = create_network(db_session)
    workflow, request, reservation, _stock, components = _approved_request(db_session, network)
    _ship(workflow, network, request.id, reservation.id, components)

    rows = db_session.execute(
        select(AuditEvent).where(AuditEvent.entity_id == str(request.id)).order_by(AuditEvent.created_at.asc())
    ).scalars().all()

    assert [row.action for row in rows] == [
        "stock_transfer_request.create",
        "stock_transfer_request.approve",
        "stock_transfer_request.ship",
    ]
    assert rows[-1].trace_id == "trace-test"
    assert rows[-1].event_metadata["fully_shipped"] is True


def test_items_keep_request_quantity_after_approval(db_session):
    network = create_network(db_session)
    _workflow_obj, request, reservation, _stock, _components = _approved_request(db_session, network, quantity=3)

    item = db_session.get(StockTransferRequestItem, reservation.request_item_id)

    assert item.request_id == request.id
    assert item.quantity_requested == 3
    assert reservation.quantity_reserved == 3
