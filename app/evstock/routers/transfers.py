from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.evstock.core.config import settings
from app.evstock.core.context import RequestContext
from app.evstock.core.deps import require_request_context, require_roles
from app.evstock.core.roles import (
    EMV_STAFF,
    PARTS_COORDINATOR_COMPANY,
    PARTS_COORDINATOR_SERVICE_CENTER,
    SERVICE_CENTER_MANAGER,
    SERVICE_CENTER_STAFF,
)
from app.evstock.db.session import get_db
from app.evstock.schemas.transfers import (
    ReservationListResponse,
    TransferApprovalResponse,
    TransferCancelRequest,
    TransferCreateRequest,
    TransferListResponse,
    TransferReceiptResponse,
    TransferRejectRequest,
    TransferResponse,
    TransferShipmentResponse,
    TransferShipRequest,
)
from app.evstock.routers.serializers import reservation_response, transfer_response
from app.evstock.services.notifications import NotificationService, get_notification_service
from app.evstock.services.reservation_ledger import parse_status_filter
from app.evstock.services.transfer_workflow import build_transfer_workflow


router = APIRouter()
_BASE_PATH = "/evstock/stock-transfer-requests"


def _workflow(db, notifications: NotificationService, context: RequestContext):
    return build_transfer_workflow(db, notifications=notifications, trace_id=context.trace_id)


@router.post(_BASE_PATH, response_model=TransferResponse, status_code=201)
def create_stock_transfer_request(
    payload: TransferCreateRequest,
    context: RequestContext = Depends(require_roles(SERVICE_CENTER_MANAGER, PARTS_COORDINATOR_SERVICE_CENTER)),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    created = _workflow(db, notifications, context).create_request(
        payload.requesting_warehouse_id,
        [item.model_dump() for item in payload.items],
        context.user_id,
        context.company_id,
        role_name=context.role,
        service_center_id=context.service_center_id,
    )
    return transfer_response(created)


@router.get(_BASE_PATH, response_model=TransferListResponse)
def list_stock_transfer_requests(
    status: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1),
    context: RequestContext = Depends(require_request_context),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    page_size = min(page_size, settings.TRANSFER_LIST_MAX_PAGE_SIZE)
    rows, total = _workflow(db, notifications, context).list_requests(
        company_id=context.company_id,
        role_name=context.role,
        service_center_id=context.service_center_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return TransferListResponse(
        rows=[transfer_response(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(_BASE_PATH + "/{request_id}", response_model=TransferResponse)
def get_stock_transfer_request(
    request_id: str,
    context: RequestContext = Depends(require_request_context),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    request = _workflow(db, notifications, context).get_request(
        request_id,
        company_id=context.company_id,
        role_name=context.role,
        service_center_id=context.service_center_id,
    )
    return transfer_response(request)


@router.get(_BASE_PATH + "/{request_id}/reservations", response_model=ReservationListResponse)
def list_stock_transfer_request_reservations(
    request_id: str,
    status: str | None = None,
    context: RequestContext = Depends(require_request_context),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    statuses = parse_status_filter(status)
    reservations = _workflow(db, notifications, context).list_reservations(
        request_id,
        statuses,
        company_id=context.company_id,
        role_name=context.role,
        service_center_id=context.service_center_id,
    )
    return ReservationListResponse(
        request_id=request_id,
        statuses=list(statuses),
        rows=[reservation_response(reservation) for reservation in reservations],
    )


@router.post(_BASE_PATH + "/{request_id}/approve", response_model=TransferApprovalResponse)
def approve_stock_transfer_request(
    request_id: str,
    context: RequestContext = Depends(require_roles(EMV_STAFF)),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    result = _workflow(db, notifications, context).approve_request(
        request_id,
        context.role,
        context.company_id,
        context.user_id,
    )
    return TransferApprovalResponse(
        request=transfer_response(result.request),
        reservations=[reservation_response(reservation) for reservation in result.reservations],
    )


@router.post(_BASE_PATH + "/{request_id}/ship", response_model=TransferShipmentResponse)
def ship_stock_transfer_request(
    request_id: str,
    payload: TransferShipRequest,
    context: RequestContext = Depends(require_roles(PARTS_COORDINATOR_COMPANY)),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    result = _workflow(db, notifications, context).ship_reservation(
        request_id,
        payload.reservation_id,
        payload.component_ids,
        context.role,
        context.company_id,
        context.service_center_id,
        payload.estimated_delivery_date,
        shipped_by_user_id=context.user_id,
    )
    return TransferShipmentResponse(
        request=transfer_response(result.request),
        reservation=reservation_response(result.reservation),
        component_ids=[str(component.id) for component in result.components],
        fully_shipped=result.fully_shipped,
    )


@router.post(_BASE_PATH + "/{request_id}/receive", response_model=TransferReceiptResponse)
def receive_stock_transfer_request(
    request_id: str,
    context: RequestContext = Depends(
        require_roles(SERVICE_CENTER_MANAGER, SERVICE_CENTER_STAFF, PARTS_COORDINATOR_SERVICE_CENTER)
    ),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    result = _workflow(db, notifications, context).receive_request(
        request_id,
        context.user_id,
        context.role,
        context.service_center_id,
        company_id=context.company_id,
    )
    return TransferReceiptResponse(
        request=transfer_response(result.request),
        component_ids=[str(component.id) for component in result.components],
        received_by_type=result.received_by_type,
    )


@router.post(_BASE_PATH + "/{request_id}/reject", response_model=TransferResponse)
def reject_stock_transfer_request(
    request_id: str,
    payload: TransferRejectRequest,
    context: RequestContext = Depends(require_roles(EMV_STAFF)),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    request = _workflow(db, notifications, context).reject_request(
        request_id,
        context.user_id,
        payload.rejection_reason,
        company_id=context.company_id,
        role_name=context.role,
    )
    return transfer_response(request)


@router.post(_BASE_PATH + "/{request_id}/cancel", response_model=TransferResponse)
def cancel_stock_transfer_request(
    request_id: str,
    payload: TransferCancelRequest,
    context: RequestContext = Depends(require_roles(SERVICE_CENTER_MANAGER, EMV_STAFF)),
    notifications: NotificationService = Depends(get_notification_service),
    db=Depends(get_db),
):
    request = _workflow(db, notifications, context).cancel_request(
        request_id,
        context.user_id,
        payload.cancellation_reason,
        context.role,
        context.company_id,
        service_center_id=context.service_center_id,
    )
    return transfer_response(request)
