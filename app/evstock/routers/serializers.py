from app.evstock.db.models import Stock, StockReservation, StockTransferRequest
from app.evstock.schemas.stock import StockRecordResponse
from app.evstock.schemas.transfers import (
    ReservationResponse,
    ReservationTypeSummary,
    ReservationWarehouseSummary,
    TransferItemResponse,
    TransferResponse,
)


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


def transfer_response(request: StockTransferRequest) -> TransferResponse:
    return TransferResponse(
        id=str(request.id),
        requesting_warehouse_id=str(request.requesting_warehouse_id),
        requested_by_user_id=request.requested_by_user_id,
        status=request.status,
        requested_at=request.requested_at,
        approved_by_user_id=request.approved_by_user_id,
        approved_at=request.approved_at,
        shipped_at=request.shipped_at,
        estimated_delivery_date=request.estimated_delivery_date,
        received_by_user_id=request.received_by_user_id,
        received_at=request.received_at,
        rejected_by_user_id=request.rejected_by_user_id,
        rejected_at=request.rejected_at,
        rejection_reason=request.rejection_reason,
        cancelled_by_user_id=request.cancelled_by_user_id,
        cancelled_at=request.cancelled_at,
        cancellation_reason=request.cancellation_reason,
        items=[
            TransferItemResponse(
                id=str(item.id),
                line_no=item.line_no,
                type_component_id=str(item.type_component_id),
                quantity_requested=item.quantity_requested,
                quantity_received=item.quantity_received or 0,
                case_line_id=_str_or_none(item.case_line_id),
            )
            for item in request.items
        ],
    )


def reservation_response(reservation: StockReservation, *, with_summaries: bool = True) -> ReservationResponse:
    warehouse = None
    type_component = None
    if with_summaries and reservation.stock is not None:
        stock = reservation.stock
        if stock.warehouse is not None:
            warehouse = ReservationWarehouseSummary(
                id=str(stock.warehouse.id),
                name=stock.warehouse.name,
                priority=stock.warehouse.priority,
            )
        if stock.type_component is not None:
            type_component = ReservationTypeSummary(
                id=str(stock.type_component.id),
                name=stock.type_component.name,
                sku=stock.type_component.sku,
            )
    return ReservationResponse(
        id=str(reservation.id),
        stock_id=str(reservation.stock_id),
        request_item_id=_str_or_none(reservation.request_item_id),
        case_line_id=_str_or_none(reservation.case_line_id),
        quantity_reserved=reservation.quantity_reserved,
        status=reservation.status,
        created_at=reservation.created_at,
        warehouse=warehouse,
        type_component=type_component,
    )


def stock_response(stock: Stock) -> StockRecordResponse:
    return StockRecordResponse(
        id=str(stock.id),
        warehouse_id=str(stock.warehouse_id),
        type_component_id=str(stock.type_component_id),
        quantity_in_stock=stock.quantity_in_stock,
        quantity_reserved=stock.quantity_reserved,
        quantity_available=stock.quantity_available,
        updated_at=stock.updated_at,
    )
