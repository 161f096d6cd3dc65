from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


_CREATE_EXAMPLE = {
    "requesting_warehouse_id": "7d1f6d6a-5e6b-4b68-9a56-1a1b2a0f6f10",
    "items": [
        {
            "type_component_id": "0f3c8c3e-7a8e-4a57-8f0e-2f0a8a6b9d11",
            "quantity_requested": 2,
            "case_line_id": None,
        }
    ],
}


class TransferItemCreate(BaseModel):
    type_component_id: str
    quantity_requested: int
    case_line_id: str | None = None


class TransferCreateRequest(BaseModel):
    requesting_warehouse_id: str
    items: list[TransferItemCreate]

    model_config = {"json_schema_extra": {"example": _CREATE_EXAMPLE}}


class TransferShipRequest(BaseModel):
    reservation_id: str
    component_ids: list[str]
    estimated_delivery_date: date | None = None


class TransferRejectRequest(BaseModel):
    rejection_reason: str | None = None


class TransferCancelRequest(BaseModel):
    cancellation_reason: str | None = None


class TransferItemResponse(BaseModel):
    id: str
    line_no: int
    type_component_id: str
    quantity_requested: int
    quantity_received: int
    case_line_id: str | None


class TransferResponse(BaseModel):
    id: str
    requesting_warehouse_id: str
    requested_by_user_id: str
    status: str
    requested_at: datetime
    approved_by_user_id: str | None
    approved_at: datetime | None
    shipped_at: datetime | None
    estimated_delivery_date: date | None
    received_by_user_id: str | None
    received_at: datetime | None
    rejected_by_user_id: str | None
    rejected_at: datetime | None
    rejection_reason: str | None
    cancelled_by_user_id: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    items: list[TransferItemResponse]


class TransferListResponse(BaseModel):
    rows: list[TransferResponse]
    total: int
    page: int
    page_size: int


class ReservationWarehouseSummary(BaseModel):
    id: str
    name: str
    priority: int


class ReservationTypeSummary(BaseModel):
    id: str
    name: str
    sku: str


class ReservationResponse(BaseModel):
    id: str
    stock_id: str
    request_item_id: str | None
    case_line_id: str | None
    quantity_reserved: int
    status: str
    created_at: datetime
    warehouse: ReservationWarehouseSummary | None = None
    type_component: ReservationTypeSummary | None = None


class ReservationListResponse(BaseModel):
    request_id: str
    statuses: list[str]
    rows: list[ReservationResponse]


class TransferApprovalResponse(BaseModel):
    request: TransferResponse
    reservations: list[ReservationResponse]


class TransferShipmentResponse(BaseModel):
    request: TransferResponse
    reservation: ReservationResponse
    component_ids: list[str]
    fully_shipped: bool


class TransferReceiptResponse(BaseModel):
    request: TransferResponse
    component_ids: list[str]
    received_by_type: dict[str, int]
