from __future__ import annotations

from pydantic import BaseModel

from app.evstock.schemas.transfers import ReservationResponse


class CaseLineReserveRequest(BaseModel):
    case_line_ids: list[str]


class CaseLineReservationResponse(BaseModel):
    case_line_id: str
    type_component_id: str
    quantity: int
    status: str
    reservations: list[ReservationResponse]


class CaseLineReserveResponse(BaseModel):
    rows: list[CaseLineReservationResponse]


class CaseLineReleaseResponse(BaseModel):
    case_line_id: str
    released: list[ReservationResponse]
