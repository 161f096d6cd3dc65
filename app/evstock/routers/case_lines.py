from fastapi import APIRouter, Depends

from app.evstock.core.context import RequestContext
from app.evstock.core.deps import require_roles
from app.evstock.core.roles import SERVICE_CENTER_STAFF, SERVICE_CENTER_TECHNICIAN
from app.evstock.db.session import get_db
from app.evstock.routers.serializers import reservation_response
from app.evstock.schemas.case_lines import (
    CaseLineReleaseResponse,
    CaseLineReservationResponse,
    CaseLineReserveRequest,
    CaseLineReserveResponse,
)
from app.evstock.services.case_line_reservations import build_case_line_reservations

router = APIRouter()

_require_case_line_actor = require_roles(SERVICE_CENTER_TECHNICIAN, SERVICE_CENTER_STAFF)


@router.post("/evstock/case-lines/reservations", response_model=CaseLineReserveResponse, status_code=201)
def reserve_case_line_parts(
    payload: CaseLineReserveRequest,
    context: RequestContext = Depends(_require_case_line_actor),
    db=Depends(get_db),
):
    results = build_case_line_reservations(db, trace_id=context.trace_id).reserve(
        payload.case_line_ids,
        company_id=context.company_id,
        service_center_id=context.service_center_id,
        user_id=context.user_id,
        role_name=context.role,
    )
    return CaseLineReserveResponse(
        rows=[
            CaseLineReservationResponse(
                case_line_id=str(result.case_line.id),
                type_component_id=str(result.case_line.type_component_id),
                quantity=result.case_line.quantity,
                status=result.case_line.status,
                reservations=[reservation_response(reservation) for reservation in result.reservations],
            )
            for result in results
        ]
    )


@router.post("/evstock/case-lines/{case_line_id}/reservations/release", response_model=CaseLineReleaseResponse)
def release_case_line_parts(
    case_line_id: str,
    context: RequestContext = Depends(_require_case_line_actor),
    db=Depends(get_db),
):
    released = build_case_line_reservations(db, trace_id=context.trace_id).release(
        case_line_id,
        company_id=context.company_id,
        service_center_id=context.service_center_id,
        user_id=context.user_id,
        role_name=context.role,
    )
    return CaseLineReleaseResponse(
        case_line_id=case_line_id,
        released=[reservation_response(reservation) for reservation in released],
    )
