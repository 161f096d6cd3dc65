from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None
    company_id: str | None
    service_center_id: str | None
    role: str | None
    trace_id: str


def build_request_context(
    *,
    user_id: str | None,
    company_id: str | None,
    service_center_id: str | None,
    role: str | None,
    trace_id: str,
) -> RequestContext:
    return RequestContext(
        user_id=user_id,
        company_id=company_id,
        service_center_id=service_center_id,
        role=role,
        trace_id=trace_id,
    )

