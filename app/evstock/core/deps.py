from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError

from app.evstock.core.context import RequestContext, build_request_context
from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.roles import is_service_center_role, normalize_role
from app.evstock.core.security import TokenData, bearer_scheme, decode_token


def get_current_token_data(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenData:
    if credentials is None or not credentials.credentials:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    try:
        payload = decode_token(credentials.credentials)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    if not token_data.company_id:
        raise AppError(ErrorCatalog.COMPANY_SCOPE_REQUIRED)
    if is_service_center_role(token_data.role) and not token_data.service_center_id:
        raise AppError(ErrorCatalog.SERVICE_CENTER_SCOPE_REQUIRED)
    context = build_request_context(
        user_id=token_data.sub,
        company_id=token_data.company_id,
        service_center_id=token_data.service_center_id,
        role=normalize_role(token_data.role),
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.user_id = context.user_id
    request.state.company_id = context.company_id
    return context


def require_roles(*roles: str):
    allowed = {normalize_role(role) for role in roles}

    def dependency(context: RequestContext = Depends(require_request_context)) -> RequestContext:
        if context.role not in allowed:
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": f"role '{context.role}' is not allowed", "allowed_roles": sorted(allowed)},
            )
        return context

    return dependency


__all__ = [
    "get_current_token_data",
    "require_request_context",
    "require_roles",
]
