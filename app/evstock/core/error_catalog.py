from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    PERMISSION_DENIED = ErrorDefinition(
        "PERMISSION_DENIED",
        "Permission denied",
        status.HTTP_403_FORBIDDEN,
    )
    COMPANY_SCOPE_REQUIRED = ErrorDefinition(
        "COMPANY_SCOPE_REQUIRED",
        "Company scope is required",
        status.HTTP_403_FORBIDDEN,
    )
    SERVICE_CENTER_SCOPE_REQUIRED = ErrorDefinition(
        "SERVICE_CENTER_SCOPE_REQUIRED",
        "Service center scope is required",
        status.HTTP_403_FORBIDDEN,
    )

    BAD_REQUEST = ErrorDefinition("BAD_REQUEST", "Bad request", status.HTTP_400_BAD_REQUEST)
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Not found", status.HTTP_404_NOT_FOUND)
    CONFLICT = ErrorDefinition("CONFLICT", "Conflict", status.HTTP_409_CONFLICT)

    INVALID_STATUS_TRANSITION = ErrorDefinition(
        "INVALID_STATUS_TRANSITION",
        "Transition not allowed from current status",
        status.HTTP_409_CONFLICT,
    )
    ROLE_NOT_ALLOWED = ErrorDefinition(
        "ROLE_NOT_ALLOWED",
        "Role cannot perform this transition",
        status.HTTP_409_CONFLICT,
    )
    INSUFFICIENT_STOCK = ErrorDefinition(
        "INSUFFICIENT_STOCK",
        "Not enough stock to satisfy the demand",
        status.HTTP_409_CONFLICT,
    )
    RESERVATION_QUANTITY_MISMATCH = ErrorDefinition(
        "RESERVATION_QUANTITY_MISMATCH",
        "Component count does not match reserved quantity",
        status.HTTP_409_CONFLICT,
    )
    COMPONENT_UNAVAILABLE = ErrorDefinition(
        "COMPONENT_UNAVAILABLE",
        "Component cannot be used for this reservation",
        status.HTTP_409_CONFLICT,
    )
    STOCK_LEDGER_CONFLICT = ErrorDefinition(
        "STOCK_LEDGER_CONFLICT",
        "Stock quantities would become inconsistent",
        status.HTTP_409_CONFLICT,
    )

    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        message = error.message
        if isinstance(details, dict) and details.get("message"):
            message = f"{error.message}: {details['message']}"
        super().__init__(message)
