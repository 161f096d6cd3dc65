import uuid

from app.evstock.core.error_catalog import AppError, ErrorCatalog


def as_uuid(value, label: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError) as exc:
        raise AppError(
            ErrorCatalog.BAD_REQUEST,
            details={"message": f"{label} is not a valid id: {value!r}"},
        ) from exc


def as_optional_uuid(value, label: str = "id") -> uuid.UUID | None:
    if value is None or value == "":
        return None
    return as_uuid(value, label)
