EMV_STAFF = "emv_staff"
PARTS_COORDINATOR_COMPANY = "parts_coordinator_company"
PARTS_COORDINATOR_SERVICE_CENTER = "parts_coordinator_service_center"
SERVICE_CENTER_MANAGER = "service_center_manager"
SERVICE_CENTER_STAFF = "service_center_staff"
SERVICE_CENTER_TECHNICIAN = "service_center_technician"

# Roles whose visibility is narrowed to their own service center's warehouses.
SERVICE_CENTER_ROLES = frozenset(
    {
        PARTS_COORDINATOR_SERVICE_CENTER,
        SERVICE_CENTER_MANAGER,
        SERVICE_CENTER_STAFF,
        SERVICE_CENTER_TECHNICIAN,
    }
)

def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def is_service_center_role(role: str | None) -> bool:
    return normalize_role(role) in SERVICE_CENTER_ROLES
