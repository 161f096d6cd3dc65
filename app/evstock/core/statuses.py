class TransferStatus:
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SHIPPED = "SHIPPED"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING_APPROVAL, APPROVED, SHIPPED, RECEIVED, REJECTED, CANCELLED)


class ReservationStatus:
    RESERVED = "RESERVED"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"

    ALL = (RESERVED, SHIPPED, CANCELLED)


class ComponentStatus:
    IN_WAREHOUSE = "IN_WAREHOUSE"
    RESERVED = "RESERVED"
    IN_TRANSIT = "IN_TRANSIT"
    WITH_TECHNICIAN = "WITH_TECHNICIAN"
    INSTALLED = "INSTALLED"
    RETURNED = "RETURNED"

    ALL = (IN_WAREHOUSE, RESERVED, IN_TRANSIT, WITH_TECHNICIAN, INSTALLED, RETURNED)


class CaseLineStatus:
    DRAFT = "DRAFT"
    WAITING_FOR_PARTS = "WAITING_FOR_PARTS"
    PARTS_AVAILABLE = "PARTS_AVAILABLE"
    REJECTED_BY_OEM = "REJECTED_BY_OEM"

    RESERVABLE = (DRAFT, PARTS_AVAILABLE)
