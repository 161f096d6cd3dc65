from __future__ import annotations

from collections.abc import Iterable

from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.ids import as_uuid
from app.evstock.core.statuses import ReservationStatus
from app.evstock.db.models import StockReservation
from app.evstock.repos.reservations import ReservationRepository
from app.evstock.services.allocation import Allocation
from app.evstock.services.stock_ledger import StockLedger


def parse_status_filter(statuses: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalise a reservation status filter.

    ``None`` or an empty value means RESERVED only, ``ALL`` means every status, and
    anything else is a comma-separated string or an iterable of status names.
    """
    if statuses is None:
        return (ReservationStatus.RESERVED,)
    if isinstance(statuses, str):
        values = [value.strip().upper() for value in statuses.split(",")]
    else:
        values = [str(value).strip().upper() for value in statuses]
    values = [value for value in values if value]
    if not values:
        return (ReservationStatus.RESERVED,)
    if "ALL" in values:
        return ReservationStatus.ALL
    unknown = sorted(set(values) - set(ReservationStatus.ALL))
    if unknown:
        raise AppError(
            ErrorCatalog.BAD_REQUEST,
            details={"message": f"Unknown reservation status: {', '.join(unknown)}", "allowed": list(ReservationStatus.ALL)},
        )
    return tuple(dict.fromkeys(values))


class ReservationLedger:
    """Reservation rows plus their matching stock counter operation, as one unit."""

    def __init__(
        self,
        db,
        stock_ledger: StockLedger | None = None,
        reservation_repo: ReservationRepository | None = None,
    ):
        self.db = db
        self.stock_ledger = stock_ledger or StockLedger(db)
        self.reservations = reservation_repo or ReservationRepository(db)

    def create_many(
        self,
        allocations: Iterable[Allocation],
        *,
        request_item_id=None,
        case_line_id=None,
    ) -> list[StockReservation]:
        if (request_item_id is None) == (case_line_id is None):
            raise AppError(
                ErrorCatalog.BAD_REQUEST,
                details={"message": "A reservation needs exactly one of request_item_id or case_line_id"},
            )
        created: list[StockReservation] = []
        for allocation in allocations:
            self.stock_ledger.reserve(allocation.stock_id, allocation.quantity)
            reservation = StockReservation(
                stock_id=allocation.stock_id,
                request_item_id=request_item_id,
                case_line_id=case_line_id,
                quantity_reserved=allocation.quantity,
                status=ReservationStatus.RESERVED,
            )
            self.reservations.add(reservation)
            created.append(reservation)
        self.db.flush()
        return created

    def _locked_reserved(self, reservation_ids: Iterable) -> list[StockReservation]:
        ids = list(dict.fromkeys(as_uuid(reservation_id, "reservation_id") for reservation_id in reservation_ids))
        rows = self.reservations.list_by_ids(ids, lock=True)
        found = {row.id for row in rows}
        missing = [str(reservation_id) for reservation_id in ids if reservation_id not in found]
        if missing:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": f"Reservation {missing[0]} not found", "reservation_ids": missing},
            )
        for row in rows:
            if row.status != ReservationStatus.RESERVED:
                raise AppError(
                    ErrorCatalog.CONFLICT,
                    details={
                        "message": f"Reservation {row.id} is not in RESERVED status. Current status: {row.status}",
                        "reservation_id": str(row.id),
                    },
                )
        return rows

    def mark_shipped(self, reservation_ids: Iterable) -> list[StockReservation]:
        rows = self._locked_reserved(reservation_ids)
        for row in rows:
            self.stock_ledger.ship(row.stock_id, row.quantity_reserved)
            row.status = ReservationStatus.SHIPPED
        self.db.flush()
        return rows

    def cancel(self, reservation_ids: Iterable) -> list[StockReservation]:
        rows = self._locked_reserved(reservation_ids)
        for row in rows:
            self.stock_ledger.unreserve(row.stock_id, row.quantity_reserved)
            row.status = ReservationStatus.CANCELLED
        self.db.flush()
        return rows

    def find_by_request_id(self, request_id, statuses=None, *, lock: bool = False) -> list[StockReservation]:
        return self.reservations.list_by_request(request_id, parse_status_filter(statuses), lock=lock)

    def find_by_case_line_id(self, case_line_id, statuses=None, *, lock: bool = False) -> list[StockReservation]:
        return self.reservations.list_by_case_line(case_line_id, parse_status_filter(statuses), lock=lock)

    def count_reserved_by_request_id(self, request_id) -> int:
        return self.reservations.count_by_request(request_id, ReservationStatus.RESERVED)
