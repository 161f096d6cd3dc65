from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select

from app.evstock.core.statuses import ReservationStatus
from app.evstock.db.models import StockReservation, StockTransferRequestItem


class ReservationRepository:
    def __init__(self, db):
        self.db = db

    def _locked(self, query, lock: bool):
        if not lock:
            return query
        return query.with_for_update(of=StockReservation).execution_options(populate_existing=True)

    def add(self, reservation: StockReservation) -> StockReservation:
        self.db.add(reservation)
        return reservation

    def get(self, reservation_id, *, lock: bool = False) -> StockReservation | None:
        query = select(StockReservation).where(StockReservation.id == reservation_id)
        return self.db.execute(self._locked(query, lock)).scalars().first()

    def list_by_ids(self, reservation_ids: Iterable, *, lock: bool = False) -> list[StockReservation]:
        ids = list(reservation_ids)
        if not ids:
            return []
        query = select(StockReservation).where(StockReservation.id.in_(ids)).order_by(StockReservation.id.asc())
        return self.db.execute(self._locked(query, lock)).scalars().all()

    def list_by_request(
        self,
        request_id,
        statuses: Iterable[str] | None = None,
        *,
        lock: bool = False,
    ) -> list[StockReservation]:
        query = (
            select(StockReservation)
            .join(StockTransferRequestItem, StockTransferRequestItem.id == StockReservation.request_item_id)
            .where(StockTransferRequestItem.request_id == request_id)
        )
        if statuses is not None:
            query = query.where(StockReservation.status.in_(list(statuses)))
        query = query.order_by(StockTransferRequestItem.line_no.asc(), StockReservation.created_at.asc(), StockReservation.id.asc())
        return self.db.execute(self._locked(query, lock)).scalars().all()

    def count_by_request(self, request_id, status: str = ReservationStatus.RESERVED) -> int:
        query = (
            select(func.count())
            .select_from(StockReservation)
            .join(StockTransferRequestItem, StockTransferRequestItem.id == StockReservation.request_item_id)
            .where(
                StockTransferRequestItem.request_id == request_id,
                StockReservation.status == status,
            )
        )
        return int(self.db.execute(query).scalar_one() or 0)

    def list_by_case_line(
        self,
        case_line_id,
        statuses: Iterable[str] | None = None,
        *,
        lock: bool = False,
    ) -> list[StockReservation]:
        query = select(StockReservation).where(StockReservation.case_line_id == case_line_id)
        if statuses is not None:
            query = query.where(StockReservation.status.in_(list(statuses)))
        query = query.order_by(StockReservation.created_at.asc(), StockReservation.id.asc())
        return self.db.execute(self._locked(query, lock)).scalars().all()
