from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from app.evstock.db.models import StockTransferRequest, StockTransferRequestItem, Warehouse


@dataclass(frozen=True)
class TransferQueryFilters:
    company_id: object
    service_center_id: object | None = None
    status: str | None = None
    requesting_warehouse_id: object | None = None


class TransferRequestRepository:
    def __init__(self, db):
        self.db = db

    def add(self, request: StockTransferRequest) -> StockTransferRequest:
        self.db.add(request)
        return request

    def get(self, request_id, *, lock: bool = False) -> StockTransferRequest | None:
        query = select(StockTransferRequest).where(StockTransferRequest.id == request_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def get_items(self, request_id, *, lock: bool = False) -> list[StockTransferRequestItem]:
        query = (
            select(StockTransferRequestItem)
            .where(StockTransferRequestItem.request_id == request_id)
            .order_by(StockTransferRequestItem.line_no.asc())
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().all()

    def _apply_filters(self, filters: TransferQueryFilters):
        query = (
            select(StockTransferRequest)
            .join(Warehouse, Warehouse.id == StockTransferRequest.requesting_warehouse_id)
            .where(Warehouse.vehicle_company_id == filters.company_id)
        )
        if filters.service_center_id is not None:
            query = query.where(Warehouse.service_center_id == filters.service_center_id)
        if filters.status:
            query = query.where(StockTransferRequest.status == filters.status)
        if filters.requesting_warehouse_id is not None:
            query = query.where(StockTransferRequest.requesting_warehouse_id == filters.requesting_warehouse_id)
        return query

    def list_requests(
        self,
        filters: TransferQueryFilters,
        *,
        page: int,
        page_size: int,
    ) -> tuple[list[StockTransferRequest], int]:
        base_query = self._apply_filters(filters)
        total = self.db.execute(select(func.count()).select_from(base_query.subquery())).scalar_one()
        query = (
            base_query.order_by(StockTransferRequest.requested_at.desc(), StockTransferRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return self.db.execute(query).scalars().all(), int(total or 0)
