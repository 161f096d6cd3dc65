from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from app.evstock.core.statuses import ComponentStatus
from app.evstock.db.models import Component, StockTransferRequestItem


class ComponentRepository:
    def __init__(self, db):
        self.db = db

    def list_by_ids(self, component_ids: Iterable, *, lock: bool = False) -> list[Component]:
        ids = list(component_ids)
        if not ids:
            return []
        query = select(Component).where(Component.id.in_(ids)).order_by(Component.id.asc())
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().all()

    def list_in_transit_for_request(self, request_id, *, lock: bool = False) -> list[Component]:
        query = (
            select(Component)
            .join(StockTransferRequestItem, StockTransferRequestItem.id == Component.stock_transfer_request_item_id)
            .where(
                StockTransferRequestItem.request_id == request_id,
                Component.status == ComponentStatus.IN_TRANSIT,
            )
            .order_by(Component.id.asc())
        )
        if lock:
            query = query.with_for_update(of=Component).execution_options(populate_existing=True)
        return self.db.execute(query).scalars().all()
