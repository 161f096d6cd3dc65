from __future__ import annotations

from sqlalchemy import select

from app.evstock.db.models import Warehouse


class WarehouseRepository:
    def __init__(self, db):
        self.db = db

    def get(self, warehouse_id, *, lock: bool = False) -> Warehouse | None:
        query = select(Warehouse).where(Warehouse.id == warehouse_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()
