from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from app.evstock.db.models import Stock, Warehouse


class StockRepository:
    """Stock record access. Every mutating caller reads through ``lock=True``."""

    def __init__(self, db):
        self.db = db

    def _locked(self, query, lock: bool):
        if not lock:
            return query
        return query.with_for_update(of=Stock).execution_options(populate_existing=True)

    def get(self, stock_id, *, lock: bool = False) -> Stock | None:
        query = select(Stock).where(Stock.id == stock_id)
        return self.db.execute(self._locked(query, lock)).scalars().first()

    def find_by_warehouse_and_type(self, warehouse_id, type_component_id, *, lock: bool = False) -> Stock | None:
        query = select(Stock).where(
            Stock.warehouse_id == warehouse_id,
            Stock.type_component_id == type_component_id,
        )
        return self.db.execute(self._locked(query, lock)).scalars().first()

    def create(self, *, warehouse_id, type_component_id, quantity_in_stock: int, quantity_reserved: int = 0) -> Stock:
        stock = Stock(
            warehouse_id=warehouse_id,
            type_component_id=type_component_id,
            quantity_in_stock=quantity_in_stock,
            quantity_reserved=quantity_reserved,
        )
        self.db.add(stock)
        self.db.flush()
        return stock

    def list_candidates(
        self,
        type_component_ids: Iterable,
        *,
        company_id,
        service_center_id=None,
        exclude_warehouse_id=None,
        lock: bool = False,
    ) -> list[Stock]:
        """Candidate stock for the given types, in allocation order.

        Warehouses are ordered by priority (lower first), then by creation time and id so
        two warehouses sharing a priority are always consumed in the same order.
        """
        type_ids = list(type_component_ids)
        if not type_ids:
            return []
        query = (
            select(Stock)
            .join(Warehouse, Warehouse.id == Stock.warehouse_id)
            .where(
                Stock.type_component_id.in_(type_ids),
                Warehouse.vehicle_company_id == company_id,
            )
        )
        if service_center_id is not None:
            query = query.where(Warehouse.service_center_id == service_center_id)
        if exclude_warehouse_id is not None:
            query = query.where(Warehouse.id != exclude_warehouse_id)
        query = query.order_by(
            Warehouse.priority.asc(),
            Warehouse.created_at.asc(),
            Warehouse.id.asc(),
            Stock.id.asc(),
        )
        return self.db.execute(self._locked(query, lock)).scalars().all()

    def list_for_warehouse(self, warehouse_id) -> list[Stock]:
        query = select(Stock).where(Stock.warehouse_id == warehouse_id).order_by(Stock.created_at.asc(), Stock.id.asc())
        return self.db.execute(query).scalars().all()
