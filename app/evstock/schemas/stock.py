from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class StockRecordResponse(BaseModel):
    id: str
    warehouse_id: str
    type_component_id: str
    quantity_in_stock: int
    quantity_reserved: int
    quantity_available: int
    updated_at: datetime


class WarehouseStockResponse(BaseModel):
    warehouse_id: str
    name: str
    priority: int
    service_center_id: str | None
    rows: list[StockRecordResponse]
