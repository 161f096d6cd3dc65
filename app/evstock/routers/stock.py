from fastapi import APIRouter, Depends

from app.evstock.core.context import RequestContext
from app.evstock.core.deps import require_request_context
from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.ids import as_uuid
from app.evstock.core.roles import is_service_center_role
from app.evstock.db.session import get_db
from app.evstock.repos.stock import StockRepository
from app.evstock.repos.warehouses import WarehouseRepository
from app.evstock.routers.serializers import stock_response
from app.evstock.schemas.stock import WarehouseStockResponse

router = APIRouter()


@router.get("/evstock/warehouses/{warehouse_id}/stocks", response_model=WarehouseStockResponse)
def list_warehouse_stocks(
    warehouse_id: str,
    context: RequestContext = Depends(require_request_context),
    db=Depends(get_db),
):
    warehouse = WarehouseRepository(db).get(as_uuid(warehouse_id, "warehouse_id"))
    visible = warehouse is not None and warehouse.vehicle_company_id == as_uuid(context.company_id, "company_id")
    if visible and is_service_center_role(context.role):
        visible = warehouse.service_center_id == as_uuid(context.service_center_id, "service_center_id")
    if not visible:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"message": f"Warehouse with ID {warehouse_id} not found"})
    return WarehouseStockResponse(
        warehouse_id=str(warehouse.id),
        name=warehouse.name,
        priority=warehouse.priority,
        service_center_id=str(warehouse.service_center_id) if warehouse.service_center_id else None,
        rows=[stock_response(stock) for stock in StockRepository(db).list_for_warehouse(warehouse.id)],
    )
