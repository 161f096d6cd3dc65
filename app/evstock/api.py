from fastapi import APIRouter

from app.evstock.core.config import settings
from app.evstock.routers.case_lines import router as case_lines_router
from app.evstock.routers.health import router as health_router
from app.evstock.routers.metrics import router as metrics_router
from app.evstock.routers.stock import router as stock_router
from app.evstock.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(transfers_router, tags=["stock-transfer-requests"])
api_router.include_router(case_lines_router, tags=["case-lines"])
api_router.include_router(stock_router, tags=["stock"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
