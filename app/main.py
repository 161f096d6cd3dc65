from fastapi import FastAPI

from app.evstock.api import api_router
from app.evstock.core.config import settings
from app.evstock.core.errors import setup_exception_handlers
from app.evstock.core.logging import configure_logging
from app.evstock.middleware.observability import ObservabilityMiddleware
from app.evstock.middleware.trace import TraceIdMiddleware
from app.evstock.services.notifications import NotificationHub


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.state.notification_hub = NotificationHub()
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
