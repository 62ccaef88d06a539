import logging

from fastapi import FastAPI

from app.api.error_handlers import register_error_handlers
from app.api.routes_analyze import router as analyze_router
from app.api.routes_labs import router as labs_router
from app.api.routes_narration import router as narration_router
from app.config import settings
from app.logging import configure_logging
from app.middleware.request_id import RequestIdMiddleware
from app.observability.metrics_route import router as ops_router


def create_app() -> FastAPI:
    configure_logging()
    logger = logging.getLogger(__name__)

    app = FastAPI(title=settings.app_name)
    app.add_middleware(RequestIdMiddleware)
    register_error_handlers(app)

    app.include_router(ops_router)
    app.include_router(analyze_router)
    app.include_router(labs_router)
    app.include_router(narration_router)

    logger.info(
        "App initialized upstream_configured=%s tts_configured=%s",
        bool(settings.upstream_api_key),
        bool(settings.tts_api_key),
    )
    return app


app = create_app()
