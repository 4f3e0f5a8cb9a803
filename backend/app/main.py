from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import designs
from app.config import settings
from app.core.logging import RequestLoggingMiddleware, setup_logging


def create_app() -> FastAPI:
    setup_logging(
        json_format=settings.log_json,
        level=settings.log_level,
        engine_level=settings.engine_log_level,
    )

    application = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        debug=settings.debug,
    )

    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(designs.router, prefix="/api/v1/designs", tags=["designs"])

    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "ok", "environment": settings.environment}

    return application


app = create_app()
