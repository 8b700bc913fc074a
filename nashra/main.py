import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nashra.api import admin, auth, health, sync
from nashra.container import Pipeline, build_pipeline
from nashra.core.config import settings
from nashra.core.logging import configure_logging
from nashra.core.scheduler import RefreshScheduler
from nashra.schemas.response import Response

logger = logging.getLogger(__name__)


def start_scheduler(pipeline: Pipeline) -> RefreshScheduler:
    scheduler = RefreshScheduler(
        pipeline.runner,
        pipeline.alert_evaluator,
        refresh_minutes=pipeline.settings.REFRESH_INTERVAL_MINUTES,
        alert_minutes=pipeline.settings.ALERT_INTERVAL_MINUTES,
        news_minutes=pipeline.settings.NEWS_INTERVAL_MINUTES,
    )
    scheduler.start()
    return scheduler


def create_app(pipeline: Optional[Pipeline] = None, enable_scheduler: Optional[bool] = None) -> FastAPI:
    """Build the API. A pipeline passed in is used as-is and left open on shutdown."""
    if enable_scheduler is None:
        enable_scheduler = settings.ENABLE_SCHEDULER

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        configure_logging(settings.LOG_LEVEL)
        owned = pipeline is None
        active = build_pipeline(settings) if owned else pipeline
        fastapi_app.state.pipeline = active

        scheduler = None
        if enable_scheduler:
            try:
                scheduler = start_scheduler(active)
            except Exception as e:
                logger.error("Scheduler start failed: %s", e)

        yield

        if scheduler is not None:
            scheduler.shutdown()
        if owned:
            active.close()

    app = FastAPI(title=settings.PROJECT_NAME, version="1.0.0", lifespan=lifespan)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=Response.error(code=exc.status_code, msg=exc.detail).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=Response.error(code=422, msg=str(exc)).model_dump()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=Response.error(code=500, msg="Internal server error").model_dump()
        )

    app.include_router(sync.router)
    app.include_router(admin.router)
    app.include_router(auth.router)
    app.include_router(health.router)

    @app.get("/")
    def read_root():
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    return app


app = create_app()
