import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from nashra.api.deps import get_pipeline
from nashra.container import Pipeline
from nashra.schemas.response import Response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health", response_model=Response)
def health(pipeline: Pipeline = Depends(get_pipeline)):
    status = {"database": "ok", "cache": "disabled", "refreshRunning": pipeline.runner.busy}

    try:
        with pipeline.session_factory() as db:
            db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check: database unreachable: %s", e)
        status["database"] = "error"

    if pipeline.cache.enabled:
        try:
            status["cache"] = "ok" if pipeline.cache.ping() else "error"
        except Exception as e:
            logger.error("Health check: cache unreachable: %s", e)
            status["cache"] = "error"

    if status["database"] != "ok":
        return JSONResponse(status_code=503,
                            content=Response.error(code=503, msg="unhealthy", data=status).model_dump())
    return Response.success(data=status)
