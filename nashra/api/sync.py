import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from nashra.api.deps import get_pipeline, require_admin, verify_cron_secret
from nashra.container import Pipeline
from nashra.core.redis import flush_quietly
from nashra.schemas.response import SyncError, SyncResponse
from nashra.services.exceptions import RefreshInProgressError
from nashra.services.runner import RefreshHandle
from nashra.utils.timeutils import isoformat_z, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5


def _error(status_code: int, message: str) -> JSONResponse:
    body = SyncError(error=message, timestamp=isoformat_z(utcnow()))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.get("/api/cron/refresh", response_model=SyncResponse)
def cron_refresh(
    _: None = Depends(verify_cron_secret),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Scheduled refresh, called by an external cron with the shared secret."""
    logger.info("Starting automated data refresh...")
    try:
        result = pipeline.runner.run(trigger="cron")
    except RefreshInProgressError as e:
        return _error(409, str(e))
    except Exception as e:
        logger.exception("Cron job failed: %s", e)
        return _error(500, "Data refresh failed")

    logger.info("Data refresh completed: %s", result.as_dict())
    return SyncResponse.from_result(result, isoformat_z(utcnow()))


async def _cancel_on_disconnect(request: Request, handle: RefreshHandle) -> None:
    while not handle.done():
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling manual refresh")
            handle.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post("/api/admin/trigger-sync", response_model=SyncResponse)
async def trigger_sync(
    request: Request,
    admin: dict = Depends(require_admin),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Manual refresh from the admin panel; counts and errors go straight back to the caller."""
    logger.info("Manual sync triggered by admin: %s", admin.get("email"))
    try:
        handle = pipeline.runner.start(trigger="manual")
    except RefreshInProgressError as e:
        return _error(409, str(e))

    watcher = asyncio.create_task(_cancel_on_disconnect(request, handle))
    try:
        result = await run_in_threadpool(handle.wait)
    except Exception as e:
        logger.exception("Manual sync failed: %s", e)
        return _error(500, "Data refresh failed")
    finally:
        watcher.cancel()

    await run_in_threadpool(flush_quietly, pipeline.cache)
    return SyncResponse.from_result(result, isoformat_z(utcnow()))
