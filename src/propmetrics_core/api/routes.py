"""FastAPI routes that trigger report runs."""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from ..config import RunConfig, load_run_config, redact_text, redis_url
from ..exceptions import ConfigError
from ..reporting.service import PERIOD_SELECTORS, RunResult, run_report
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["reports"])

RUN_LOCK_KEY = "propmetrics:report_run_lock"
RUN_LOCK_TTL_SECONDS = 1800


@lru_cache(maxsize=1)
def get_run_config() -> RunConfig:
    """Load RunConfig once per process."""
    return load_run_config()


async def get_redis() -> AsyncIterator[Redis]:
    redis = Redis.from_url(redis_url(), decode_responses=False)
    try:
        yield redis
    finally:
        await redis.aclose()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post(
    "/runs/{selector}",
    response_model=RunResult,
    dependencies=[Depends(require_api_key)],
    summary="Run a property CVR report",
    description=(
        "Fetch every metric dimension for all enabled properties, compute "
        "change rates and summaries, and overwrite the report tables. "
        "Returns 409 while another run holds the run lock."
    ),
)
async def trigger_run(
    selector: str,
    months: Optional[int] = Query(None, ge=0, le=120),
    redis: Redis = Depends(get_redis),
):
    """Execute one report run synchronously."""
    if selector not in PERIOD_SELECTORS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown period selector '{selector}'",
        )

    try:
        config = get_run_config()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": "Configuration error",
                "error": str(exc),
                "timestamp": _timestamp(),
            },
        )

    lock = AsyncRedisLock(
        redis,
        name=RUN_LOCK_KEY,
        timeout=RUN_LOCK_TTL_SECONDS,
        blocking=False,
    )
    acquired = await lock.acquire(blocking=False)
    if not acquired:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A report run is already in progress",
        )

    logger.info("%s report run triggered", selector.capitalize())
    try:
        result = await run_report(config, selector, months)
    except Exception as exc:
        error = redact_text(str(exc), config.secrets)
        logger.error("%s report run failed: %s", selector.capitalize(), error)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": f"{selector.capitalize()} report failed",
                "error": error,
                "timestamp": _timestamp(),
            },
        )
    finally:
        try:
            await lock.release()
        except Exception as exc:
            logger.error("Failed to release run lock: %s", exc)

    return result
