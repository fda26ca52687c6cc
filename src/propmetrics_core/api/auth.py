"""Shared-key check for report run endpoints."""
import hmac
import os
from typing import Annotated, Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


RUN_KEY_HEADER = "X-PROPMETRICS-API-KEY"
RUN_KEY_ENV = "PROPMETRICS_API_KEY"

run_key_header = APIKeyHeader(name=RUN_KEY_HEADER, auto_error=False)


async def require_api_key(
    api_key: Annotated[Optional[str], Security(run_key_header)] = None
) -> str:
    """Reject callers whose header does not match PROPMETRICS_API_KEY.

    A server started without the key refuses every run with RuntimeError.
    """
    expected = os.getenv(RUN_KEY_ENV)
    if not expected:
        raise RuntimeError(f"{RUN_KEY_ENV} environment variable not configured")

    if api_key is None or not hmac.compare_digest(api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )
    return api_key
