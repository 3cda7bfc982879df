"""
Rate limiting and request logging.

Limits (per client address)
---------------------------
* login          -- 5 per 15 minutes
* ride booking   -- 10 per minute
* everything else -- 100 per minute
"""

import logging
import time

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import settings

logger = logging.getLogger("src.api.requests")

LOGIN_LIMIT = "5 per 15 minutes"
RIDE_BOOKING_LIMIT = "10/minute"
API_LIMIT = "100/minute"

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response
