import time

from fastapi import Request

from backend.app.core.logger import get_logger

logger = get_logger("request_logger")


async def log_requests(request: Request, call_next):
    start_time = time.monotonic()
    logger.info("Started request %s %s", request.method, request.url.path)
    response = await call_next(request)
    duration = time.monotonic() - start_time
    logger.info(
        "Completed request %s %s with status=%s in %.3fs",
        request.method,
        request.url.path,
        response.status_code,
        duration,
    )
    return response
