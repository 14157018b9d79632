import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("access")

class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request, plus an X-Process-Time header"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client = request.client.host if request.client else "unknown"

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"{client} - {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.4f}s"
        )
        if response.status_code >= 500:
            logging.getLogger(__name__).error(f"{request.method} {request.url.path} failed with {response.status_code}")

        response.headers["X-Process-Time"] = str(process_time)
        return response
