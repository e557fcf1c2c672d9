import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from disputedesk.common.logging import get_logger

logger = get_logger("middleware")


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        error_code = response.headers.get("X-Error-Code")
        if error_code:
            logger.info(
                "%s %s %d %s %.1fms",
                request.method,
                request.url.path,
                response.status_code,
                error_code,
                duration_ms,
            )
        else:
            logger.info(
                "%s %s %d %.1fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )

        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
