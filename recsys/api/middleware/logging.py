"""
Request Logging Middleware
Tags each request with an ID and writes one access-log line per response.
"""

import logging
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access logging keyed by request ID.

    The client's X-Request-ID is reused when present, otherwise one is generated.
    The ID is exposed to handlers as request.state.request_id and echoed on the
    response. Server errors log at error level, 503s (engine not ready) at warning.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        context = {"request_id": request_id, "method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error in {request.method} {request.url.path}", extra=context)
            raise

        code = response.status_code
        if code == 503:
            level = logging.WARNING
        elif code >= 500:
            level = logging.ERROR
        else:
            level = logging.INFO
        logger.log(level, f"{request.method} {request.url.path} {code}", extra={**context, "status_code": code})

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
