import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from sheetgenius.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("sheetgenius")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a request_id and log one line when it finishes.

    The frontend forwards the signed-in user as X-User-Id; when present it is
    attached to the completion log so generations can be traced per user.
    """

    def __init__(self, app, header_name: str = "x-request-id", user_header: str = "x-user-id"):
        super().__init__(app)
        self.header_name = header_name
        self.user_header = user_header

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            logger.info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "user_id": request.headers.get(self.user_header),
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
