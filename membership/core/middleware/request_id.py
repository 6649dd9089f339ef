import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from membership.core.logging import log_event, request_id_ctx_var

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request and log one access line.

    An incoming x-request-id (e.g. from the edge proxy) is reused so webhook
    deliveries can be traced end to end; otherwise a fresh uuid4 is minted.
    """

    async def dispatch(self, request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        status = 500

        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            log_event(
                "info" if status < 500 else "error",
                "request.complete",
                request_id=rid,
                method=request.method,
                path=request.url.path,
                status=status,
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            request_id_ctx_var.reset(token)
