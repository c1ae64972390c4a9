"""Request context middleware.

Every request gets an ID (the client's X-Request-ID, or a fresh UUID)
held in a ContextVar, so concurrent requests interleaving on one event
loop still produce attributable log lines:

  INFO  [req-abc] Subject=... completed by trainee=...
  INFO  [req-xyz] Task=... completed by trainee=...
  ERROR [req-abc] Unhandled error on POST /v1/trainee/subjects/.../complete

On the way out the middleware logs one summary line per request and
copies two things onto the response: the request ID, and the
X-RateLimit-* headers that app.api.ratelimit leaves on request.state.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Attach the current request_id to every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


# On the root logger so every module's logger inherits it; guarded
# against double installation on reload.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            # require_user records the caller on request.state
            user_id = getattr(request.state, "user_id", None)
            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "user_id": user_id,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )

            for name, value in getattr(request.state, "rate_limit_headers", {}).items():
                response.headers.setdefault(name, value)
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            request_id_var.reset(token)
