"""Request context middleware; assigns a unique ID to every request.

Concurrent device syncs interleave their log lines.  Every line emitted
while handling a request carries that request's id, so one sync can be
followed end to end:

  INFO  [req-abc] Device d-1 joined class ABC123 as student-...
  WARN  [req-xyz] Rejected progress for d-2/1-3: duration must be a positive finite number

The id lives in a ContextVar rather than a thread-local: Starlette copies
the context into the worker thread that runs a sync endpoint, so the
value set here is visible to the services running there.
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
    """Attach the current request id to every LogRecord.

    A filter (not a formatter) so the field exists on the record before
    any formatter runs, whichever module emitted it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_context_filter() -> None:
    """Install on the root logger's handlers; safe to call repeatedly."""
    root = logging.getLogger()
    for target in (root, *root.handlers):
        if not any(isinstance(f, _RequestContextFilter) for f in target.filters):
            target.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log a completion line.

    1. Reuse the client's X-Request-ID header or generate a UUID
    2. Store it in the ContextVar for the rest of the request
    3. Log method, path, status and duration on completion
    4. Echo the id back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        start = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

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
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
