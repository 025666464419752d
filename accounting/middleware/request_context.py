"""Request context middleware — request IDs and the access log line.

WHY REQUEST IDs
-----------------
When multiple requests run concurrently, log lines interleave.  A
"Timetraveling" error from the delta engine is only useful if you can
tell WHICH request it belongs to.  Every request gets an ID (the
client's X-Request-ID, or a fresh UUID), stored in a ContextVar and
stamped onto every LogRecord by a logging filter.

WHY CONTEXT VARIABLES (NOT THREAD-LOCALS)
-------------------------------------------
Async servers run many requests on the SAME thread.  A ContextVar gives
each request task its own value, even when they share a thread.

THE ACCESS LOG LINE
---------------------
After the app (and the accounting middleware inside it) has finished,
this middleware logs one summary line per request.  The accounting
values published on the chain's last node ride along as extra fields:

  GET /latest → 200 (12.3ms) time=12211us utime=8000us stime=1000us ...

With accounting disabled the line ends in "accounting=off"; a chain that
ran but published nothing (its begin Snapshot was missing) ends in
"accounting=missing".

That is why this middleware must wrap ResourceAccountingMiddleware: by
the time control returns here, stop_accounting has already published.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from accounting.core.metrics import Metric
from accounting.middleware.accounting import chain_root
from accounting.services.chain import resolve_last

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Context variable: holds the current request's ID
# ---------------------------------------------------------------------------

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Logging filter that injects the request ID into every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


# Install the filter on the root logger.
# Guard against duplicate installation across module reloads.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


def accounting_fields(scope: Scope) -> dict[str, str]:
    """Published accounting values for this request, keyed by log field name."""
    root = chain_root(scope)
    if root is None:
        return {}
    notes = resolve_last(root).notes
    return {m.log_field: notes[m.value] for m in Metric if m.value in notes}


class RequestContextMiddleware:
    """Assign a request ID, time the request and log one summary line.

    For every incoming HTTP request:
    1. Reads X-Request-ID header (if client provided one) or generates a UUID
    2. Stores it in a ContextVar (accessible anywhere in the async chain)
    3. Sets X-Request-ID on the response (for client correlation)
    4. Logs method, path, status, duration and the accounting values
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        req_id = Headers(scope=scope).get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)["X-Request-ID"] = req_id
            await send(message)

        start = time.monotonic()
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            acc = accounting_fields(scope)
            if acc:
                summary = " ".join(
                    f"{m.log_field[4:]}={acc[m.log_field]}{'us' if m.is_time else 'blk'}"
                    for m in Metric
                    if m.log_field in acc
                )
            elif chain_root(scope) is None:
                summary = "accounting=off"
            else:
                # chain ran but nothing was published (no begin snapshot)
                summary = "accounting=missing"
            logger.info(
                "%s %s → %d (%.1fms) %s",
                scope.get("method", "-"),
                scope["path"],
                status_code,
                duration_ms,
                summary,
                extra={
                    "request_id": req_id,
                    "method": scope.get("method"),
                    "path": scope["path"],
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    **acc,
                },
            )
            request_id_var.reset(token)
