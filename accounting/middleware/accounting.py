"""Resource accounting middleware — the host side of the accountant.

For each HTTP request, this middleware:
  1. Creates the root RequestNode and stores it in scope["state"]
  2. Calls start_accounting (begin Snapshot)
  3. Dispatches the app, following internal redirects
  4. Calls stop_accounting once the app is done, even if it raised
  5. Feeds the published values into the request_resource_usage histogram

INTERNAL REDIRECTS
-------------------
A handler can hand the request over to another path inside the app:

  @app.get("/latest")
  async def latest():
      raise InternalRedirect("/reports/2024-06")

The client never sees a 3xx.  The middleware creates the next node of
the chain (node.redirect(path)), re-runs start_accounting on it (a no-op:
the chain already has its begin Snapshot) and dispatches the app again
with the new path.  The final metrics cover the whole chain and land on
the LAST node.

A redirect raised after response bytes were sent can't be honoured and
is re-raised.  Redirect loops are cut after `max_redirects` hops with a
500, the way web servers bound their internal-redirect recursion.

WHY PURE ASGI (NOT BaseHTTPMiddleware)
---------------------------------------
BaseHTTPMiddleware returns from call_next as soon as the response
headers exist, while the body may still be streaming.  Accounting must
stop after the LAST byte, and redirect handling needs to re-invoke the
app, so this middleware wraps the raw ASGI callable.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from accounting.core.config import SETTINGS
from accounting.core.metrics import RESOURCE_USAGE, Metric
from accounting.models.request_node import RequestNode
from accounting.services.accounting import Accountant
from accounting.services.accounting import accountant as default_accountant

logger = logging.getLogger(__name__)

STATE_KEY = "accounting_node"


class InternalRedirect(Exception):
    """Raised by a handler to re-dispatch the current request to `path`."""

    def __init__(self, path: str, query_string: str = "") -> None:
        super().__init__(path)
        self.path = path
        self.query_string = query_string


def chain_root(scope: Scope) -> RequestNode | None:
    """The root node of the chain serving this request, if accounting ran."""
    return scope.get("state", {}).get(STATE_KEY)


def _redirected_scope(base: Scope, redirect: InternalRedirect) -> Scope:
    scope = dict(base)
    scope["path"] = redirect.path
    # raw_path and query_string carry URL-encoded ASCII bytes; path stays decoded.
    scope["raw_path"] = quote(redirect.path).encode("ascii")
    scope["query_string"] = quote(redirect.query_string, safe="=&+%").encode("ascii")
    return scope


def _without_body(receive: Receive) -> Receive:
    # The original body was consumed by the first dispatch.
    sent = False

    async def receive_empty() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        return await receive()

    return receive_empty


class ResourceAccountingMiddleware:
    """Account CPU, I/O and wall time for every HTTP request chain."""

    def __init__(
        self,
        app: ASGIApp,
        accountant: Accountant | None = None,
        *,
        enabled: bool | None = None,
        max_redirects: int | None = None,
        skip_paths: tuple[str, ...] = ("/metrics",),
    ) -> None:
        self.app = app
        self._accountant = accountant
        self.enabled = SETTINGS.accounting_enabled if enabled is None else enabled
        self.max_redirects = (
            SETTINGS.accounting_max_redirects
            if max_redirects is None
            else max_redirects
        )
        self.skip_paths = skip_paths

    @property
    def accountant(self) -> Accountant:
        return self._accountant or default_accountant

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or not self.enabled
            or scope["path"] in self.skip_paths
        ):
            await self.app(scope, receive, send)
            return

        accountant = self.accountant
        node = RequestNode(uri=scope["path"], method=scope.get("method", "GET"))
        scope.setdefault("state", {})[STATE_KEY] = node
        base_scope = dict(scope)

        response_started = False

        async def send_tracking(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        accountant.start_accounting(node)
        try:
            current_scope, current_receive = scope, receive
            hops = 0
            while True:
                try:
                    await self.app(current_scope, current_receive, send_tracking)
                    break
                except InternalRedirect as redirect:
                    if response_started:
                        raise
                    hops += 1
                    if hops > self.max_redirects:
                        logger.error(
                            "Internal redirect limit (%d) exceeded at %s",
                            self.max_redirects,
                            redirect.path,
                        )
                        response = PlainTextResponse(
                            "Internal Server Error", status_code=500
                        )
                        await response(current_scope, current_receive, send_tracking)
                        break
                    logger.debug("internal redirect %s -> %s", node.uri, redirect.path)
                    node = node.redirect(redirect.path)
                    accountant.start_accounting(node)
                    current_scope = _redirected_scope(base_scope, redirect)
                    current_receive = _without_body(receive)
        finally:
            published = accountant.stop_accounting(node)
            self._observe(published)

    @staticmethod
    def _observe(published: dict[Metric, Any]) -> None:
        for metric, value in published.items():
            RESOURCE_USAGE.labels(metric=metric.value).observe(int(value))
