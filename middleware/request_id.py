"""
Request ID middleware for request and connection correlation.

Every HTTP request and every WebSocket session gets an ID, taken from the
``X-Request-ID`` header when the client supplies one. The ID is stored in a
context variable so every log line emitted while serving it carries the
same ``request_id``.
"""

import uuid
from contextvars import ContextVar

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

# Context variable for storing request_id across async contexts
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware:
    """
    ASGI middleware that assigns a correlation ID to each request.

    The ID is:
    1. Extracted from the X-Request-ID header if present, else a new UUID
    2. Stored in ``scope["state"]`` so error handlers see it as request.state
    3. Stored in a context variable for the JSON log formatter
    4. Echoed back on HTTP responses
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        token = request_id_var.set(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            request_id_var.reset(token)


def get_request_id() -> str:
    """Return the current correlation ID, or an empty string outside a request."""
    return request_id_var.get()
