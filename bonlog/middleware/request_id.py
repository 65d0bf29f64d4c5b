"""Request ID tracing middleware — adds X-Request-ID to every response."""
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Read by the JSON log formatter
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client ids end up verbatim in log lines
_CLIENT_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def resolve_request_id(header: str | None) -> str:
    """The caller's X-Request-ID when it is log-safe, else a fresh UUID4."""
    if header and _CLIENT_ID.fullmatch(header):
        return header
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = resolve_request_id(request.headers.get("x-request-id"))
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response
