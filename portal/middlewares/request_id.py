from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
# "role:user_id" of the authenticated caller, set by the identity dependency.
principal_ctx_var: ContextVar[str | None] = ContextVar("principal", default=None)
logger = logging.getLogger("portal.request")

# Probe and scrape traffic is logged at DEBUG so it does not drown the API log.
QUIET_PATHS = frozenset({"/health", "/metrics"})


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate every request with an id and log one line when it finishes."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = request_id
        id_token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            # The endpoint runs in a child context, so read the principal back
            # from request state rather than the ContextVar.
            principal = getattr(request.state, "principal", None)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[self.header_name] = request_id
            data = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
            }
            if principal:
                data["principal"] = principal
            logger.log(_level_for(request.url.path, response.status_code), "request.completed", extra={"extra_data": data})
            return response
        finally:
            request_id_ctx_var.reset(id_token)
            principal_ctx_var.reset(principal_token)
