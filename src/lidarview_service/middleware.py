from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from lidarview_service.observability import record_http_request


logger = logging.getLogger("lidarview.api")

PUBLIC_PATHS = frozenset({"/", "/v1/health"})
# Long-lived SSE responses. Browsers open them with EventSource, which cannot
# send custom headers.
STREAM_PATHS = frozenset({"/v1/events", "/v1/control/commands"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def request_channel(path: str) -> str:
    """Group a request path: the page, the JSON api, bridge callbacks or streams."""
    if path in STREAM_PATHS:
        return "stream"
    if path.startswith("/v1/control/"):
        return "bridge"
    if path == "/":
        return "page"
    return "api"


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Require ``X-API-Key``; streams may pass it as the ``api_key`` query parameter."""

    def __init__(self, app, api_key: str | None):
        super().__init__(app)
        self._api_key = (api_key or "").strip() or None

    def _presented_key(self, request: Request) -> str | None:
        key = request.headers.get("X-API-Key")
        if key is None and request.url.path in STREAM_PATHS:
            key = request.query_params.get("api_key")
        return key

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if self._api_key is None or path in PUBLIC_PATHS:
            return await call_next(request)
        if self._presented_key(request) == self._api_key:
            return await call_next(request)

        logger.warning(
            "api_key_rejected channel=%s path=%s",
            request_channel(path),
            path,
            extra={"channel": request_channel(path)},
        )
        return JSONResponse(status_code=401, content={"detail": "Invalid API key."})


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """Toggle, basemap and bridge payloads are small JSON documents; cap them."""

    def __init__(self, app, max_body_bytes: int):
        super().__init__(app)
        self._limit = max(1, int(max_body_bytes))

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"detail": f"Payload exceeds {self._limit} bytes."},
        )

    async def dispatch(self, request: Request, call_next):
        if request.method not in BODY_METHODS:
            return await call_next(request)

        declared = request.headers.get("content-length", "")
        if declared.isdigit():
            if int(declared) > self._limit:
                return self._too_large()
        elif len(await request.body()) > self._limit:
            return self._too_large()
        return await call_next(request)


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Request id propagation, one log line and metrics per request.

    For SSE streams ``call_next`` returns once the stream opened, so they are
    logged as ``stream_opened`` and kept out of the latency histogram.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        channel = request_channel(request.url.path)
        started = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            elapsed = time.monotonic() - started
            route_path = str(getattr(request.scope.get("route"), "path", request.url.path))
            record_http_request(
                request.method,
                route_path,
                status_code,
                None if channel == "stream" else elapsed,
                channel=channel,
            )
            # Bridge callbacks arrive for every load and state change.
            level = logging.DEBUG if channel == "bridge" and status_code < 400 else logging.INFO
            logger.log(
                level,
                "%s method=%s path=%s status=%s duration_s=%.4f",
                "stream_opened" if channel == "stream" else "request_completed",
                request.method,
                route_path,
                status_code,
                elapsed,
                extra={"request_id": request_id, "channel": channel},
            )
