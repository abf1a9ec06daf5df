"""In-memory rate limiting middleware for the public entry points.

Limits (per client IP):
  /werkzeug-anfordern            → 5 requests/hour
  /upload/accept-invite          → 30 requests/minute
  /upload/invitations/generate   → 20 requests/hour

Only active in production. No shared store: limits apply per process.
"""

import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from id100.config import settings

# (path prefix, max_requests, window_seconds)
_IP_RULES: list[tuple[str, int, int]] = [
    ("/werkzeug-anfordern", 5, 3600),
    ("/upload/accept-invite", 30, 60),
    ("/upload/invitations/generate", 20, 3600),
]


class _SlidingWindow:
    """Simple sliding-window counter store."""

    def __init__(self) -> None:
        # key -> list of timestamps
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, key: str, max_requests: int, window: int) -> bool:
        now = time.monotonic()
        cutoff = now - window
        self._hits[key] = hits = [t for t in self._hits[key] if t > cutoff]
        if len(hits) >= max_requests:
            return False
        hits.append(now)
        return True


_ip_window = _SlidingWindow()


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.is_production:
            return await call_next(request)

        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"
        for prefix, max_req, window in _IP_RULES:
            if path.startswith(prefix):
                key = f"ip:{client_ip}:{prefix}"
                if not _ip_window.is_allowed(key, max_req, window):
                    return _rate_limit_response(request)

        return await call_next(request)


def _rate_limit_response(request: Request) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "status_code": 429,
            "detail": "Zu viele Anfragen. Bitte versuche es später erneut.",
            "request_id": request_id,
        },
        headers={"Retry-After": "60"},
    )
