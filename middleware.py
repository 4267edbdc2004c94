"""
HTTP middleware: request logging and per-client rate limiting.
"""
import time as _time
from typing import Dict, Iterable, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import PlainTextResponse
from starlette.responses import Response as StarletteResponse

from logger import get_logger

logger = get_logger("http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every non-OPTIONS request with method, path, status and duration."""

    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = _time.perf_counter()
        response = await call_next(request)
        duration_ms = round((_time.perf_counter() - t0) * 1000, 1)
        logger.info("%s %s -> %d  %.1fms", request.method, request.url.path, response.status_code, duration_ms)
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window limiter keyed by client address.

    Counters are process local; behind several workers each worker keeps its
    own window. X-Forwarded-For is only read when the direct peer is one of
    `trusted_proxies`.
    """

    def __init__(self, app, max_requests: int = 100, window_seconds: int = 15 * 60,
                 trusted_proxies: Iterable[str] = ()):
        super().__init__(app)
        self.trusted_proxies = frozenset(trusted_proxies)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._windows: Dict[str, Tuple[float, int]] = {}

    def _client_key(self, request: StarletteRequest) -> str:
        peer = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and peer in self.trusted_proxies:
            return forwarded.split(",")[0].strip() or peer
        return peer

    def hit(self, key: str, now: float) -> bool:
        """Count one request for `key`; False once the window's budget is spent."""
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        if len(self._windows) > 10_000:
            self._evict(now)
        return count <= self.max_requests

    def _evict(self, now: float) -> None:
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]

    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        key = self._client_key(request)
        if not self.hit(key, _time.monotonic()):
            logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
            return PlainTextResponse(
                "Too many requests, please try again later.",
                status_code=429,
                headers={"Retry-After": str(self.window_seconds)},
            )
        return await call_next(request)
