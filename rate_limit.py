import asyncio
import time
from typing import Dict, Optional

import httpx

import config


class FixedWindowRateLimiter:
    """Fixed-window limiter partitioned by host.

    Each host gets ``permits`` requests per ``window`` seconds. Callers past the
    limit wait in FIFO order (asyncio.Lock wakes waiters in arrival order) and
    are never rejected.
    """

    def __init__(self, window: float = None, permits: int = 1):
        if window is None:
            window = config.RATE_LIMIT_WINDOW
        if window < 0 or permits < 1:
            raise ValueError("window must be >= 0 and permits >= 1")
        self.window = window
        self.permits = permits
        self._locks: Dict[str, asyncio.Lock] = {}
        self._window_start: Dict[str, float] = {}
        self._granted: Dict[str, int] = {}
        self._closed = False
        # Set on close so callers sleeping out a window fail right away
        self._closing = asyncio.Event()

    async def acquire(self, host: str):
        if self._closed:
            raise RuntimeError("Rate limiter has been closed")

        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            while True:
                if self._closed:
                    raise RuntimeError("Rate limiter has been closed")
                now = time.monotonic()
                start = self._window_start.get(host)
                if start is None or now - start >= self.window:
                    self._window_start[host] = now
                    self._granted[host] = 0
                    start = now
                if self._granted[host] < self.permits:
                    self._granted[host] += 1
                    return
                try:
                    await asyncio.wait_for(self._closing.wait(), start + self.window - now)
                except asyncio.TimeoutError:
                    pass

    def close(self):
        self._closed = True
        self._closing.set()
        self._locks.clear()
        self._window_start.clear()
        self._granted.clear()


class RateLimitingTransport(httpx.AsyncBaseTransport):
    """Wraps another transport so every request first takes a permit for its
    host. Errors from the inner transport propagate; the permit stays spent."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limiter: Optional[FixedWindowRateLimiter] = None,
    ):
        self.transport = transport or httpx.AsyncHTTPTransport(retries=0)
        self.limiter = limiter or FixedWindowRateLimiter()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await self.limiter.acquire(request.url.host)
        return await self.transport.handle_async_request(request)

    async def aclose(self):
        self.limiter.close()
        await self.transport.aclose()


def create_http_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    window: float = None,
) -> httpx.AsyncClient:
    limited = RateLimitingTransport(transport, FixedWindowRateLimiter(window))
    return httpx.AsyncClient(
        transport=limited,
        headers={"User-Agent": config.USER_AGENT},
        timeout=config.HTTP_TIMEOUT,
        follow_redirects=True,
    )
