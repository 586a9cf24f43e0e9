from __future__ import annotations

from email.utils import formatdate
from time import time
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from frontend.config import Settings
from frontend.web.registration import Filter, FilterConfig


_SECONDS_PER_DAY = 24 * 60 * 60
_NO_CACHE_DIRECTIVES = ("no-cache", "no-store")


class CachingHttpHeadersFilter(Filter):
    """Adds long-lived caching headers to successful static responses.

    Responses that already opt out of caching (``no-cache``/``no-store``)
    and error responses are left untouched.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.cache_seconds = 0
        self.last_modified = ""

    def init(self, config: FilterConfig) -> None:
        ttl_days = self._settings.http_cache_ttl_days
        if ttl_days <= 0:
            raise ValueError(f"HTTP cache time-to-live must be positive, got {ttl_days} days")
        self.cache_seconds = ttl_days * _SECONDS_PER_DAY
        self.last_modified = formatdate(time(), usegmt=True)

    def _should_cache(self, message: dict[str, Any]) -> bool:
        if int(message.get("status", 200)) >= 400:
            return False
        cache_control = MutableHeaders(scope=message).get("cache-control", "").lower()
        return not any(directive in cache_control for directive in _NO_CACHE_DIRECTIVES)

    async def do_filter(self, scope: Scope, receive: Receive, send: Send, chain: ASGIApp) -> None:
        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start" and self._should_cache(message):
                headers = MutableHeaders(scope=message)
                headers["Cache-Control"] = f"max-age={self.cache_seconds}, public"
                headers["Pragma"] = "cache"
                headers["Expires"] = formatdate(time() + self.cache_seconds, usegmt=True)
                headers.setdefault("Last-Modified", self.last_modified)

            await send(message)

        await chain(scope, receive, send_wrapper)
