"""Serves the pre-built frontend bundle in production.

The build writes compiled assets under ``<document root>/dist``. This filter
rewrites matching requests onto that tree and forwards them, so the
default servlet answers them instead of application routing.
"""

from __future__ import annotations

from starlette.types import ASGIApp, Receive, Scope, Send

from frontend.web.context import ServletContext
from frontend.web.registration import Filter, FilterConfig


class StaticResourcesProductionFilter(Filter):
    index_path = "/index.html"

    def __init__(self, dist_prefix: str = "/dist") -> None:
        self.dist_prefix = "/" + dist_prefix.strip("/")
        self._context: ServletContext | None = None

    def init(self, config: FilterConfig) -> None:
        self._context = config.context

    def is_dist_path(self, path: str) -> bool:
        return path == self.dist_prefix or path.startswith(self.dist_prefix + "/")

    def target_path(self, path: str) -> str:
        if path == "/":
            path = self.index_path
        return self.dist_prefix + path

    async def do_filter(self, scope: Scope, receive: Receive, send: Send, chain: ASGIApp) -> None:
        # Paths already under the dist tree are served as they are.
        if (
            scope.get("method") not in ("GET", "HEAD")
            or self._context is None
            or self.is_dist_path(scope["path"])
        ):
            await chain(scope, receive, send)
            return

        dispatcher = self._context.get_request_dispatcher(self.target_path(scope["path"]))
        await dispatcher.forward(scope, receive, send)
