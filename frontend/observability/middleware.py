from __future__ import annotations

import uuid
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from frontend.errors import IllegalStateError
from frontend.observability.metrics import MetricRegistry, metric_name
from frontend.web.registration import Filter, FilterConfig


log = structlog.get_logger(__name__)


class RequestContextMiddleware:
    """Adds request_id context and access logs."""

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        path = scope.get("path")
        method = scope.get("method")

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=path,
            method=method,
        )

        start = perf_counter()
        status_code: int = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed_ms = (perf_counter() - start) * 1000.0
            structlog.get_logger("access").info(
                "http_request",
                status_code=status_code,
                elapsed_ms=round(elapsed_ms, 2),
            )

            structlog.contextvars.clear_contextvars()


class InstrumentedFilter(Filter):
    """Counts and times every request it sees.

    Metrics are named ``<prefix>.activeRequests``, ``<prefix>.requests`` and
    ``<prefix>.responseCodes.<name>``; the prefix comes from the
    ``name-prefix`` init parameter (default ``http``).
    """

    REGISTRY_ATTRIBUTE = "frontend.observability.InstrumentedFilter.registry"
    NAME_PREFIX_PARAM = "name-prefix"
    DEFAULT_NAME_PREFIX = "http"

    _RESPONSE_CODES = {
        200: "ok",
        201: "created",
        204: "noContent",
        400: "badRequest",
        404: "notFound",
        500: "serverError",
    }

    def __init__(self) -> None:
        self.registry: MetricRegistry | None = None
        self.prefix = self.DEFAULT_NAME_PREFIX

    def init(self, config: FilterConfig) -> None:
        registry = config.context.get_attribute(self.REGISTRY_ATTRIBUTE)
        if registry is None:
            # Requests pass through unmeasured.
            log.warning("metrics_registry_missing", filter=config.filter_name)
            return
        if not isinstance(registry, MetricRegistry):
            raise IllegalStateError(f"{self.REGISTRY_ATTRIBUTE} is not a MetricRegistry: {registry!r}")

        self.registry = registry
        self.prefix = config.get_init_parameter(self.NAME_PREFIX_PARAM, self.DEFAULT_NAME_PREFIX) or ""
        self._active = registry.counter(metric_name(self.prefix, "activeRequests"))
        self._requests = registry.timer(metric_name(self.prefix, "requests"))
        self._meters = {
            code: registry.meter(metric_name(self.prefix, "responseCodes", label))
            for code, label in self._RESPONSE_CODES.items()
        }
        self._other = registry.meter(metric_name(self.prefix, "responseCodes", "other"))

    def _mark(self, status_code: int) -> None:
        self._meters.get(status_code, self._other).mark()

    async def do_filter(self, scope: Scope, receive: Receive, send: Send, chain: ASGIApp) -> None:
        if self.registry is None:
            await chain(scope, receive, send)
            return

        status_code = 200

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 200))

            await send(message)

        self._active.inc()
        start = perf_counter()
        try:
            await chain(scope, receive, send_wrapper)
        except Exception:
            status_code = 500
            raise
        finally:
            self._active.dec()
            self._requests.update((perf_counter() - start) * 1000.0)
            self._mark(status_code)
