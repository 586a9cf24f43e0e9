from __future__ import annotations

import json

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from frontend.observability.metrics import MetricRegistry
from frontend.web.registration import Servlet, ServletConfig


NO_CACHE = "must-revalidate,no-cache,no-store"


class MetricsServlet(Servlet):
    """Serves a JSON snapshot of the metric registry.

    ``?pretty=true`` indents the output.
    """

    METRICS_REGISTRY = "frontend.api.MetricsServlet.registry"

    def __init__(self) -> None:
        self.registry: MetricRegistry | None = None

    def init(self, config: ServletConfig) -> None:
        self.registry = config.context.get_attribute(self.METRICS_REGISTRY)

    async def service(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = self._respond(request)
        await response(scope, receive, send)

    def _respond(self, request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            return JSONResponse({"detail": "Method Not Allowed"}, status_code=405, headers={"Allow": "GET, HEAD"})

        if self.registry is None:
            return JSONResponse(
                {"detail": "Metrics registry unavailable"},
                status_code=503,
                headers={"Cache-Control": NO_CACHE},
            )

        indent = 2 if request.query_params.get("pretty") == "true" else None
        body = json.dumps(self.registry.snapshot(), indent=indent)
        return Response(body, media_type="application/json", headers={"Cache-Control": NO_CACHE})
