from __future__ import annotations

from fastapi import FastAPI

from frontend.config import Settings, get_settings
from frontend.observability.logging import configure_logging
from frontend.observability.metrics import MetricRegistry
from frontend.observability.middleware import RequestContextMiddleware
from frontend.web.context import FilterChainMiddleware, ServletContext
from frontend.web.server import EmbeddedServletContainer
from frontend.web_configurer import customize, on_startup


def create_app(settings: Settings | None = None, metric_registry: MetricRegistry | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="MTP Frontend", version="0.1.0")

    container = EmbeddedServletContainer(document_root=settings.document_root_path, port=settings.port)
    customize(container)

    context = ServletContext(app)
    on_startup(context, settings, metric_registry)

    app.state.container = container
    app.state.servlet_context = context
    app.router.default = container.default_servlet()

    # Added last runs first: request context wraps the filter chain.
    app.add_middleware(FilterChainMiddleware, context=context)
    app.add_middleware(RequestContextMiddleware)

    @app.on_event("startup")
    def _startup() -> None:
        context.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        context.stop()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app(metric_registry=MetricRegistry())
