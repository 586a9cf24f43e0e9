"""Web application wiring run once at boot.

``customize`` edits the embedded container; ``on_startup`` registers the
filter chain and the metrics servlet on the servlet context. Both must run
before the first request is served.
"""

from __future__ import annotations

import structlog

from frontend.api.metrics import MetricsServlet
from frontend.config import PROFILE_PRODUCTION, Settings
from frontend.observability.metrics import MetricRegistry
from frontend.observability.middleware import InstrumentedFilter
from frontend.web.context import ServletContext
from frontend.web.dispatch import DispatcherType
from frontend.web.filters.caching import CachingHttpHeadersFilter
from frontend.web.filters.static import StaticResourcesProductionFilter
from frontend.web.mime import MimeMappings
from frontend.web.server import EmbeddedServletContainer


log = structlog.get_logger(__name__)

DISPATCHER_TYPES = frozenset({DispatcherType.REQUEST, DispatcherType.FORWARD, DispatcherType.ASYNC})

METRICS_FILTER_NAME = "webappMetricsFilter"
METRICS_SERVLET_NAME = "metricsServlet"
CACHING_FILTER_NAME = "cachingHttpHeadersFilter"
STATIC_FILTER_NAME = "staticResourcesProductionFilter"


def on_startup(
    context: ServletContext,
    settings: Settings,
    metric_registry: MetricRegistry | None = None,
) -> None:
    log.info("web_application_configuration", profiles=sorted(settings.active_profiles))
    _init_metrics(context, DISPATCHER_TYPES, settings, metric_registry)
    if settings.accepts_profiles(PROFILE_PRODUCTION):
        _init_caching_http_headers_filter(context, DISPATCHER_TYPES, settings)
        _init_static_resources_production_filter(context, DISPATCHER_TYPES, settings)
    log.info("web_application_configured")


def customize(container: EmbeddedServletContainer) -> None:
    """Override the MIME types of ``html`` and ``json``."""

    mappings = MimeMappings(MimeMappings.DEFAULT)
    # Old IE guesses the charset of html served without one.
    mappings.add("html", "text/html;charset=utf-8")
    # Some proxies rewrite application/json bodies; serve json as html.
    mappings.add("json", "text/html;charset=utf-8")
    container.set_mime_mappings(mappings)


def _init_static_resources_production_filter(
    context: ServletContext, disps: frozenset[DispatcherType], settings: Settings
) -> None:
    log.debug("registering_filter", filter=STATIC_FILTER_NAME)
    static_filter = context.add_filter(
        STATIC_FILTER_NAME,
        StaticResourcesProductionFilter(dist_prefix=settings.static_dist_prefix),
    )
    static_filter.add_mapping_for_url_patterns(disps, True, "/", "/index.html", "/assets/*", "/scripts/*")
    static_filter.set_async_supported(True)


def _init_caching_http_headers_filter(
    context: ServletContext, disps: frozenset[DispatcherType], settings: Settings
) -> None:
    log.debug("registering_filter", filter=CACHING_FILTER_NAME)
    caching_filter = context.add_filter(CACHING_FILTER_NAME, CachingHttpHeadersFilter(settings))
    caching_filter.add_mapping_for_url_patterns(disps, True, "/assets/*", "/scripts/*", "/maps/*")
    caching_filter.set_async_supported(True)


def _init_metrics(
    context: ServletContext,
    disps: frozenset[DispatcherType],
    settings: Settings,
    metric_registry: MetricRegistry | None,
) -> None:
    log.debug("initializing_metrics_registries", registry_present=metric_registry is not None)
    context.set_attribute(InstrumentedFilter.REGISTRY_ATTRIBUTE, metric_registry)
    context.set_attribute(MetricsServlet.METRICS_REGISTRY, metric_registry)

    log.debug("registering_filter", filter=METRICS_FILTER_NAME)
    metrics_filter = context.add_filter(METRICS_FILTER_NAME, InstrumentedFilter())
    metrics_filter.set_init_parameter(InstrumentedFilter.NAME_PREFIX_PARAM, settings.metrics_name_prefix)
    metrics_filter.add_mapping_for_url_patterns(disps, True, "/*")
    metrics_filter.set_async_supported(True)

    log.debug("registering_servlet", servlet=METRICS_SERVLET_NAME)
    metrics_servlet = context.add_servlet(METRICS_SERVLET_NAME, MetricsServlet())
    metrics_servlet.add_mapping("/metrics/metrics/*")
    metrics_servlet.set_async_supported(True)
    metrics_servlet.set_load_on_startup(2)
