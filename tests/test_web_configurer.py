import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from frontend.api.metrics import MetricsServlet
from frontend.errors import IllegalStateError, RegistrationError
from frontend.main import create_app
from frontend.observability.middleware import InstrumentedFilter
from frontend.web.context import ServletContext
from frontend.web.dispatch import DispatcherType
from frontend.web.mime import MimeMappings
from frontend.web.registration import Filter
from frontend.web.server import EmbeddedServletContainer
from frontend.web_configurer import DISPATCHER_TYPES, customize, on_startup


def _registered(context: ServletContext) -> dict[str, list[str]]:
    registered = {r.name: r.url_pattern_mappings for r in context.filter_registrations}
    registered.update({r.name: r.mappings for r in context.servlet_registrations})
    return registered


def test_dev_profile_registers_only_metrics(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), registry)

    assert _registered(context) == {
        "webappMetricsFilter": ["/*"],
        "metricsServlet": ["/metrics/metrics/*"],
    }


@pytest.mark.parametrize("profiles", ["", "dev", "dev,swagger", "prod", "!production"])
def test_non_production_profiles_skip_caching_and_static_filters(make_settings, registry, profiles: str) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings(profiles), registry)

    names = {r.name for r in context.filter_registrations}
    assert names == {"webappMetricsFilter"}


def test_production_profile_registers_all_filters(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("production,swagger"), registry)

    assert _registered(context) == {
        "webappMetricsFilter": ["/*"],
        "metricsServlet": ["/metrics/metrics/*"],
        "cachingHttpHeadersFilter": ["/assets/*", "/scripts/*", "/maps/*"],
        "staticResourcesProductionFilter": ["/", "/index.html", "/assets/*", "/scripts/*"],
    }


def test_metrics_filter_is_mapped_before_production_filters(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("production"), registry)

    order = [m.registration.name for m in context.filter_mappings]
    assert order[0] == "webappMetricsFilter"
    assert order.index("cachingHttpHeadersFilter") < order.index("staticResourcesProductionFilter")

    chain = [r.name for r in context.filters_for("/assets/app.js", DispatcherType.REQUEST)]
    assert chain == ["webappMetricsFilter", "cachingHttpHeadersFilter", "staticResourcesProductionFilter"]


def test_every_registration_is_async_and_covers_three_dispatch_phases(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("production"), registry)

    for registration in context.filter_registrations:
        assert registration.async_supported
        assert registration.dispatcher_types == DISPATCHER_TYPES
    for registration in context.servlet_registrations:
        assert registration.async_supported


def test_metrics_servlet_loads_on_startup_with_priority_two(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), registry)

    servlet = context.get_servlet_registration("metricsServlet")
    assert servlet is not None
    assert servlet.load_on_startup == 2


def test_registry_is_published_in_both_attribute_slots(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), registry)

    assert context.get_attribute(InstrumentedFilter.REGISTRY_ATTRIBUTE) is registry
    assert context.get_attribute(MetricsServlet.METRICS_REGISTRY) is registry


def test_missing_registry_still_registers_metrics_filter(make_settings) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), None)

    assert context.get_filter_registration("webappMetricsFilter") is not None
    assert context.get_attribute(InstrumentedFilter.REGISTRY_ATTRIBUTE) is None
    assert context.get_attribute(MetricsServlet.METRICS_REGISTRY) is None


def test_calling_on_startup_twice_fails_on_duplicate_names(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), registry)

    with pytest.raises(RegistrationError):
        on_startup(context, make_settings("dev"), registry)


def test_registration_after_start_is_rejected(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    context.start()

    with pytest.raises(IllegalStateError):
        on_startup(context, make_settings("dev"), registry)


class BrokenFilter(Filter):
    def init(self, config) -> None:
        raise RuntimeError("cannot initialise")

    async def do_filter(self, scope, receive, send, chain) -> None:
        await chain(scope, receive, send)


async def test_failed_start_keeps_rejecting_requests(make_settings, registry) -> None:
    app = create_app(make_settings("production"), metric_registry=registry)
    context = app.state.servlet_context
    context.add_filter("broken", BrokenFilter()).add_mapping_for_url_patterns(None, True, "/*")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        with pytest.raises(RuntimeError, match="cannot initialise"):
            await client.get("/assets/app.js")
        # No half-initialised chain may serve the next request.
        with pytest.raises(IllegalStateError):
            await client.get("/assets/app.js")

    assert not context.started
    assert registry.timer("http.requests").count == 0


def test_failed_start_closes_registration(make_settings, registry) -> None:
    context = ServletContext(FastAPI())
    on_startup(context, make_settings("dev"), registry)
    context.add_filter("broken", BrokenFilter())

    with pytest.raises(RuntimeError):
        context.start()
    with pytest.raises(IllegalStateError):
        context.start()
    with pytest.raises(IllegalStateError):
        context.add_filter("late", BrokenFilter())


def test_customize_overrides_html_and_json_mime_types() -> None:
    container = EmbeddedServletContainer()
    customize(container)

    assert container.mime_mappings.get("html") == "text/html;charset=utf-8"
    assert container.mime_mappings.get("json") == "text/html;charset=utf-8"
    # Everything else keeps the default table.
    assert container.mime_mappings.get("css") == MimeMappings.DEFAULT.get("css")
    assert len(container.mime_mappings) == len(MimeMappings.DEFAULT)


def test_customize_is_idempotent_and_leaves_default_table_alone() -> None:
    container = EmbeddedServletContainer()
    customize(container)
    first = MimeMappings(container.mime_mappings)
    customize(container)

    assert container.mime_mappings == first
    assert MimeMappings.DEFAULT.get("json") == "application/json"
