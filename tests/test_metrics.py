import pytest
from httpx import ASGITransport, AsyncClient

from frontend.main import create_app
from frontend.observability.metrics import MetricRegistry


def test_registry_creates_metrics_once_per_name() -> None:
    registry = MetricRegistry()

    assert registry.counter("a") is registry.counter("a")
    registry.meter("b").mark(3)
    registry.timer("c").update(5.0)
    registry.timer("c").update(15.0)

    snapshot = registry.snapshot()
    assert snapshot["meters"]["b"]["count"] == 3
    timer = snapshot["timers"]["c"]
    assert timer["count"] == 2
    assert timer["min"] == 5.0
    assert timer["max"] == 15.0
    assert timer["mean"] == 10.0
    assert registry.names() == ["a", "b", "c"]


def test_registry_rejects_kind_mismatch() -> None:
    registry = MetricRegistry()
    registry.counter("requests")

    with pytest.raises(ValueError):
        registry.timer("requests")


def test_timer_context_manager_records_even_on_error() -> None:
    timer = MetricRegistry().timer("t")

    with pytest.raises(RuntimeError):
        with timer.time():
            raise RuntimeError("boom")

    assert timer.count == 1


async def test_metrics_endpoint_returns_snapshot(dev_client, registry) -> None:
    registry.counter("custom.counter").inc(7)

    resp = await dev_client.get("/metrics/metrics/")
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "must-revalidate,no-cache,no-store"
    payload = resp.json()
    assert set(payload) == {"counters", "meters", "timers"}
    assert payload["counters"]["custom.counter"]["count"] == 7


async def test_metrics_endpoint_serves_any_path_under_its_prefix(dev_client) -> None:
    resp = await dev_client.get("/metrics/metrics/anything/below")
    assert resp.status_code == 200
    assert "counters" in resp.json()


async def test_metrics_endpoint_pretty_prints_on_request(dev_client) -> None:
    compact = await dev_client.get("/metrics/metrics/")
    pretty = await dev_client.get("/metrics/metrics/", params={"pretty": "true"})

    assert "\n" not in compact.text
    assert "\n  " in pretty.text


async def test_metrics_endpoint_rejects_writes(dev_client) -> None:
    resp = await dev_client.post("/metrics/metrics/")
    assert resp.status_code == 405


async def test_metrics_filter_counts_all_traffic(dev_client, registry) -> None:
    health = await dev_client.get("/health")
    assert health.status_code == 200
    missing = await dev_client.get("/no-such-page")
    assert missing.status_code == 404

    assert registry.timer("http.requests").count == 2
    assert registry.meter("http.responseCodes.ok").count == 1
    assert registry.meter("http.responseCodes.notFound").count == 1
    assert registry.counter("http.activeRequests").count == 0


async def test_metrics_filter_uses_configured_name_prefix(make_settings, registry) -> None:
    app = create_app(make_settings("dev", METRICS_NAME_PREFIX="web"), metric_registry=registry)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.get("/health")

    assert registry.timer("web.requests").count == 1
    assert "http.requests" not in registry.names()


async def test_static_traffic_is_counted_for_request_and_forward(production_client, registry) -> None:
    resp = await production_client.get("/assets/app.js")
    assert resp.status_code == 200

    # Once for the original request and once for the forward onto dist/.
    assert registry.timer("http.requests").count == 2
    assert registry.meter("http.responseCodes.ok").count == 2


async def test_missing_registry_passes_requests_through(make_settings) -> None:
    app = create_app(make_settings("dev"), metric_registry=None)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/health")
        metrics = await client.get("/metrics/metrics/")

    assert health.status_code == 200
    assert metrics.status_code == 503
    assert metrics.json() == {"detail": "Metrics registry unavailable"}
