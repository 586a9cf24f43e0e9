from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from frontend.config import Settings, get_settings
from frontend.main import create_app
from frontend.observability.metrics import MetricRegistry


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def document_root(tmp_path: Path) -> Path:
    """A webapp tree with dev sources at the root and a compiled dist/ bundle."""

    root = tmp_path / "webapp"
    _write(root / "index.html", "<html>dev index</html>")
    _write(root / "assets" / "app.js", "console.log('dev');")
    _write(root / "dist" / "index.html", "<html>dist index</html>")
    _write(root / "dist" / "assets" / "app.js", "console.log('dist');")
    _write(root / "dist" / "scripts" / "app.js", "console.log('dist scripts');")
    _write(root / "dist" / "data.json", '{"ok": true}')
    return root


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ACTIVE_PROFILES", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings(document_root: Path) -> Callable[..., Settings]:
    def _make(profiles: str = "dev", **overrides: object) -> Settings:
        values: dict[str, object] = {
            "ACTIVE_PROFILES": profiles,
            "DOCUMENT_ROOT": str(document_root),
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def registry() -> MetricRegistry:
    return MetricRegistry()


@pytest.fixture
def dev_app(make_settings, registry: MetricRegistry) -> FastAPI:
    return create_app(make_settings("dev"), metric_registry=registry)


@pytest.fixture
def production_app(make_settings, registry: MetricRegistry) -> FastAPI:
    return create_app(make_settings("production"), metric_registry=registry)


async def _client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def dev_client(dev_app: FastAPI) -> AsyncIterator[AsyncClient]:
    async for client in _client(dev_app):
        yield client


@pytest.fixture
async def production_client(production_app: FastAPI) -> AsyncIterator[AsyncClient]:
    async for client in _client(production_app):
        yield client
