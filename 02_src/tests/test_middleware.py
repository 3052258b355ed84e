"""Tests for the ASGI middleware, driven through httpx."""

import logging

import httpx
import pytest
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from hubble.api import install_hubble
from hubble.models import LogFilter, OperationType
from hubble.pipeline import resolve_route_labels

logger = logging.getLogger("tests.app")


class Widgets:
    @staticmethod
    async def get_widget(widget_id: int) -> dict:
        return {"id": widget_id}


def make_host_app(application, engine=None) -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(payload: dict) -> dict:
        logger.warning("Echoing payload")
        return {"received": payload}

    @app.get("/report")
    async def report() -> dict:
        logging.getLogger("tests.host").info("Building report")
        return {"rows": 0}

    @app.get("/text", tags=["plain"])
    async def plain_text():
        return PlainTextResponse("hello", headers={"x-custom": "1"})

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="nope")

    @app.get("/crash")
    async def crash():
        raise RuntimeError("kaboom")

    @app.get("/items")
    def list_items() -> list[str]:
        with engine.connect() as conn:
            return [row[0] for row in conn.execute(text("SELECT name FROM items"))]

    app.get("/widgets/{widget_id}")(Widgets.get_widget)

    install_hubble(app, application)
    return app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE items (name TEXT)"))
        conn.execute(text("INSERT INTO items (name) VALUES ('bolt'), ('nut')"))
    yield engine
    engine.dispose()


@pytest.fixture
async def client(application, engine):
    application.instrument(engine)
    app = make_host_app(application, engine)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def only_root(application):
    logs = await application.storage.find_logs(LogFilter())
    assert len(logs) == 1
    return logs[0]


class TestMiddlewareCapture:
    """Tests for envelope capture through a real FastAPI app."""

    async def test_body_passes_through_unchanged(self, client, application):
        response = await client.post("/echo?x=1", json={"item": "book"})

        assert response.status_code == 200
        assert response.json() == {"received": {"item": "book"}}

        log = await only_root(application)
        assert log.method == "POST"
        assert log.http_url == "/echo"
        assert log.query_params == "?x=1"
        assert log.request_data == response.request.content.decode()
        assert log.response_data == response.text
        assert log.status_code == 200
        assert log.action_name == "echo"

    async def test_headers_preserved(self, client, application):
        response = await client.get("/text")

        assert response.text == "hello"
        assert response.headers["x-custom"] == "1"
        assert response.headers["content-type"].startswith("text/plain")

        log = await only_root(application)
        assert log.controller_name == "plain"
        assert log.action_name == "plain_text"

    async def test_class_endpoint_labels(self, client, application):
        response = await client.get("/widgets/7")

        assert response.json() == {"id": 7}
        log = await only_root(application)
        assert (log.controller_name, log.action_name) == ("Widgets", "get_widget")

    async def test_handled_error_status(self, client, application):
        response = await client.get("/missing")

        assert response.status_code == 404
        log = await only_root(application)
        assert log.status_code == 404
        assert log.is_error is False

    async def test_unhandled_error_image(self, client, application):
        response = await client.get("/crash")

        assert response.status_code == 500
        log = await only_root(application)
        assert log.is_error is True
        assert log.status_code == 500
        assert log.error_message == "kaboom"

    async def test_queries_from_sync_endpoint(self, client, application):
        response = await client.get("/items")

        assert response.json() == ["bolt", "nut"]
        log = await only_root(application)
        [query] = log.database_queries
        assert query.operation_type is OperationType.SELECT
        assert query.table_name == "items"
        assert query.database_type == "sqlite"
        assert "list_items" in query.caller_method

    async def test_logged_message_correlated(self, client, application):
        application.settings().capture_logger_messages = True

        await client.post("/echo", json={})
        await application.recorder.flush()

        root = await only_root(application)
        related = await application.storage.get_related_logs(root.id)
        assert [r.request_data for r in related] == ["Echoing payload"]
        assert related[0].action_name == "WARNING"

    async def test_info_message_correlated_without_level_overrides(
        self, client, application
    ):
        application.settings().capture_logger_messages = True

        await client.get("/report")
        await application.recorder.flush()

        root = await only_root(application)
        related = await application.storage.get_related_logs(root.id)
        assert [r.request_data for r in related] == ["Building report"]
        assert related[0].action_name == "INFO"
        assert related[0].http_url == "tests.host"

    async def test_own_api_not_captured(self, client, application):
        response = await client.get("/api/hubble/logs")

        assert response.status_code == 200
        assert await application.storage.count_logs(LogFilter()) == 0

    async def test_stopped_application_passes_through(self, client, application):
        await application.stop()

        response = await client.post("/echo", json={"a": 1})
        assert response.json() == {"received": {"a": 1}}


class TestRouteLabels:
    """Tests for post-dispatch route label resolution."""

    def test_no_endpoint(self):
        assert resolve_route_labels({}) == ("Unknown", "Unknown")

    def test_module_fallback(self):
        def handler():
            return None

        controller, action = resolve_route_labels({"endpoint": handler})
        assert action == "handler"
        assert controller == __name__.rsplit(".", 1)[-1]
