"""Tests for the correlation registry, diagnostic recorder and log handler."""

import asyncio
import logging
from unittest.mock import AsyncMock, Mock

import pytest

from hubble.correlation import (
    CorrelationRegistry,
    DiagnosticRecorder,
    HubbleLogHandler,
    split_source_annotation,
)
from hubble.models import DIAGNOSTIC_LABEL, DIAGNOSTIC_METHOD, GeneralLog, LogFilter


async def persisted_root(storage) -> GeneralLog:
    root = GeneralLog(method="POST", http_url="/orders", ip_address="Localhost")
    await storage.create_log(root)
    return root


class TestCorrelationRegistry:
    """Tests for the request-scoped registry."""

    def test_current_is_none_outside_request(self):
        assert CorrelationRegistry().current() is None

    async def test_register_and_current(self, storage):
        registry = CorrelationRegistry()
        root = await persisted_root(storage)

        token = registry.open()
        try:
            registry.register(root.id, root)
            assert registry.current() is root
        finally:
            registry.close(token)

        assert registry.current() is None

    def test_register_requires_persisted_root(self):
        registry = CorrelationRegistry()
        token = registry.open()
        try:
            with pytest.raises(ValueError):
                registry.register("", GeneralLog())
            with pytest.raises(ValueError):
                registry.register("other", GeneralLog(id="root"))
        finally:
            registry.close(token)

    def test_register_requires_open_scope(self):
        with pytest.raises(RuntimeError):
            CorrelationRegistry().register("root", GeneralLog(id="root"))

    async def test_scopes_do_not_leak_between_requests(self):
        registry = CorrelationRegistry()

        async def request(log_id: str) -> str | None:
            token = registry.open()
            try:
                registry.register(log_id, GeneralLog(id=log_id))
                await asyncio.sleep(0)
                return registry.current().id
            finally:
                registry.close(token)

        results = await asyncio.gather(*(request(f"root-{i}") for i in range(5)))
        assert results == [f"root-{i}" for i in range(5)]


class TestSourceAnnotation:
    """Tests for splitting source locations out of messages."""

    def test_split(self):
        text, source = split_source_annotation(
            "Order created (File: orders.py, Line: 12, Method: create)"
        )
        assert text == "Order created"
        assert source == "File: orders.py, Line: 12, Method: create"

    def test_method_only(self):
        assert split_source_annotation("Done (Method: run)") == ("Done", "Method: run")

    def test_no_annotation(self):
        assert split_source_annotation("Total (3 items)") == ("Total (3 items)", None)


class TestDiagnosticRecorder:
    """Tests for child and standalone record creation."""

    async def test_child_record(self, storage, settings):
        registry = CorrelationRegistry()
        recorder = DiagnosticRecorder(storage, registry, settings)
        root = await persisted_root(storage)

        token = registry.open()
        try:
            registry.register(root.id, root)
            child = await recorder.record(
                logging.INFO, "app.orders", "Creating order (Method: create)"
            )
        finally:
            registry.close(token)

        assert child.related_request_id == root.id
        assert child.method == DIAGNOSTIC_METHOD
        assert child.controller_name == DIAGNOSTIC_LABEL
        assert child.action_name == "INFO"
        assert child.http_url == "app.orders"
        assert child.request_data == "Creating order"
        assert child.source_location == "Method: create"
        assert child.ip_address == "Localhost"
        assert child.is_error is False

        related = await storage.get_related_logs(root.id)
        assert [r.id for r in related] == [child.id]

    async def test_standalone_record_outside_request(self, storage, settings):
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)

        log = await recorder.record(logging.WARNING, "app.startup", "Warming up")

        assert log.related_request_id is None
        assert log.service_name == "TestService"
        stored = await storage.find_logs(LogFilter())
        assert [s.id for s in stored] == [log.id]

    async def test_error_fields(self, storage, settings):
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)

        log = await recorder.record(logging.ERROR, "app", "Payment failed", "Traceback ...")

        assert log.is_error
        assert log.error_message == "Payment failed"
        assert log.stack_trace == "Traceback ..."
        assert log.action_name == "ERROR"

    async def test_store_failure_is_swallowed(self, settings):
        storage = Mock()
        storage.create_log = AsyncMock(side_effect=RuntimeError("store down"))
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)

        assert await recorder.record(logging.INFO, "app", "lost") is None

    def test_submit_without_loop(self, storage, settings):
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)
        assert recorder.submit(logging.INFO, "app", "dropped") is False

    async def test_submit_from_worker_thread(self, storage, settings):
        registry = CorrelationRegistry()
        recorder = DiagnosticRecorder(storage, registry, settings)
        recorder.bind_loop(asyncio.get_running_loop())
        root = await persisted_root(storage)

        token = registry.open()
        try:
            registry.register(root.id, root)
            submitted = await asyncio.to_thread(
                recorder.submit, logging.INFO, "app.worker", "From a thread"
            )
            await registry.wait_pending()
        finally:
            registry.close(token)

        assert submitted is True
        [child] = await storage.get_related_logs(root.id)
        assert child.request_data == "From a thread"


class TestHubbleLogHandler:
    """Tests for the logging bridge."""

    @pytest.fixture
    async def wired(self, storage, settings, app_logger):
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)
        recorder.bind_loop(asyncio.get_running_loop())
        handler = HubbleLogHandler(recorder, settings)
        app_logger.addHandler(handler)
        yield recorder
        app_logger.removeHandler(handler)

    async def test_captures_enabled_messages(self, storage, config, wired, app_logger):
        config.capture_logger_messages = True

        app_logger.info("Order %s shipped", 42)
        await wired.flush()

        [log] = await storage.find_logs(LogFilter())
        assert log.request_data == "Order 42 shipped"
        assert log.http_url == "tests.app"
        assert "Method: test_captures_enabled_messages" in log.source_location

    async def test_respects_capture_switch(self, storage, config, wired, app_logger):
        config.capture_logger_messages = False

        app_logger.warning("Not captured")
        await wired.flush()

        assert await storage.count_logs(LogFilter()) == 0

    async def test_respects_minimum_level(self, storage, config, wired, app_logger):
        config.capture_logger_messages = True
        config.minimum_log_level = "WARNING"

        app_logger.info("Too quiet")
        app_logger.warning("Loud enough")
        await wired.flush()

        logs = await storage.find_logs(LogFilter())
        assert [log.request_data for log in logs] == ["Loud enough"]

    async def test_exception_trace_captured(self, storage, config, wired, app_logger):
        config.capture_logger_messages = True

        try:
            raise ValueError("bad input")
        except ValueError:
            app_logger.exception("Validation failed")
        await wired.flush()

        [log] = await storage.find_logs(LogFilter())
        assert log.is_error
        assert "ValueError: bad input" in log.stack_trace

    async def test_own_loggers_ignored(self, storage, settings, config):
        config.capture_logger_messages = True
        recorder = DiagnosticRecorder(storage, CorrelationRegistry(), settings)
        recorder.bind_loop(asyncio.get_running_loop())
        handler = HubbleLogHandler(recorder, settings)

        record = logging.LogRecord(
            "hubble.storage", logging.ERROR, __file__, 1, "internal", None, None
        )
        handler.emit(record)
        await recorder.flush()

        assert await storage.count_logs(LogFilter()) == 0

    def test_attach_lowers_level_and_detach_restores(self, storage, settings, config):
        config.minimum_log_level = "INFO"
        target = logging.getLogger("tests.attached")
        target.setLevel(logging.WARNING)
        existing = logging.NullHandler()
        target.addHandler(existing)
        handler = HubbleLogHandler(
            DiagnosticRecorder(storage, CorrelationRegistry(), settings), settings
        )

        try:
            handler.attach(target)
            assert target.level == logging.INFO
            assert existing.level == logging.WARNING
            assert handler in target.handlers

            handler.detach()
            assert target.level == logging.WARNING
            assert existing.level == logging.NOTSET
            assert handler not in target.handlers
        finally:
            target.removeHandler(existing)
            target.setLevel(logging.NOTSET)

    def test_attach_keeps_lower_level(self, storage, settings, config):
        config.minimum_log_level = "WARNING"
        target = logging.getLogger("tests.verbose")
        target.setLevel(logging.DEBUG)
        handler = HubbleLogHandler(
            DiagnosticRecorder(storage, CorrelationRegistry(), settings), settings
        )

        try:
            handler.attach(target)
            assert target.level == logging.DEBUG
            handler.detach()
            assert target.level == logging.DEBUG
        finally:
            target.setLevel(logging.NOTSET)
