import asyncio
import json
from types import SimpleNamespace

import pytest
from fastapi import Request
from fastapi.responses import StreamingResponse
from fastapi.testclient import TestClient

from conftest import read_records
from serverlog.api.server import EVENTS, EXTENSION_POINTS, HookError, Server
from serverlog.infrastructure.logging.request_logger import create_request_logger
from serverlog.infrastructure.logging.serializers import as_response_value
from serverlog.infrastructure.utils.config import ConfigError, LoggerOptions
from serverlog.models.log_models import RequestInfo
from serverlog.services.binder.logger_plugin import InstrumentationError, register, response_time

LEVELS = ["trace", "debug", "info", "warn", "error"]


def assert_nothing_registered(server: Server) -> None:
    for point in EXTENSION_POINTS:
        assert server.extensions(point) == []
    for event in EVENTS:
        assert server.listeners(event) == []
    assert not hasattr(server, "logger")
    assert getattr(server.app, "logger", None) is None


class TestExposure:
    @pytest.mark.parametrize("level", LEVELS)
    def test_logs_through_server_app_logger(self, bound_server, sink, level):
        server = bound_server(level=level)
        getattr(server.app.logger, level)("hello world")
        (record,) = read_records(sink)
        assert record["msg"] == "hello world"
        assert record["level"] == level

    @pytest.mark.parametrize("level", LEVELS)
    def test_logs_through_server_logger_accessor(self, bound_server, sink, level):
        server = bound_server(level=level)
        getattr(server.logger(), level)("hello world")
        (record,) = read_records(sink)
        assert record["msg"] == "hello world"

    def test_both_access_paths_return_the_same_handle(self, bound_server):
        server = bound_server()
        assert server.app.logger is server.logger()

    def test_register_returns_the_handle(self, server, sink):
        logger = register(server, {"stream": sink})
        assert logger is server.logger()

    def test_registers_every_hook(self, bound_server):
        server = bound_server()
        for point in EXTENSION_POINTS:
            assert len(server.extensions(point)) == 1
        for event in EVENTS:
            assert len(server.listeners(event)) == 1

    def test_accepts_options_model(self, server, sink):
        register(server, LoggerOptions(stream=sink, level="debug"))
        server.logger().debug("x")
        assert read_records(sink)[0]["level"] == "debug"

    def test_minimum_level_defaults_to_info(self, server, sink):
        register(server, {"stream": sink})
        server.logger().debug("dropped")
        server.logger().info("kept")
        assert [r["msg"] for r in read_records(sink)] == ["kept"]


class TestLifecycle:
    def test_log_on_server_start_and_stop(self, bound_server, sink):
        server = bound_server()
        with TestClient(server.fastapi):
            started = read_records(sink)
            assert started[-1]["msg"] == "server started"
            assert started[-1]["level"] == "info"
            assert started[-1]["uri"] == "http://127.0.0.1:3000"
            assert started[-1]["started"] > 0
            assert started[-1]["id"] == server.info.id

        stopped = read_records(sink)[-1]
        assert stopped["msg"] == "server stopped"
        assert stopped["host"] == "127.0.0.1"
        assert stopped["port"] == 3000


class TestRequests:
    def test_logs_each_request(self, bound_server, sink):
        server = bound_server(level="info")
        client = TestClient(server.fastapi)
        client.get("/")

        (record,) = read_records(sink)
        assert record["msg"] == "request completed"
        assert record["level"] == "info"
        assert record["res"]["statusCode"] == 404
        assert record["req"]["id"]
        assert record["req"]["method"] == "GET"
        assert record["req"]["url"] == "http://testserver/"
        assert record["req"]["remoteAddress"] == "testclient"
        assert record["responseTime"] >= 0

    def test_track_response_time(self, bound_server, sink):
        server = bound_server(level="info")

        @server.fastapi.get("/")
        async def slow():
            await asyncio.sleep(0.02)
            return "hello world"

        TestClient(server.fastapi).get("/")
        (record,) = read_records(sink)
        assert record["res"]["statusCode"] == 200
        assert record["responseTime"] >= 10

    def test_request_id_header_is_used(self, bound_server, sink):
        server = bound_server(level="info")
        response = TestClient(server.fastapi).get("/", headers={"x-request-id": "req-42"})
        assert response.headers["x-request-id"] == "req-42"
        assert read_records(sink)[0]["req"]["id"] == "req-42"

    def test_request_logger_is_a_child_of_the_server_logger(self, bound_server, sink):
        server = bound_server(level="info")
        seen = {}

        @server.fastapi.get("/")
        def handler(request: Request):
            seen["request"] = request.state.logger
            seen["server"] = request.app.state.logger
            request.state.logger.info("inside handler")
            return {"ok": True}

        TestClient(server.fastapi).get("/")
        server.logger().info("outside")

        inside, completed, outside = read_records(sink)
        assert seen["server"] is server.logger()
        assert seen["request"] is not server.logger()
        assert inside["msg"] == "inside handler"
        assert inside["req"]["id"] == completed["req"]["id"]
        assert "req" not in outside

    def test_request_error_is_logged_at_warn(self, bound_server, sink):
        server = bound_server(level="info")

        @server.fastapi.get("/")
        def broken():
            raise RuntimeError("boom")

        response = TestClient(server.fastapi).get("/")
        assert response.status_code == 500

        error, completed = read_records(sink)
        assert error["level"] == "warn"
        assert error["msg"] == "request error"
        assert error["err"]["type"] == "RuntimeError"
        assert error["err"]["message"] == "boom"
        assert error["res"]["statusCode"] == 500
        assert completed["msg"] == "request completed"
        assert completed["res"]["statusCode"] == 500

    def test_one_completion_record_per_request(self, bound_server, sink):
        server = bound_server(level="info")
        client = TestClient(server.fastapi)
        for _ in range(3):
            client.get("/")
        records = read_records(sink)
        assert len(records) == 3
        assert len({r["req"]["id"] for r in records}) == 3

    def test_error_after_the_response_started(self, bound_server, sink):
        server = bound_server(level="info")

        def chunks():
            yield b"first"
            raise RuntimeError("stream broke")

        @server.fastapi.get("/")
        def stream():
            return StreamingResponse(chunks())

        with pytest.raises(RuntimeError, match="stream broke"):
            TestClient(server.fastapi).get("/")

        error, completed = read_records(sink)
        assert (error["level"], error["msg"]) == ("warn", "request error")
        assert error["res"]["statusCode"] == 200
        assert error["err"]["message"] == "stream broke"
        assert (completed["level"], completed["msg"]) == ("info", "request completed")
        assert completed["responseTime"] >= 0


class TestTags:
    def test_server_event_first_tag_wins(self, bound_server, sink):
        server = bound_server(tags={"aaa": "info", "bbb": "warn"})
        server.log(["aaa", "bbb"], {"k": 1})

        (record,) = read_records(sink)
        assert record["level"] == "info"
        assert record["tags"] == ["aaa", "bbb"]
        assert record["data"] == {"k": 1}
        assert "msg" not in record

    @pytest.mark.parametrize("level", LEVELS)
    def test_default_tags_map_to_their_level(self, bound_server, sink, level):
        server = bound_server()
        server.log([level], "hello world")
        (record,) = read_records(sink)
        assert record["level"] == level
        assert record["data"] == "hello world"

    def test_custom_tags(self, bound_server, sink):
        server = bound_server(tags={"my-tag": "error"})
        server.log(["foo", "my-tag"], "x")
        assert read_records(sink)[0]["level"] == "error"

    def test_unmatched_tags_use_fallback(self, bound_server, sink):
        server = bound_server(all_tags="debug")
        server.log("something", "x")
        assert read_records(sink)[0]["level"] == "debug"

    def test_defaults_only_info_fallback(self, bound_server, sink):
        server = bound_server(tags={}, all_tags="info")
        server.log(["something"], "x")
        assert read_records(sink)[0]["level"] == "info"

    def test_suppressed_fallback_logs_nothing(self, bound_server, sink):
        server = bound_server(all_tags=None)
        server.log(["unmatched"], "x")
        assert read_records(sink) == []

    def test_request_events_go_through_the_request_logger(self, bound_server, sink):
        server = bound_server(level="info", tags={"db": "warn"}, all_tags="none")

        @server.fastapi.get("/")
        def handler(request: Request):
            server.request_log(request, ["query", "db"], {"rows": 3})
            server.request_log(request, ["ignored"], "nothing")
            return {"ok": True}

        TestClient(server.fastapi).get("/")
        event, completed = read_records(sink)
        assert event["level"] == "warn"
        assert event["tags"] == ["query", "db"]
        assert event["data"] == {"rows": 3}
        assert event["req"]["id"] == completed["req"]["id"]


class TestConfigErrors:
    @pytest.mark.parametrize("options", [
        {"tags": {"foo": "bar"}},
        {"tags": {"info": "loud"}},
        {"all_tags": "sometimes"},
        {"level": "verbose"},
        {"allTags": "info"},
        {"serializers": {"req": "not callable"}},
        {"instance": object()},
    ])
    def test_invalid_configuration_registers_nothing(self, server, sink, options):
        with pytest.raises(ConfigError):
            register(server, {"stream": sink, **options})
        assert_nothing_registered(server)

    def test_registering_twice_fails(self, bound_server, sink):
        server = bound_server()
        hooks_before = server.extensions("onRequest")
        with pytest.raises(ConfigError, match="already registered"):
            register(server, {"stream": sink})
        assert server.extensions("onRequest") == hooks_before


class TestInstance:
    def test_reuses_instance_and_keeps_its_serializers(self, server, sink):
        instance = create_request_logger(sink, serializers={"foo": lambda v: {"wrapped": v}})
        register(server, {"instance": instance})
        assert server.logger() is instance
        assert server.app.logger is instance

        server.logger().info("with foo", foo=1)
        TestClient(server.fastapi).get("/")

        foo_record, completed = read_records(sink)
        assert foo_record["foo"] == {"wrapped": 1}
        assert completed["req"]["method"] == "GET"
        assert completed["res"]["statusCode"] == 404

    def test_overrides_win_on_collision(self, server, sink):
        instance = create_request_logger(sink, serializers={"res": lambda v: "custom", "foo": str})
        register(server, {"instance": instance, "serializers": {"foo": lambda v: "caller"}})
        assert instance.serializers["res"] is as_response_value
        server.logger().info("x", foo=1)
        assert read_records(sink)[0]["foo"] == "caller"


class TestResponseTime:
    def test_elapsed(self):
        assert response_time(RequestInfo(id="r", received=100.0, responded=112.5)) == 12.5

    @pytest.mark.parametrize("info", [
        None,
        RequestInfo(id="r"),
        RequestInfo(id="r", received=1.0),
        RequestInfo(id="r", responded=1.0),
        RequestInfo(id="r", received=10.0, responded=5.0),
    ])
    def test_missing_or_inconsistent_timing(self, info):
        with pytest.raises(InstrumentationError):
            response_time(info)

    def test_response_event_without_timing_is_surfaced(self, bound_server, sink):
        server = bound_server()
        request = SimpleNamespace(state=SimpleNamespace(logger=server.logger(), response=None))
        with pytest.raises(InstrumentationError):
            server.emit("response", request)
        assert read_records(sink) == []


def test_request_event_before_on_request_fails_loudly(bound_server):
    server = bound_server()
    request = SimpleNamespace(state=SimpleNamespace())
    with pytest.raises(RuntimeError, match="not initialized"):
        server.request_log(request, ["info"], "x")


def test_unknown_event_is_rejected(bound_server):
    server = bound_server()
    with pytest.raises(HookError):
        server.emit("nope")


def test_default_stdout_carries_only_records(capsys):
    server = Server()
    register(server, {})
    server.logger().info("hello")

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert [json.loads(line)["msg"] for line in lines] == ["hello"]
