"""Tests for the MG3 configuration client."""

import asyncio
import socket
import struct

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web

from rtls_ctl.errors import Mg3Error
from rtls_ctl.mg3 import Mg3Client, config_differences, config_matches

DEVICE_CONFIG = {
    "mqtt": {
        "host": "broker.local",
        "port": 1883,
        "username": "gateway",
        "password": "secret",
        "topic": "gw/status",
    },
    "scan": {"rssi": -90, "interval": 1000},
    "common": {"ntp": "pool.ntp.org"},
    "other": {"led": True},
    "code": 200,
    "message": "Action GetConfig succeed!",
}


@pytest_asyncio.fixture
async def mg3_server(unused_tcp_port_factory):
    received: list[dict] = []
    state = {"response": DEVICE_CONFIG, "status": 200, "raw": None}

    async def set_handler(request: web.Request) -> web.Response:
        body = await request.json()
        received.append(body)
        if state["raw"] is not None:
            return web.Response(text=state["raw"], status=state["status"])
        if body["action"] == "getConfig":
            return web.json_response(state["response"], status=state["status"])
        return web.json_response({"code": 200, "message": "ok"}, status=state["status"])

    app = web.Application()
    app.router.add_post("/set", set_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    port = unused_tcp_port_factory()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    class _Device:
        host = f"127.0.0.1:{port}"
        requests = received

        @staticmethod
        def respond(payload=None, *, status: int = 200, raw: str | None = None) -> None:
            if payload is not None:
                state["response"] = payload
            state["status"] = status
            state["raw"] = raw

    try:
        yield _Device()
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_set_config_sends_only_given_sections(mg3_server):
    async with Mg3Client(mg3_server.host) as client:
        response = await client.set_config(
            mqtt={"host": "broker.local", "port": 1883},
            other={"led": True},
        )

    assert response.ok
    assert mg3_server.requests == [
        {
            "action": "SetConfig",
            "mqtt": {"host": "broker.local", "port": 1883},
            "other": {"led": True},
        }
    ]


@pytest.mark.asyncio
async def test_set_config_requires_a_section(mg3_server):
    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(ValueError):
            await client.set_config()
    assert mg3_server.requests == []


@pytest.mark.asyncio
async def test_reboot_sends_action(mg3_server):
    async with Mg3Client(mg3_server.host) as client:
        await client.reboot()

    assert mg3_server.requests == [{"action": "reboot"}]


@pytest.mark.asyncio
async def test_reboot_tolerates_dropped_connection(unused_tcp_port):
    async def set_handler(request: web.Request) -> web.Response:
        await request.json()
        request.transport.close()
        await asyncio.sleep(0.1)
        return web.Response()

    app = web.Application()
    app.router.add_post("/set", set_handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", unused_tcp_port)
    await site.start()

    try:
        async with Mg3Client(f"http://127.0.0.1:{unused_tcp_port}/") as client:
            response = await client.reboot()
    finally:
        await runner.cleanup()

    assert response.code is None


@pytest.mark.asyncio
async def test_get_config_splits_status_from_sections(mg3_server):
    async with Mg3Client(mg3_server.host) as client:
        response = await client.get_config()

    assert response.ok
    assert response.code == 200
    assert response.message == "Action GetConfig succeed!"
    assert set(response.sections) == {"mqtt", "scan", "common", "other"}
    assert response.as_dict() == DEVICE_CONFIG
    assert mg3_server.requests == [{"action": "getConfig"}]


@pytest.mark.asyncio
async def test_device_error_code_raises(mg3_server):
    mg3_server.respond({"code": 400, "message": "Bad action"})

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error) as excinfo:
            await client.get_config()

    assert excinfo.value.code == 400
    assert "Bad action" in str(excinfo.value)


@pytest.mark.asyncio
async def test_http_error_raises(mg3_server):
    mg3_server.respond(status=500, raw="boom")

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error) as excinfo:
            await client.get_config()

    assert excinfo.value.status == 500


@pytest.mark.asyncio
async def test_non_json_body_raises(mg3_server):
    mg3_server.respond(raw="<html>nope</html>")

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error):
            await client.get_config()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [204, 304])
async def test_get_config_rejects_bodyless_replies(mg3_server, status):
    mg3_server.respond(status=status, raw="")

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error):
            await client.get_config()


@pytest.mark.asyncio
async def test_get_config_rejects_redirect(mg3_server):
    mg3_server.respond(status=302, raw="moved")

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error) as excinfo:
            await client.get_config()

    assert excinfo.value.status == 302


@pytest.mark.asyncio
async def test_get_config_rejects_empty_ok_body(mg3_server):
    mg3_server.respond(raw="")

    async with Mg3Client(mg3_server.host) as client:
        with pytest.raises(Mg3Error, match="empty body"):
            await client.get_config()


@pytest.mark.asyncio
async def test_set_config_and_reboot_accept_empty_ok_body(mg3_server):
    mg3_server.respond(raw="")

    async with Mg3Client(mg3_server.host) as client:
        set_response = await client.set_config(common={"ntp": "pool.ntp.org"})
        reboot_response = await client.reboot()

    assert set_response.code is None
    assert reboot_response.code is None
    assert [request["action"] for request in mg3_server.requests] == ["SetConfig", "reboot"]


@pytest.mark.asyncio
async def test_reboot_tolerates_connection_reset(unused_tcp_port):
    requests: list[bytes] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        requests.append(await reader.readuntil(b"\r\n\r\n"))
        sock = writer.get_extra_info("socket")
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        writer.transport.abort()

    server = await asyncio.start_server(handle, "127.0.0.1", unused_tcp_port)
    try:
        async with Mg3Client(f"127.0.0.1:{unused_tcp_port}") as client:
            response = await client.reboot()
    finally:
        server.close()
        await server.wait_closed()

    assert response.code is None
    assert requests and requests[0].startswith(b"POST /set ")


@pytest.mark.asyncio
async def test_reboot_reports_unreachable_gateway(unused_tcp_port):
    async with Mg3Client(f"127.0.0.1:{unused_tcp_port}") as client:
        with pytest.raises(aiohttp.ClientConnectorError):
            await client.reboot()


def test_client_builds_set_url():
    assert Mg3Client("192.168.1.50").url == "http://192.168.1.50/set"
    assert Mg3Client("http://10.0.0.2:8080/").url == "http://10.0.0.2:8080/set"


def test_config_matches_ignores_extra_keys():
    expected = {
        "mqtt": {"host": "broker.local", "port": 1883},
        "code": 200,
        "message": "Action GetConfig succeed!",
    }

    assert config_matches(expected, DEVICE_CONFIG)


def test_config_differences_reports_paths():
    expected = {
        "mqtt": {"host": "other.local", "port": 1883, "client_id": "gw-1"},
        "scan": "flat",
        "code": 200,
    }

    assert config_differences(expected, DEVICE_CONFIG) == [
        "mqtt.host",
        "mqtt.client_id",
        "scan",
    ]
    assert not config_matches(expected, DEVICE_CONFIG)


def test_config_differences_compares_scalars_and_lists():
    assert config_differences([1, 2], [1, 2]) == []
    assert config_differences({"a": [1, 2]}, {"a": [2, 1]}) == ["a"]
    assert config_differences({}, {"anything": 1}) == []
    assert config_differences({"a": 1}, "text") == ["."]
