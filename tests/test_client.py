"""Tests for mupcore.backend.client (BackendClient) using respx."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from mupcore.backend.client import BackendClient
from mupcore.backend.sidecar import SidecarSupervisor
from mupcore.errors import BackendCallError, BackendTimeoutError, BackendUnavailableError

BASE = "http://127.0.0.1:4000"


@pytest.fixture
async def client():
    sidecar = SidecarSupervisor()
    await sidecar._publish_port(4000, generation=0)
    backend = BackendClient(sidecar, timeout=5.0)
    yield backend
    await backend.aclose()


class TestForwardCall:
    async def test_posts_params_to_method(self, client: BackendClient) -> None:
        with respx.mock:
            route = respx.post(f"{BASE}/orpc/getProjects").mock(
                return_value=httpx.Response(200, json={"projects": ["a", "b"]})
            )
            result = await client.forward_call("getProjects", {"limit": 2})
            assert result == {"projects": ["a", "b"]}
            assert json.loads(route.calls.last.request.content) == {"limit": 2}

    async def test_empty_params_default(self, client: BackendClient) -> None:
        with respx.mock:
            route = respx.post(f"{BASE}/orpc/ping").mock(
                return_value=httpx.Response(200, json=True)
            )
            assert await client.forward_call("ping") is True
            assert json.loads(route.calls.last.request.content) == {}

    async def test_unknown_port(self) -> None:
        backend = BackendClient(SidecarSupervisor())
        with respx.mock(assert_all_called=False) as mock:
            with pytest.raises(BackendUnavailableError):
                await backend.forward_call("getProjects")
            assert mock.calls.call_count == 0

    async def test_error_status(self, client: BackendClient) -> None:
        with respx.mock:
            respx.post(f"{BASE}/orpc/createProject").mock(
                return_value=httpx.Response(500, text="database locked")
            )
            with pytest.raises(BackendCallError) as exc_info:
                await client.forward_call("createProject", {"name": "x"})
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "database locked"
        assert "createProject" in str(exc_info.value)

    async def test_invalid_json(self, client: BackendClient) -> None:
        with respx.mock:
            respx.post(f"{BASE}/orpc/getProjects").mock(
                return_value=httpx.Response(200, text="<html>")
            )
            with pytest.raises(BackendCallError):
                await client.forward_call("getProjects")

    async def test_timeout(self, client: BackendClient) -> None:
        with respx.mock:
            respx.post(f"{BASE}/orpc/slow").mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(BackendTimeoutError) as exc_info:
                await client.forward_call("slow")
        assert exc_info.value.kind == "timeout"

    async def test_retries_connection_error(self, client: BackendClient) -> None:
        with respx.mock:
            route = respx.post(f"{BASE}/orpc/getProjects").mock(
                side_effect=[
                    httpx.ConnectError("refused"),
                    httpx.Response(200, json=[]),
                ]
            )
            assert await client.forward_call("getProjects") == []
            assert route.call_count == 2

    async def test_gives_up_after_3_attempts(self, client: BackendClient) -> None:
        with respx.mock:
            route = respx.post(f"{BASE}/orpc/getProjects").mock(
                side_effect=httpx.ConnectError("refused")
            )
            with pytest.raises(BackendUnavailableError):
                await client.forward_call("getProjects")
            assert route.call_count == 3


class TestCheckServer:
    async def test_healthy(self, client: BackendClient) -> None:
        with respx.mock:
            respx.get(f"{BASE}/orpc/health").mock(return_value=httpx.Response(200))
            assert await client.check_server() is True

    async def test_unhealthy_status(self, client: BackendClient) -> None:
        with respx.mock:
            respx.get(f"{BASE}/orpc/health").mock(return_value=httpx.Response(500))
            assert await client.check_server() is False

    async def test_connection_error(self, client: BackendClient) -> None:
        with respx.mock:
            respx.get(f"{BASE}/orpc/health").mock(
                side_effect=httpx.ConnectError("refused")
            )
            assert await client.check_server() is False

    async def test_unknown_port(self) -> None:
        assert await BackendClient(SidecarSupervisor()).check_server() is False
