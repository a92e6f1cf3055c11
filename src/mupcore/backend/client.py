"""Backend client: forwards RPC calls to the sidecar over loopback HTTP.

The backend's address is never configured: every call reads the port the
sidecar most recently announced, so a restarted backend is picked up
without reconnect logic here.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from mupcore.backend.sidecar import SidecarSupervisor
from mupcore.errors import BackendCallError, BackendTimeoutError, BackendUnavailableError

logger = logging.getLogger(__name__)

RPC_PREFIX = "/orpc"


@retry(
    retry=retry_if_exception_type((httpx.ConnectError, httpx.RemoteProtocolError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _post_with_retry(
    client: httpx.AsyncClient, url: str, body: Any
) -> httpx.Response:
    """POST with retry on connection-level failures."""
    return await client.post(url, json=body)


class BackendClient:
    """Thin forwarding layer in front of the backend's RPC endpoint."""

    def __init__(self, sidecar: SidecarSupervisor, timeout: float = 30.0) -> None:
        self._sidecar = sidecar
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _url(self, operation: str, path: str) -> str:
        base_url = self._sidecar.base_url()
        if base_url is None:
            raise BackendUnavailableError(operation, "backend has not announced a port")
        return f"{base_url}{RPC_PREFIX}/{path.lstrip('/')}"

    async def forward_call(self, method: str, params: Any = None) -> Any:
        """Forward one RPC call and return the decoded JSON result.

        Args:
            method: RPC method name (e.g. "getProjects").
            params: JSON-serializable parameters; ``{}`` when omitted.
        """
        operation = f"forward_rpc_call({method})"
        url = self._url(operation, method)
        body = params if params is not None else {}

        try:
            response = await _post_with_retry(self._ensure_client(), url, body)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(operation, f"request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise BackendUnavailableError(operation, f"request to {url} failed: {e}") from e

        if not response.is_success:
            raise BackendCallError(operation, response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise BackendCallError(
                operation, response.status_code, f"invalid JSON response: {e}"
            ) from e

    async def check_server(self) -> bool:
        """Whether the RPC endpoint answers its health route."""
        try:
            url = self._url("check_rpc_server", "health")
        except BackendUnavailableError:
            return False
        try:
            response = await self._ensure_client().get(url)
        except httpx.HTTPError as e:
            logger.debug("RPC health check failed: %s", e)
            return False
        return response.is_success

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
