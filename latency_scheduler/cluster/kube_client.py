"""
HTTP client for the orchestrator (Kubernetes core/v1) API.

Thin: it knows the handful of paths the scheduler uses and how to build an
authenticated httpx.AsyncClient from KubeCredentials. Decoding and error
policy belong to the callers (inventory, event stream, binder).
"""

from __future__ import annotations

import logging
from typing import Any, AsyncContextManager, Dict, Optional

import httpx

from latency_scheduler.cluster.kubeconfig import KubeCredentials

logger = logging.getLogger(__name__)

NODES_PATH = "/api/v1/nodes"
ALL_PODS_PATH = "/api/v1/pods"


def namespaced_pods_path(namespace: str) -> str:
    return f"/api/v1/namespaces/{namespace}/pods"


def namespaced_bindings_path(namespace: str) -> str:
    return f"/api/v1/namespaces/{namespace}/bindings"


class KubeApiClient:
    """
    Shared connection to the API server.

    One instance is created at startup and reused by every component so
    that the watch, the node listing and the bindings share a connection
    pool.

    Example:
        >>> api = KubeApiClient.from_credentials(load_kubeconfig("~/.kube/config"))
        >>> nodes = await api.get_json(NODES_PATH)
        >>> await api.close()
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    @classmethod
    def from_credentials(cls, credentials: KubeCredentials, timeout: float = 30.0) -> "KubeApiClient":
        http = httpx.AsyncClient(
            base_url=credentials.server,
            headers=credentials.headers(),
            auth=credentials.auth(),
            verify=credentials.ssl_context(),
            timeout=timeout,
        )
        return cls(http)

    async def close(self) -> None:
        await self.http.aclose()

    async def get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        """
        GET `path` and decode the JSON body.

        Raises:
            httpx.HTTPStatusError: non-2xx response.
            httpx.RequestError:    transport failure.
            ValueError:            body is not JSON.
        """
        response = await self.http.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def post_json(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        """POST a JSON body. The response is returned unchecked."""
        return await self.http.post(path, json=body)

    def watch(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        connect_timeout_s: float = 10.0,
    ) -> AsyncContextManager[httpx.Response]:
        """
        Open a long-lived watch on `path`.

        Returns the httpx streaming context manager; the read timeout is
        disabled because a quiet watch is not a dead one. Connect, write
        and pool waits are bounded by `connect_timeout_s`.
        """
        query = {"watch": "true"}
        if params:
            query.update(params)
        timeout = httpx.Timeout(connect_timeout_s, read=None)
        return self.http.stream("GET", path, params=query, timeout=timeout)
