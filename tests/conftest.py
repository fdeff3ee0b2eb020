"""
tests/conftest.py
─────────────────
Shared fakes: an in-memory orchestrator API and telemetry backend, both
served through httpx.MockTransport so the real clients run unmodified.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from latency_scheduler.cluster.kube_client import KubeApiClient
from latency_scheduler.telemetry.sysdig_client import SysdigClient

KUBE_URL = "https://k8s.test"
SYSDIG_URL = "https://sysdig.test"


# ─────────────────────────────────────────────────────────────────────────────
# Record builders
# ─────────────────────────────────────────────────────────────────────────────

def pod_record(
    name: str = "pod-a",
    change_type: str = "ADDED",
    phase: str = "Pending",
    scheduler_name: str = "latency-scheduler",
    namespace: Optional[str] = None,
    resource_version: Optional[str] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": name}
    if namespace is not None:
        metadata["namespace"] = namespace
    if resource_version is not None:
        metadata["resourceVersion"] = resource_version
    return {
        "type": change_type,
        "object": {
            "metadata": metadata,
            "status": {"phase": phase},
            "spec": {"schedulerName": scheduler_name},
        },
    }


def node_item(name: str, ready: bool = True) -> Dict[str, Any]:
    return {
        "metadata": {"name": name},
        "status": {
            "conditions": [
                {"type": "MemoryPressure", "status": "False"},
                {"type": "Ready", "status": "True" if ready else "False"},
            ]
        },
    }


def watch_body(*records: Union[Dict[str, Any], str]) -> bytes:
    """Newline-delimited watch body; str entries are written verbatim."""
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    return ("\n".join(lines) + "\n").encode()


def host_of(request: httpx.Request) -> str:
    """Node name from the per-host filter of a telemetry query."""
    body = json.loads(request.content)
    return body["filter"].split("'")[1]


# ─────────────────────────────────────────────────────────────────────────────
# Fake orchestrator
# ─────────────────────────────────────────────────────────────────────────────

class FakeCluster:
    """
    Minimal core/v1 API.

    Attributes:
        nodes:          items returned by GET /api/v1/nodes.
        nodes_status:   status code of the node list (200 by default).
        bind_status:    status code answered to binding POSTs.
        bindings:       (path, body) of every binding POST received.
        watch_script:   responses served to successive watch requests; an
                        Exception entry is raised as a transport error.
        watch_requests: every watch request received.
    """

    def __init__(self) -> None:
        self.nodes: List[Dict[str, Any]] = []
        self.nodes_status: int = 200
        self.node_requests: int = 0
        self.bind_status: int = 201
        self.bindings: List[tuple] = []
        self.watch_script: List[Union[httpx.Response, Exception]] = []
        self.watch_requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/v1/nodes":
            self.node_requests += 1
            if self.nodes_status != 200:
                return httpx.Response(self.nodes_status, json={"kind": "Status"})
            return httpx.Response(200, json={"kind": "NodeList", "items": self.nodes})
        if request.method == "POST" and path.endswith("/bindings"):
            self.bindings.append((path, json.loads(request.content)))
            return httpx.Response(self.bind_status, json={"kind": "Status"})
        if request.method == "GET" and request.url.params.get("watch") == "true":
            self.watch_requests.append(request)
            if not self.watch_script:
                return httpx.Response(500, text="no more scripted watches")
            item = self.watch_script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return httpx.Response(404, text=f"unexpected {request.method} {path}")

    def api(self) -> KubeApiClient:
        return KubeApiClient(
            httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url=KUBE_URL)
        )


# ─────────────────────────────────────────────────────────────────────────────
# Fake telemetry backend
# ─────────────────────────────────────────────────────────────────────────────

class FakeSysdig:
    """
    Answers data queries from a node → value map.

    A value may also be an httpx.Response (served as is), an Exception
    (raised as a transport error) or the string "hang" (never answers within
    any reasonable deadline). A node missing from the map gets empty data.

    Attributes:
        requests:      bodies of every query received.
        in_flight:     queries currently being served.
        max_in_flight: peak of in_flight.
        completed:     queries fully answered.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, delay: float = 0.0) -> None:
        self.values: Dict[str, Any] = dict(values or {})
        self.delay = delay
        self.requests: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.completed = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        node = host_of(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            value = self.values.get(node)
            if value == "hang":
                await asyncio.sleep(3600)
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(value, Exception):
                raise value
            if isinstance(value, httpx.Response):
                return value
            if value is None:
                return httpx.Response(200, json={"data": []})
            return httpx.Response(200, json={"data": [{"t": 0, "d": [value]}]})
        finally:
            self.in_flight -= 1
            self.completed += 1

    def client(self) -> SysdigClient:
        return SysdigClient(
            httpx.AsyncClient(
                transport=httpx.MockTransport(self.handler),
                base_url=SYSDIG_URL,
                headers={"Authorization": "Bearer test-token"},
            )
        )


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def make_sysdig() -> Callable[..., FakeSysdig]:
    return FakeSysdig
