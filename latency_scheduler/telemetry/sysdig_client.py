"""HTTP client for the telemetry backend's data query API."""

from __future__ import annotations

import logging
import math

import httpx

from latency_scheduler.shared.models import MetricQuery

logger = logging.getLogger(__name__)

DATA_PATH = "/api/data/"


class TelemetryProbeError(Exception):
    """
    Raised when one node's metric could not be obtained.

    Recoverable: the node is excluded from the current attempt only.

    Attributes:
        node_name: The node whose probe failed.
        cause:     Short reason, also used as the sample's failure cause.
    """

    def __init__(self, node_name: str, cause: str) -> None:
        self.node_name = node_name
        self.cause = cause
        super().__init__(f"probe of node {node_name!r} failed: {cause}")


class SysdigClient:
    """
    Queries one metric value per host.

    The request body carries the metric with its aggregations, the relative
    window, the sampling interval, the per-host filter and the "host" scope;
    the answer is {"data": [{"d": [value, ...]}, ...]} and the first element
    of the first row is the node's value.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_token(cls, base_url: str, token: str, timeout: float = 5.0) -> "SysdigClient":
        http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=timeout,
            limits=httpx.Limits(max_connections=64, max_keepalive_connections=32),
        )
        return cls(http)

    async def close(self) -> None:
        await self._http.aclose()

    async def get_value(self, query: MetricQuery, node_name: str) -> float:
        """
        Return the metric value of `node_name` over the query window.

        Raises:
            TelemetryProbeError: transport failure, timeout, non-200 status,
                                 undecodable body or no data points.
        """
        try:
            response = await self._http.post(DATA_PATH, json=query.request_body(node_name))
        except httpx.TimeoutException as e:
            raise TelemetryProbeError(node_name, "timeout") from e
        except httpx.RequestError as e:
            raise TelemetryProbeError(node_name, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise TelemetryProbeError(node_name, f"metric data response: HTTP {response.status_code}")

        try:
            payload = response.json()
            rows = payload.get("data") or []
            points = (rows[0].get("d") or []) if rows else []
            if not points:
                raise TelemetryProbeError(node_name, "no data found with those parameters")
            value = float(points[0])
        except TelemetryProbeError:
            raise
        except (ValueError, TypeError, AttributeError, IndexError) as e:
            raise TelemetryProbeError(node_name, f"undecodable metric data: {e}") from e

        if not math.isfinite(value):
            raise TelemetryProbeError(node_name, f"non-finite metric value {value}")
        return value
