"""
Node inventory: which nodes may receive a workload right now.

The orchestrator owns node health. This module only reads its verdict
(the Ready condition) and hands the control loop a point-in-time snapshot;
nothing is cached between events.
"""

from __future__ import annotations

import logging
from typing import List

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from latency_scheduler.cluster.kube_client import NODES_PATH, KubeApiClient
from latency_scheduler.shared.models import NodeRef

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Raised when the node list cannot be fetched or decoded."""


class NodeInventory:
    """Reads the node list from the orchestrator API."""

    def __init__(self, api: KubeApiClient) -> None:
        self._api = api

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch(self) -> object:
        return await self._api.get_json(NODES_PATH)

    async def list_nodes(self) -> List[NodeRef]:
        """
        Return every node with its readiness.

        Connect errors and timeouts are retried (3 attempts); anything else
        fails straight away.

        Raises:
            InventoryError: transport failure, non-2xx status or a body that
                            is not {"items": [...]}.
        """
        try:
            payload = await self._fetch()
        except httpx.HTTPStatusError as e:
            raise InventoryError(f"node list returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise InventoryError(f"node list request failed: {e}") from e
        except ValueError as e:
            raise InventoryError(f"node list is not JSON: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
            raise InventoryError("node list has no 'items' array")

        try:
            return [NodeRef.from_api_item(item) for item in payload["items"]]
        except ValueError as e:
            raise InventoryError(f"malformed node entry: {e}") from e

    async def ready_node_names(self) -> List[str]:
        """Names of the nodes whose Ready condition is True, in API order."""
        nodes = await self.list_nodes()
        ready = [node.name for node in nodes if node.ready]
        logger.debug("Inventory: %d/%d nodes ready", len(ready), len(nodes))
        return ready
