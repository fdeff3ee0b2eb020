"""
latency_scheduler/control_plane/binder.py
─────────────────────────────────────────
Binder: turns a PlacementDecision into a Binding on the orchestrator.

What it does NOT do
────────────────────
  • No retries. A rejected binding is logged by the caller and the attempt
    ends; the orchestrator resends the pod if it wants it scheduled.
  • No verification that the pod actually landed on the node.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from latency_scheduler.cluster.kube_client import KubeApiClient, namespaced_bindings_path
from latency_scheduler.shared.models import DEFAULT_NAMESPACE, PlacementDecision

logger = logging.getLogger(__name__)

# Longest response body excerpt carried by BindError
_BODY_EXCERPT = 300


class BindError(Exception):
    """
    Raised when the orchestrator did not accept the binding.

    Attributes:
        decision:    The decision that could not be applied.
        status_code: HTTP status, None for transport failures.
        detail:      Response body excerpt or transport error text.
    """

    def __init__(self, decision: PlacementDecision, status_code: Optional[int], detail: str) -> None:
        self.decision = decision
        self.status_code = status_code
        self.detail = detail
        where = f"HTTP {status_code}" if status_code is not None else "transport error"
        super().__init__(
            f"binding {decision.namespace}/{decision.workload_name} -> "
            f"{decision.target_node} failed ({where}): {detail}"
        )


def build_binding_body(workload_name: str, node_name: str) -> Dict[str, Any]:
    """The JSON body of a core/v1 Binding."""
    return {
        "target": {
            "kind": "Node",
            "apiVersion": "v1",
            "name": node_name,
        },
        "metadata": {
            "name": workload_name,
        },
    }


class Binder:
    """Submits bindings through the shared orchestrator API client."""

    def __init__(self, api: KubeApiClient) -> None:
        self._api = api

    async def bind(self, decision: PlacementDecision) -> None:
        """
        POST the binding for `decision`.

        Raises:
            BindError: transport failure or non-2xx status.
        """
        namespace = decision.namespace or DEFAULT_NAMESPACE
        body = build_binding_body(decision.workload_name, decision.target_node)
        try:
            response = await self._api.post_json(namespaced_bindings_path(namespace), body)
        except httpx.RequestError as e:
            raise BindError(decision, None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise BindError(decision, response.status_code, response.text[:_BODY_EXCERPT])

        logger.info(
            "Bound %s/%s -> %s", namespace, decision.workload_name, decision.target_node,
        )
