"""
latency_scheduler/cluster — everything that talks to the orchestrator API.

Public API:
    KubeApiClient    — shared authenticated httpx client
    NodeInventory    — ready-node snapshot
    WatchStream      — reconnecting pod watch
    is_actionable    — the event filter predicate
"""

from latency_scheduler.cluster.event_stream import (
    StreamDecodeError,
    StreamTerminated,
    WatchStream,
    is_actionable,
)
from latency_scheduler.cluster.inventory import InventoryError, NodeInventory
from latency_scheduler.cluster.kube_client import KubeApiClient
from latency_scheduler.cluster.kubeconfig import (
    KubeConfigError,
    KubeCredentials,
    load_incluster_credentials,
    load_kubeconfig,
)

__all__ = [
    "KubeApiClient",
    "KubeConfigError",
    "KubeCredentials",
    "load_kubeconfig",
    "load_incluster_credentials",
    "NodeInventory",
    "InventoryError",
    "WatchStream",
    "StreamDecodeError",
    "StreamTerminated",
    "is_actionable",
]
