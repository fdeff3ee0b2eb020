"""
latency_scheduler/shared/models.py
──────────────────────────────────
The single source of truth for every data structure the scheduler passes
between its components.

Design philosophy
-----------------
Every model answers one question: "What does the scheduler *need to know*
about this thing in order to place one pending workload?"

Everything here is attempt-scoped. A WorkloadEvent is decoded from one line
of the watch stream, a NodeRef snapshot is taken when the event turns out
to be actionable, one TelemetrySample is produced per probed node, and at
most one PlacementDecision comes out the other end. Nothing is cached
across events, so every model is frozen.

Reading guide
-------------
Read top-to-bottom. Each model builds on the ones above it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


DEFAULT_NAMESPACE: str = "default"
"""Namespace used when an event or a decision does not carry one."""

PENDING_PHASE: str = "Pending"
"""Pod phase of a workload that still waits for a node."""


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: ENUMERATIONS
# ─────────────────────────────────────────────────────────────────────────────

class ChangeType(str, Enum):
    """
    Kind of change a watch record reports for a workload.

    The values are the literal strings the orchestrator writes into the
    `type` field of each watch record. Only ADDED events are ever acted on;
    the others are decoded so the stream can track its resume point.
    """
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class ProbeStatus(str, Enum):
    """
    Outcome of one telemetry probe.

    OK      → the backend returned a numeric value for the node.
    FAILED  → transport error, bad status, undecodable body, empty data
              or deadline expiry. The node is excluded from this attempt.
    """
    OK = "ok"
    FAILED = "failed"


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: WATCH EVENTS
# What the orchestrator tells us about workloads.
# ─────────────────────────────────────────────────────────────────────────────

def _section(container: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return a nested object from a raw record, treating null as empty."""
    value = container.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected an object for {key!r}, got {type(value).__name__}")
    return value


class WorkloadEvent(BaseModel):
    """
    One decoded workload lifecycle notification.

    Fields:
        change_type      → ADDED / MODIFIED / DELETED.
        workload_name    → metadata.name of the pod.
        namespace        → metadata.namespace, "default" when missing or empty.
        phase            → status.phase, e.g. "Pending" or "Running".
        scheduler_name   → spec.schedulerName the pod asked for.
        resource_version → metadata.resourceVersion. Used only to resume the
                           watch after a reconnect.
    """
    model_config = ConfigDict(frozen=True)

    change_type: ChangeType
    workload_name: str = Field(..., min_length=1)
    namespace: str = DEFAULT_NAMESPACE
    phase: str = ""
    scheduler_name: str = ""
    resource_version: Optional[str] = None

    @field_validator("namespace", mode="before")
    @classmethod
    def _default_namespace(cls, value: Optional[str]) -> str:
        return value or DEFAULT_NAMESPACE

    @classmethod
    def from_watch_record(cls, record: Any) -> "WorkloadEvent":
        """
        Build an event from a decoded watch record.

        Expected shape:
            {"type": "ADDED",
             "object": {"metadata": {"name", "namespace", "resourceVersion"},
                        "status": {"phase"},
                        "spec": {"schedulerName"}}}

        Raises:
            ValueError: the record does not have that shape. pydantic's
                        ValidationError is a ValueError, so callers only
                        need one except clause.
        """
        if not isinstance(record, dict):
            raise ValueError(f"watch record must be an object, got {type(record).__name__}")
        obj = record.get("object")
        if not isinstance(obj, dict):
            raise ValueError("watch record has no 'object'")

        metadata = _section(obj, "metadata")
        status = _section(obj, "status")
        spec = _section(obj, "spec")

        return cls(
            change_type=record.get("type"),
            workload_name=metadata.get("name"),
            namespace=metadata.get("namespace"),
            phase=status.get("phase") or "",
            scheduler_name=spec.get("schedulerName") or "",
            resource_version=metadata.get("resourceVersion"),
        )


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: NODE INVENTORY
# ─────────────────────────────────────────────────────────────────────────────

class NodeRef(BaseModel):
    """
    A node as seen in one inventory snapshot.

    `ready` mirrors the orchestrator's own health verdict: True iff the node
    reports a condition with type "Ready" and status "True". The scheduler
    never computes health itself.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    ready: bool = False

    @classmethod
    def from_api_item(cls, item: Any) -> "NodeRef":
        """Build a NodeRef from one entry of the node list `items` array."""
        if not isinstance(item, dict):
            raise ValueError(f"node item must be an object, got {type(item).__name__}")
        metadata = _section(item, "metadata")
        status = _section(item, "status")

        conditions = status.get("conditions") or []
        if not isinstance(conditions, list):
            raise ValueError("status.conditions must be a list")
        ready = any(
            isinstance(cond, dict)
            and cond.get("type") == "Ready"
            and cond.get("status") == "True"
            for cond in conditions
        )
        return cls(name=metadata.get("name"), ready=ready)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: TELEMETRY
# What we ask the metrics backend and what we get back.
# ─────────────────────────────────────────────────────────────────────────────

class MetricQuery(BaseModel):
    """
    How a single node is probed.

    The defaults reproduce the classic probe: the last 60 seconds, one
    sample point with a 60 second sampling interval, time-averaged and
    group-averaged, at host scope.

    Fields:
        metric_id            → backend metric identifier, e.g.
                               "net.http.request.time".
        time_aggregation     → aggregation over time within the window.
        group_aggregation    → aggregation across the entities of the scope.
        start / end          → relative window bounds in seconds (end=0 is now).
        sampling_s           → sampling interval in seconds.
        datasource_type      → query scope; always "host" for node probes.
        host_filter_template → per-host filter with a {node} placeholder.
    """
    model_config = ConfigDict(frozen=True)

    metric_id: str = Field(..., min_length=1)
    time_aggregation: str = "timeAvg"
    group_aggregation: str = "avg"
    start: int = Field(-60, le=0)
    end: int = Field(0, le=0)
    sampling_s: int = Field(60, gt=0)
    datasource_type: str = "host"
    host_filter_template: str = "host.hostName = '{node}'"

    @model_validator(mode="after")
    def _check_window(self) -> "MetricQuery":
        if self.start >= self.end:
            raise ValueError(f"window start ({self.start}) must be before end ({self.end})")
        return self

    @classmethod
    def trailing_window(cls, metric_id: str, window_s: int = 60, sampling_s: int = 60) -> "MetricQuery":
        """A query over the last `window_s` seconds ending now."""
        return cls(metric_id=metric_id, start=-window_s, end=0, sampling_s=sampling_s)

    def host_filter(self, node_name: str) -> str:
        return self.host_filter_template.format(node=node_name)

    def metrics_payload(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": self.metric_id,
                "aggregations": {
                    "time": self.time_aggregation,
                    "group": self.group_aggregation,
                },
            }
        ]

    def request_body(self, node_name: str) -> Dict[str, Any]:
        """JSON body of the data query for one node."""
        return {
            "metrics": self.metrics_payload(),
            "dataSourceType": self.datasource_type,
            "start": self.start,
            "end": self.end,
            "sampling": self.sampling_s,
            "filter": self.host_filter(node_name),
        }


class TelemetrySample(BaseModel):
    """
    Result of probing one node during one scheduling attempt.

    Exactly one sample exists per probed node. `value` is set iff the probe
    succeeded; `cause` is set iff it failed.
    """
    model_config = ConfigDict(frozen=True)

    node_name: str
    status: ProbeStatus
    value: Optional[float] = None
    cause: Optional[str] = None
    elapsed_ms: float = Field(0.0, ge=0.0)

    @model_validator(mode="after")
    def _check_outcome(self) -> "TelemetrySample":
        if self.status == ProbeStatus.OK and self.value is None:
            raise ValueError("an OK sample must carry a value")
        if self.status == ProbeStatus.FAILED and not self.cause:
            raise ValueError("a FAILED sample must carry a cause")
        return self

    @classmethod
    def ok(cls, node_name: str, value: float, elapsed_ms: float = 0.0) -> "TelemetrySample":
        return cls(node_name=node_name, status=ProbeStatus.OK, value=value, elapsed_ms=elapsed_ms)

    @classmethod
    def failed(cls, node_name: str, cause: str, elapsed_ms: float = 0.0) -> "TelemetrySample":
        return cls(node_name=node_name, status=ProbeStatus.FAILED, cause=cause, elapsed_ms=elapsed_ms)

    @property
    def is_ok(self) -> bool:
        return self.status == ProbeStatus.OK


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 5: PLACEMENT
# ─────────────────────────────────────────────────────────────────────────────

class PlacementDecision(BaseModel):
    """
    Where one workload goes. Built by the control loop from the decision
    engine's pick and handed to the Binder exactly once.
    """
    model_config = ConfigDict(frozen=True)

    workload_name: str = Field(..., min_length=1)
    target_node: str = Field(..., min_length=1)
    namespace: str = DEFAULT_NAMESPACE
    value: Optional[float] = Field(
        None,
        description="Metric value that won the decision. Informational only."
    )

    @field_validator("namespace", mode="before")
    @classmethod
    def _default_namespace(cls, value: Optional[str]) -> str:
        return value or DEFAULT_NAMESPACE


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 6: CONVENIENCE TYPE ALIASES
# ─────────────────────────────────────────────────────────────────────────────

# All samples collected during one attempt, one per distinct node
SampleSet = List[TelemetrySample]
