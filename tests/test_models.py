"""
tests/test_models.py
────────────────────
Test suite for latency_scheduler/shared/models.py

Test groups
────────────
Group 1: WorkloadEvent.from_watch_record — decoding and namespace default
Group 2: NodeRef.from_api_item           — readiness from conditions
Group 3: MetricQuery                     — probe body and window validation
Group 4: TelemetrySample / PlacementDecision invariants
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from latency_scheduler.shared.models import (
    DEFAULT_NAMESPACE,
    ChangeType,
    MetricQuery,
    NodeRef,
    PlacementDecision,
    ProbeStatus,
    TelemetrySample,
    WorkloadEvent,
)

from conftest import node_item, pod_record


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: WorkloadEvent
# ─────────────────────────────────────────────────────────────────────────────

class TestWorkloadEvent:
    def test_decodes_all_fields(self) -> None:
        record = pod_record(
            name="web-1", namespace="shop", phase="Pending",
            scheduler_name="custom", resource_version="42",
        )
        event = WorkloadEvent.from_watch_record(record)

        assert event.change_type == ChangeType.ADDED
        assert event.workload_name == "web-1"
        assert event.namespace == "shop"
        assert event.phase == "Pending"
        assert event.scheduler_name == "custom"
        assert event.resource_version == "42"

    @pytest.mark.parametrize("namespace", [None, ""])
    def test_namespace_defaults(self, namespace) -> None:
        record = pod_record(namespace=namespace)
        event = WorkloadEvent.from_watch_record(record)
        assert event.namespace == DEFAULT_NAMESPACE

    def test_missing_status_and_spec_are_empty(self) -> None:
        record = {"type": "MODIFIED", "object": {"metadata": {"name": "p"}}}
        event = WorkloadEvent.from_watch_record(record)
        assert event.phase == ""
        assert event.scheduler_name == ""

    @pytest.mark.parametrize(
        "record",
        [
            [],
            {"type": "ADDED"},
            {"type": "ADDED", "object": "pod"},
            {"type": "BOGUS", "object": {"metadata": {"name": "p"}}},
            {"object": {"metadata": {"name": "p"}}},
            {"type": "ADDED", "object": {"metadata": {}}},
            {"type": "ADDED", "object": {"metadata": "p"}},
        ],
    )
    def test_wrong_shapes_raise_value_error(self, record) -> None:
        with pytest.raises(ValueError):
            WorkloadEvent.from_watch_record(record)

    def test_is_frozen(self) -> None:
        event = WorkloadEvent.from_watch_record(pod_record())
        with pytest.raises(ValidationError):
            event.phase = "Running"


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: NodeRef
# ─────────────────────────────────────────────────────────────────────────────

class TestNodeRef:
    def test_ready_node(self) -> None:
        assert NodeRef.from_api_item(node_item("n1", ready=True)).ready is True

    def test_not_ready_node(self) -> None:
        assert NodeRef.from_api_item(node_item("n1", ready=False)).ready is False

    def test_ready_requires_exact_status_true(self) -> None:
        item = {
            "metadata": {"name": "n1"},
            "status": {"conditions": [{"type": "Ready", "status": "Unknown"}]},
        }
        assert NodeRef.from_api_item(item).ready is False

    def test_no_conditions_means_not_ready(self) -> None:
        item = {"metadata": {"name": "n1"}, "status": {}}
        node = NodeRef.from_api_item(item)
        assert node.name == "n1"
        assert node.ready is False

    def test_nameless_node_rejected(self) -> None:
        with pytest.raises(ValueError):
            NodeRef.from_api_item({"metadata": {}, "status": {}})


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: MetricQuery
# ─────────────────────────────────────────────────────────────────────────────

class TestMetricQuery:
    def test_default_request_body(self) -> None:
        query = MetricQuery(metric_id="net.http.request.time")
        body = query.request_body("node-1")

        assert body == {
            "metrics": [
                {
                    "id": "net.http.request.time",
                    "aggregations": {"time": "timeAvg", "group": "avg"},
                }
            ],
            "dataSourceType": "host",
            "start": -60,
            "end": 0,
            "sampling": 60,
            "filter": "host.hostName = 'node-1'",
        }

    def test_trailing_window(self) -> None:
        query = MetricQuery.trailing_window("cpu.used.percent", window_s=300, sampling_s=30)
        assert (query.start, query.end, query.sampling_s) == (-300, 0, 30)

    def test_empty_window_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MetricQuery(metric_id="m", start=0, end=0)

    def test_metric_id_required(self) -> None:
        with pytest.raises(ValidationError):
            MetricQuery(metric_id="")


# ─────────────────────────────────────────────────────────────────────────────
# Group 4: Sample and decision invariants
# ─────────────────────────────────────────────────────────────────────────────

class TestSampleAndDecision:
    def test_ok_sample(self) -> None:
        sample = TelemetrySample.ok("n1", 3.5, elapsed_ms=12.0)
        assert sample.is_ok
        assert sample.status == ProbeStatus.OK
        assert sample.value == 3.5
        assert sample.cause is None

    def test_failed_sample(self) -> None:
        sample = TelemetrySample.failed("n1", "timeout")
        assert not sample.is_ok
        assert sample.value is None
        assert sample.cause == "timeout"

    def test_ok_without_value_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TelemetrySample(node_name="n1", status=ProbeStatus.OK)

    def test_failed_without_cause_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TelemetrySample(node_name="n1", status=ProbeStatus.FAILED)

    def test_decision_namespace_defaults(self) -> None:
        decision = PlacementDecision(workload_name="pod-a", target_node="node-1", namespace="")
        assert decision.namespace == "default"
