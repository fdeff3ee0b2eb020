"""
tests/test_collector.py
───────────────────────
Test suite for latency_scheduler/telemetry/collector.py and the
telemetry client it drives.

What we are testing
────────────────────
collect() issues exactly one probe per distinct node, returns only after
every probe has reported, keeps a failed probe from affecting its
siblings, and never lets a stuck probe hold up the result.

Test groups
────────────
Group 1: input validation  — empty input, duplicates
Group 2: fan-out and barrier
Group 3: failure isolation — HTTP errors, transport errors, empty data, hangs
Group 4: request shape     — the body sent to the backend
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from latency_scheduler.shared.models import MetricQuery, ProbeStatus
from latency_scheduler.telemetry.collector import (
    TIMEOUT_CAUSE,
    InputError,
    TelemetryCollector,
)

METRIC = "net.http.request.time"


def _collector(sysdig, **kwargs) -> TelemetryCollector:
    return TelemetryCollector(sysdig.client(), MetricQuery(metric_id=METRIC), **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: Input validation
# ─────────────────────────────────────────────────────────────────────────────

class TestInput:
    def test_empty_input_raises_without_probing(self, make_sysdig) -> None:
        sysdig = make_sysdig()
        collector = _collector(sysdig)

        with pytest.raises(InputError):
            asyncio.run(collector.collect([]))

        assert sysdig.requests == []
        assert collector.probes_issued == 0

    def test_duplicates_probed_once(self, make_sysdig) -> None:
        sysdig = make_sysdig({"a": 1.0, "b": 2.0})
        samples = asyncio.run(_collector(sysdig).collect(["a", "b", "a", "a"]))

        assert [s.node_name for s in samples] == ["a", "b"]
        assert len(sysdig.requests) == 2

    def test_non_positive_probe_timeout_rejected(self, make_sysdig) -> None:
        with pytest.raises(ValueError):
            _collector(make_sysdig(), probe_timeout_s=0)


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: Fan-out and barrier
# ─────────────────────────────────────────────────────────────────────────────

class TestFanOut:
    def test_one_probe_per_node_and_full_barrier(self, make_sysdig) -> None:
        nodes = [f"node-{i}" for i in range(10)]
        sysdig = make_sysdig({n: float(i) for i, n in enumerate(nodes)}, delay=0.05)
        collector = _collector(sysdig)

        samples = asyncio.run(collector.collect(nodes))

        assert len(sysdig.requests) == 10
        assert sysdig.completed == 10
        assert sysdig.in_flight == 0
        # all ten were in flight together: nothing waited for a sibling
        assert sysdig.max_in_flight == 10
        assert [s.node_name for s in samples] == nodes
        assert all(s.status == ProbeStatus.OK for s in samples)
        assert collector.probes_issued == 10

    def test_concurrency_is_bounded(self, make_sysdig) -> None:
        nodes = [f"node-{i}" for i in range(10)]
        sysdig = make_sysdig({n: 1.0 for n in nodes}, delay=0.02)

        samples = asyncio.run(_collector(sysdig, max_concurrent_probes=3).collect(nodes))

        assert len(samples) == 10
        assert sysdig.max_in_flight == 3

    def test_zero_means_unbounded(self, make_sysdig) -> None:
        nodes = [f"node-{i}" for i in range(40)]
        sysdig = make_sysdig({n: 1.0 for n in nodes}, delay=0.02)

        asyncio.run(_collector(sysdig, max_concurrent_probes=0).collect(nodes))

        assert sysdig.max_in_flight == 40

    def test_values_are_carried(self, make_sysdig) -> None:
        sysdig = make_sysdig({"A": 5.0, "B": 3.0, "C": 8.0})
        samples = asyncio.run(_collector(sysdig).collect(["A", "B", "C"]))
        assert {s.node_name: s.value for s in samples} == {"A": 5.0, "B": 3.0, "C": 8.0}


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: Failure isolation
# ─────────────────────────────────────────────────────────────────────────────

class TestFailureIsolation:
    def test_each_failure_kind_becomes_a_failed_sample(self, make_sysdig) -> None:
        sysdig = make_sysdig({
            "ok": 2.5,
            "http-error": httpx.Response(503, text="unavailable"),
            "refused": httpx.ConnectError("connection refused"),
            "garbled": httpx.Response(200, content=b'{"data": [{"t": 0, "d": [null]}]}'),
            # "empty" is absent from the map: the backend answers with no data
        })
        samples = asyncio.run(
            _collector(sysdig).collect(["ok", "http-error", "refused", "garbled", "empty"])
        )
        by_node = {s.node_name: s for s in samples}

        assert by_node["ok"].is_ok
        assert by_node["ok"].value == 2.5
        assert by_node["http-error"].cause == "metric data response: HTTP 503"
        assert by_node["refused"].cause.startswith("ConnectError")
        assert by_node["garbled"].cause.startswith("undecodable metric data")
        assert by_node["empty"].cause == "no data found with those parameters"

    def test_hanging_probe_times_out_alone(self, make_sysdig) -> None:
        sysdig = make_sysdig({"fast": 1.0, "stuck": "hang", "other": 4.0})
        samples = asyncio.run(
            _collector(sysdig, probe_timeout_s=0.1).collect(["fast", "stuck", "other"])
        )
        by_node = {s.node_name: s for s in samples}

        assert by_node["stuck"].status == ProbeStatus.FAILED
        assert by_node["stuck"].cause == TIMEOUT_CAUSE
        assert by_node["fast"].value == 1.0
        assert by_node["other"].value == 4.0

    def test_all_failed_still_returns_every_sample(self, make_sysdig) -> None:
        sysdig = make_sysdig({n: httpx.Response(500) for n in ("a", "b", "c")})
        samples = asyncio.run(_collector(sysdig).collect(["a", "b", "c"]))

        assert len(samples) == 3
        assert not any(s.is_ok for s in samples)

    def test_failures_are_logged(self, make_sysdig, caplog) -> None:
        sysdig = make_sysdig({"a": httpx.Response(500)})
        with caplog.at_level("WARNING", logger="latency_scheduler"):
            asyncio.run(_collector(sysdig).collect(["a"]))
        assert 'Error retrieving node "a"' in caplog.text


# ─────────────────────────────────────────────────────────────────────────────
# Group 4: Request shape
# ─────────────────────────────────────────────────────────────────────────────

class TestRequestShape:
    def test_body_targets_one_host(self, make_sysdig) -> None:
        sysdig = make_sysdig({"node-1": 1.0})
        query = MetricQuery(metric_id=METRIC)
        collector = TelemetryCollector(sysdig.client(), query)

        asyncio.run(collector.collect(["node-1"]))

        assert sysdig.requests == [query.request_body("node-1")]
        body = sysdig.requests[0]
        assert body["filter"] == "host.hostName = 'node-1'"
        assert body["dataSourceType"] == "host"
        assert (body["start"], body["end"], body["sampling"]) == (-60, 0, 60)
        assert body["metrics"][0]["aggregations"] == {"time": "timeAvg", "group": "avg"}
