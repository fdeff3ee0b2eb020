"""
latency_scheduler/telemetry/collector.py
────────────────────────────────────────
TelemetryCollector: one metric probe per candidate node, all at once.

What this is
─────────────
The scheduler has no model of its own of how loaded a node is. For every
scheduling attempt it asks the telemetry backend, per ready node, for the
value of a single metric over a short trailing window (by default: the
last 60 seconds, one 60 second sample). The collector turns a list of
node names into a list of TelemetrySamples, one per node, each OK(value)
or FAILED(cause).

Concurrency
────────────
  - One task per distinct node. Duplicate names in the input are probed
    once.
  - At most `max_concurrent_probes` probes are in flight (asyncio
    Semaphore); 0 means no bound.
  - Every probe carries its own deadline (`probe_timeout_s`), counted from
    the moment it gets a slot. A probe that misses it is recorded as
    FAILED("timeout"); it never stalls the attempt.
  - collect() is a full barrier: it returns only once every probe has
    reported. If collect() itself is cancelled (attempt deadline, shutdown)
    all in-flight probes are cancelled with it.

Failure policy
───────────────
A failed probe is logged and becomes a FAILED sample. It never aborts its
siblings. Deciding what to do when *every* probe failed is the decision
engine's job, not ours.

Integration contract
─────────────────────
    collector = TelemetryCollector(sysdig_client, settings.metric_query())
    samples = await collector.collect(["node-1", "node-2"])
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import AsyncContextManager, List, Optional, Sequence

from latency_scheduler.shared.models import MetricQuery, SampleSet, TelemetrySample
from latency_scheduler.telemetry.sysdig_client import SysdigClient, TelemetryProbeError

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

DEFAULT_PROBE_TIMEOUT_S: float = 5.0
"""Deadline of a single probe.

A one-point query over a 60 second window normally answers in well under a
second. Five seconds leaves room for a slow backend without letting one
unresponsive host hold up a placement for long.
"""

DEFAULT_MAX_CONCURRENT_PROBES: int = 32
"""Upper bound on probes in flight for one attempt.

Matches the backend client's keep-alive pool so that large clusters are
probed in waves over reused connections instead of opening hundreds of
sockets at once.
"""

TIMEOUT_CAUSE: str = "timeout"


class InputError(ValueError):
    """Raised when collect() is called with no nodes. No probe is issued."""


class TelemetryCollector:
    """
    Bounded, deadline-aware fan-out of telemetry probes.

    Args:
        client:                Backend client shared by all probes.
        query:                 The metric query applied to every node.
        probe_timeout_s:       Per-probe deadline.
        max_concurrent_probes: In-flight bound. 0 or None = unbounded.
    """

    def __init__(
        self,
        client: SysdigClient,
        query: MetricQuery,
        probe_timeout_s: float = DEFAULT_PROBE_TIMEOUT_S,
        max_concurrent_probes: Optional[int] = DEFAULT_MAX_CONCURRENT_PROBES,
    ) -> None:
        if probe_timeout_s <= 0:
            raise ValueError(f"probe_timeout_s must be positive, got {probe_timeout_s}")
        self._client = client
        self._query = query
        self._probe_timeout_s = probe_timeout_s
        self._max_concurrent = max_concurrent_probes or 0

        self._probes_issued: int = 0

    # ── Public API ─────────────────────────────────────────────────────────────

    async def collect(self, node_names: Sequence[str]) -> SampleSet:
        """
        Probe every node and return one sample per distinct node.

        Samples are returned in input order (first occurrence); completion
        order is irrelevant to the caller.

        Raises:
            InputError: node_names is empty.
        """
        if not node_names:
            raise InputError("node list must contain at least one element")

        unique = list(dict.fromkeys(node_names))
        semaphore = asyncio.Semaphore(self._max_concurrent) if self._max_concurrent else None

        tasks = [
            asyncio.ensure_future(self._probe(node_name, semaphore))
            for node_name in unique
        ]
        try:
            samples: List[TelemetrySample] = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        failed = [s for s in samples if not s.is_ok]
        for sample in failed:
            logger.warning('Error retrieving node "%s": "%s"', sample.node_name, sample.cause)
        logger.debug(
            "Collected %d samples (%d ok, %d failed) for metric %s",
            len(samples), len(samples) - len(failed), len(failed), self._query.metric_id,
        )
        return samples

    # ── Private helpers ────────────────────────────────────────────────────────

    async def _probe(
        self,
        node_name: str,
        semaphore: Optional[asyncio.Semaphore],
    ) -> TelemetrySample:
        """Run one probe under the concurrency bound and its own deadline."""
        slot: AsyncContextManager = semaphore if semaphore is not None else contextlib.nullcontext()
        async with slot:
            self._probes_issued += 1
            start = time.perf_counter()
            try:
                value = await asyncio.wait_for(
                    self._client.get_value(self._query, node_name),
                    timeout=self._probe_timeout_s,
                )
            except asyncio.TimeoutError:
                return TelemetrySample.failed(node_name, TIMEOUT_CAUSE, _elapsed_ms(start))
            except TelemetryProbeError as e:
                return TelemetrySample.failed(node_name, e.cause, _elapsed_ms(start))
            return TelemetrySample.ok(node_name, value, _elapsed_ms(start))

    # ── Introspection ──────────────────────────────────────────────────────────

    @property
    def probes_issued(self) -> int:
        """Total number of probes started since this collector was created."""
        return self._probes_issued

    def __repr__(self) -> str:
        return (
            f"TelemetryCollector("
            f"metric={self._query.metric_id!r}, "
            f"probe_timeout_s={self._probe_timeout_s}, "
            f"max_concurrent={self._max_concurrent or 'unbounded'})"
        )


# ── Utility ────────────────────────────────────────────────────────────────────

def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
