"""
latency_scheduler/control_plane/control_loop.py
───────────────────────────────────────────────
SchedulerLoop: the control plane state machine.

Per event
──────────
    IDLE
     └─► FILTERING_EVENT      is_actionable()? no → IDLE (IGNORED)
          └─► FETCHING_INVENTORY   ready node snapshot
               └─► PROBING_TELEMETRY    one probe per ready node
                    └─► DECIDING             minimum value, name tie-break
                         └─► BINDING              POST Binding
                              └─► IDLE (BOUND)

Any failure (inventory error, empty inventory, no usable sample, binding
rejected) logs, records the outcome and goes straight back to IDLE. There is
no "in progress" record: a workload that failed to schedule stays Pending
until the orchestrator sends another event for it.

Ordering
─────────
Events are handled strictly one after the other, in stream order. The only
parallelism is inside PROBING_TELEMETRY.

Thread safety
──────────────
Not thread-safe. The loop runs as a single coroutine on one asyncio event
loop and is the only writer of its own state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from enum import Enum
from typing import Deque, Dict, List, Optional

from latency_scheduler.cluster.event_stream import WatchStream, is_actionable
from latency_scheduler.cluster.inventory import InventoryError, NodeInventory
from latency_scheduler.control_plane.binder import BindError, Binder
from latency_scheduler.control_plane.decision_engine import NoCandidateError, choose_node
from latency_scheduler.shared.models import PlacementDecision, SampleSet, WorkloadEvent
from latency_scheduler.telemetry.collector import InputError, TelemetryCollector

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    FILTERING_EVENT = "filtering-event"
    FETCHING_INVENTORY = "fetching-inventory"
    PROBING_TELEMETRY = "probing-telemetry"
    DECIDING = "deciding"
    BINDING = "binding"


class AttemptOutcome(str, Enum):
    """How handling one event ended."""
    IGNORED = "ignored"
    BOUND = "bound"
    NO_READY_NODES = "no-ready-nodes"
    INVENTORY_FAILED = "inventory-failed"
    NO_CANDIDATE = "no-candidate"
    BIND_FAILED = "bind-failed"
    ERROR = "error"


class SchedulerLoop:
    """
    Wires stream → inventory → collector → decision engine → binder.

    Public API:
        run()                → consume the watch forever
        handle_event(event)  → AttemptOutcome for a single event
        get_stats()          → Dict of counters

    Attributes:
        transitions: deque(maxlen=64) of the most recent LoopStates entered.
    """

    def __init__(
        self,
        stream: WatchStream,
        inventory: NodeInventory,
        collector: TelemetryCollector,
        binder: Binder,
        scheduler_name: str,
        attempt_timeout_s: Optional[float] = None,
    ) -> None:
        self._stream = stream
        self._inventory = inventory
        self._collector = collector
        self._binder = binder
        self._scheduler_name = scheduler_name
        self._attempt_timeout_s = attempt_timeout_s

        self._state = LoopState.IDLE
        self.transitions: Deque[LoopState] = deque(maxlen=64)
        self._events_seen: int = 0
        self._outcomes: Counter = Counter()

    @property
    def state(self) -> LoopState:
        return self._state

    # ── Primary public API ─────────────────────────────────────────────────────

    async def run(self) -> None:
        """
        Handle every event of the watch, forever.

        Returns only if the stream ends; StreamTerminated from the stream
        propagates to the caller.
        """
        logger.info("Scheduler %r waiting for pods", self._scheduler_name)
        async for event in self._stream.events():
            await self.handle_event(event)

    async def handle_event(self, event: WorkloadEvent) -> AttemptOutcome:
        """Run one attempt for `event`. Never raises for attempt-level failures."""
        self._events_seen += 1
        try:
            outcome = await self._attempt(event)
        except Exception:
            logger.exception(
                "Unexpected error while scheduling %s/%s", event.namespace, event.workload_name,
            )
            outcome = AttemptOutcome.ERROR
        finally:
            self._enter(LoopState.IDLE)
        self._outcomes[outcome] += 1
        return outcome

    def get_stats(self) -> Dict[str, int]:
        """Counters since start: events seen plus one entry per outcome."""
        stats = {"events_seen": self._events_seen}
        for outcome in AttemptOutcome:
            stats[outcome.value] = self._outcomes.get(outcome, 0)
        return stats

    # ── Private helpers ───────────────────────────────────────────────────────

    def _enter(self, state: LoopState) -> None:
        self._state = state
        self.transitions.append(state)

    async def _attempt(self, event: WorkloadEvent) -> AttemptOutcome:
        self._enter(LoopState.FILTERING_EVENT)
        if not is_actionable(event, self._scheduler_name):
            logger.debug(
                "Ignoring %s %s/%s (phase=%s, scheduler=%s)",
                event.change_type.value, event.namespace, event.workload_name,
                event.phase, event.scheduler_name,
            )
            return AttemptOutcome.IGNORED

        pod = f"{event.namespace}/{event.workload_name}"
        logger.info("Scheduling %s", pod)

        # 1. Inventory snapshot
        self._enter(LoopState.FETCHING_INVENTORY)
        try:
            nodes = await self._inventory.ready_node_names()
        except InventoryError as e:
            logger.error("Cannot schedule %s: %s", pod, e)
            return AttemptOutcome.INVENTORY_FAILED

        # 2. Telemetry fan-out
        self._enter(LoopState.PROBING_TELEMETRY)
        try:
            samples = await self._collect(nodes)
        except InputError:
            logger.error("Cannot schedule %s: no ready nodes", pod)
            return AttemptOutcome.NO_READY_NODES
        except asyncio.TimeoutError:
            logger.error(
                "Cannot schedule %s: telemetry for %d nodes not collected within %.1fs",
                pod, len(nodes), self._attempt_timeout_s,
            )
            return AttemptOutcome.NO_CANDIDATE

        # 3. Decision
        self._enter(LoopState.DECIDING)
        try:
            best = choose_node(samples)
        except NoCandidateError as e:
            logger.error("Cannot schedule %s: %s", pod, e)
            return AttemptOutcome.NO_CANDIDATE

        logger.info("Best node found for %s: %s %s", pod, best.node_name, best.value)
        decision = PlacementDecision(
            workload_name=event.workload_name,
            target_node=best.node_name,
            namespace=event.namespace,
            value=best.value,
        )

        # 4. Binding
        self._enter(LoopState.BINDING)
        try:
            await self._binder.bind(decision)
        except BindError as e:
            logger.error("Cannot schedule %s: %s", pod, e)
            return AttemptOutcome.BIND_FAILED

        return AttemptOutcome.BOUND

    async def _collect(self, nodes: List[str]) -> SampleSet:
        if self._attempt_timeout_s is None:
            return await self._collector.collect(nodes)
        return await asyncio.wait_for(self._collector.collect(nodes), timeout=self._attempt_timeout_s)
