"""
latency_scheduler/control_plane — the scheduling brain.

Public API:
    choose_node()      — minimum metric value, node name breaks ties
    rank_candidates()  — usable samples, best first
    NoCandidateError   — raised when no probe succeeded
    Binder / BindError — submit the placement to the orchestrator
    SchedulerLoop      — the per-event state machine
"""

from latency_scheduler.control_plane.binder import BindError, Binder, build_binding_body
from latency_scheduler.control_plane.control_loop import AttemptOutcome, LoopState, SchedulerLoop
from latency_scheduler.control_plane.decision_engine import (
    NoCandidateError,
    choose_node,
    rank_candidates,
)

__all__ = [
    "choose_node",
    "rank_candidates",
    "NoCandidateError",
    "Binder",
    "BindError",
    "build_binding_body",
    "SchedulerLoop",
    "LoopState",
    "AttemptOutcome",
]
