"""
latency_scheduler — places pending pods on the node with the best live metric.

Public API:
    SchedulerSettings  — process configuration (env + CLI)
    SchedulerLoop      — the event → probe → decide → bind control loop
    build_scheduler()  — wire a SchedulerLoop from settings and open clients
"""

from latency_scheduler.app import build_scheduler
from latency_scheduler.config import SchedulerSettings
from latency_scheduler.control_plane.control_loop import SchedulerLoop

__all__ = ["SchedulerSettings", "SchedulerLoop", "build_scheduler"]
