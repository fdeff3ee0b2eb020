"""
latency_scheduler/telemetry — per-node metric probes.

Public API:
    TelemetryCollector  — bounded, deadline-aware fan-out of probes
    SysdigClient        — one data query per host
"""

from latency_scheduler.telemetry.collector import InputError, TelemetryCollector
from latency_scheduler.telemetry.sysdig_client import SysdigClient, TelemetryProbeError

__all__ = ["TelemetryCollector", "InputError", "SysdigClient", "TelemetryProbeError"]
