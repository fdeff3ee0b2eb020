"""
Process assembly: builds every component from one SchedulerSettings and
runs the control loop until the watch is lost for good.
"""

from __future__ import annotations

import logging

from latency_scheduler.cluster.event_stream import WatchStream
from latency_scheduler.cluster.inventory import NodeInventory
from latency_scheduler.cluster.kube_client import KubeApiClient
from latency_scheduler.cluster.kubeconfig import (
    KubeConfigError,
    KubeCredentials,
    load_incluster_credentials,
    load_kubeconfig,
)
from latency_scheduler.config import SchedulerSettings
from latency_scheduler.control_plane.binder import Binder
from latency_scheduler.control_plane.control_loop import SchedulerLoop
from latency_scheduler.telemetry.collector import TelemetryCollector
from latency_scheduler.telemetry.sysdig_client import SysdigClient

logger = logging.getLogger(__name__)


def resolve_credentials(settings: SchedulerSettings) -> KubeCredentials:
    """
    Kubeconfig if the configured file exists, otherwise the pod's service
    account when running inside the cluster.

    Raises:
        KubeConfigError: neither source is usable.
    """
    if settings.kubeconfig.expanduser().exists():
        return load_kubeconfig(settings.kubeconfig)
    logger.info("Kubeconfig %s not found, trying in-cluster service account", settings.kubeconfig)
    try:
        return load_incluster_credentials()
    except KubeConfigError as e:
        raise KubeConfigError(f"kubeconfig {settings.kubeconfig} does not exist and {e}") from e


def build_scheduler(
    settings: SchedulerSettings,
    api: KubeApiClient,
    sysdig: SysdigClient,
) -> SchedulerLoop:
    """Wire the control loop to already-open API clients."""
    stream = WatchStream(
        api,
        namespace=settings.watch_namespace,
        all_namespaces=settings.watch_all_namespaces,
        base_delay_s=settings.reconnect_base_delay_s,
        max_delay_s=settings.reconnect_max_delay_s,
        max_attempts=settings.max_reconnect_attempts,
        connect_timeout_s=settings.watch_connect_timeout_s,
    )
    collector = TelemetryCollector(
        sysdig,
        settings.metric_query(),
        probe_timeout_s=settings.probe_timeout_s,
        max_concurrent_probes=settings.max_concurrent_probes,
    )
    return SchedulerLoop(
        stream=stream,
        inventory=NodeInventory(api),
        collector=collector,
        binder=Binder(api),
        scheduler_name=settings.scheduler_name,
        attempt_timeout_s=settings.attempt_timeout_s,
    )


async def serve(settings: SchedulerSettings) -> None:
    """
    Run the scheduler until StreamTerminated (re-raised) or cancellation.

    Raises:
        KubeConfigError:  orchestrator credentials cannot be resolved.
        StreamTerminated: the watch could not be re-established.
    """
    api = KubeApiClient.from_credentials(resolve_credentials(settings))
    sysdig = SysdigClient.from_token(
        settings.sysdig_url,
        settings.sysdig_token.get_secret_value(),
        timeout=settings.probe_timeout_s,
    )
    scheduler = build_scheduler(settings, api, sysdig)
    logger.info(
        "Starting scheduler %r (metric=%s, probe_timeout=%.1fs, max_concurrent_probes=%s)",
        settings.scheduler_name, settings.sysdig_metric,
        settings.probe_timeout_s, settings.max_concurrent_probes or "unbounded",
    )
    try:
        await scheduler.run()
    finally:
        logger.info("Scheduler stopped: %s", scheduler.get_stats())
        await api.close()
        await sysdig.close()
