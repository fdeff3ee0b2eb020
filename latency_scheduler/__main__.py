"""
Command-line entry point.

    latency-scheduler [-s SCHEDULER_NAME] [-m SYSDIG_METRIC] [-t SYSDIG_TOKEN] [-k KUBECONFIG]

Every flag falls back to its environment variable (SDC_SCHEDULER,
SDC_METRIC, SDC_TOKEN, KUBECONFIG); a flag given on the command line wins.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from latency_scheduler.app import serve
from latency_scheduler.cluster.event_stream import StreamTerminated
from latency_scheduler.cluster.kubeconfig import KubeConfigError
from latency_scheduler.config import SchedulerSettings
from latency_scheduler.logging_config import setup_logging

logger = logging.getLogger("latency_scheduler")

EPILOG = """
If the env KUBECONFIG is not set, -k defaults to ~/.kube/config.
If the env SDC_TOKEN is not set, the -t option must be provided.
If the env SDC_METRIC is not set, the -m option must be provided.
If the env SDC_SCHEDULER is not set, the -s option must be provided.
"""

# argparse dest → SchedulerSettings field
_FLAG_FIELDS = {
    "scheduler_name": "scheduler_name",
    "metric": "sysdig_metric",
    "token": "sysdig_token",
    "kubeconfig": "kubeconfig",
    "sysdig_url": "sysdig_url",
    "namespace": "watch_namespace",
    "all_namespaces": "watch_all_namespaces",
    "probe_timeout": "probe_timeout_s",
    "max_concurrent_probes": "max_concurrent_probes",
    "log_level": "log_level",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="latency-scheduler",
        description="Place pending pods on the node with the lowest live metric value.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-s", dest="scheduler_name", help="Scheduler name")
    parser.add_argument("-m", dest="metric", help="Sysdig metric to monitor")
    parser.add_argument("-t", dest="token", help="Sysdig Cloud token")
    parser.add_argument("-k", dest="kubeconfig", help="Kubernetes config file")
    parser.add_argument("--sysdig-url", dest="sysdig_url", help="Sysdig API base URL")
    parser.add_argument("-n", "--namespace", dest="namespace", help="Namespace to watch")
    parser.add_argument(
        "--all-namespaces", dest="all_namespaces", action="store_true", default=None,
        help="Watch pods in every namespace",
    )
    parser.add_argument("--probe-timeout", dest="probe_timeout", type=float, help="Per-node probe deadline (s)")
    parser.add_argument(
        "--max-concurrent-probes", dest="max_concurrent_probes", type=int,
        help="Bound on in-flight probes (0 = unbounded)",
    )
    parser.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def load_settings(argv: Optional[List[str]] = None) -> SchedulerSettings:
    """
    Parse flags and merge them over the environment.

    Exits with status 2 and the usage text when a required value is missing
    or invalid.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides: Dict[str, Any] = {}
    for dest, field_name in _FLAG_FIELDS.items():
        value = getattr(args, dest)
        if value is not None:
            overrides[field_name] = value

    try:
        return SchedulerSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        parser.print_usage(sys.stderr)
        parser.exit(2, f"Error: invalid configuration: {problems}\n")


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings(argv)
    setup_logging(settings.log_level)

    try:
        asyncio.run(serve(settings))
    except KubeConfigError as e:
        logger.error("Could not load the Kubernetes configuration: %s", e)
        return 1
    except StreamTerminated as e:
        logger.error("Event stream lost: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
