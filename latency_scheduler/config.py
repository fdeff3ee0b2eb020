"""
Scheduler settings loaded from environment variables.

Uses Pydantic Settings for type-safe configuration with validation.
The four values the scheduler cannot run without keep the environment
names operators already use (SDC_SCHEDULER, SDC_METRIC, SDC_TOKEN,
KUBECONFIG); every tuning knob is read from a SCHED_-prefixed variable.
CLI flags (see __main__.py) are passed as init arguments and win over both.

One SchedulerSettings instance is built at startup and handed explicitly
to every component; nothing reads the environment after that.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from latency_scheduler.shared.models import MetricQuery


def _default_kubeconfig() -> Path:
    return Path.home() / ".kube" / "config"


class SchedulerSettings(BaseSettings):
    """
    Scheduler configuration.

    All settings are loaded from environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Identity and credentials
    scheduler_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("SDC_SCHEDULER", "scheduler_name"),
        description="spec.schedulerName of the pods this scheduler places",
    )
    sysdig_metric: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("SDC_METRIC", "sysdig_metric"),
        description="Metric id probed per node, e.g. net.http.request.time",
    )
    sysdig_token: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("SDC_TOKEN", "sysdig_token"),
        description="API token for the telemetry backend",
    )
    sysdig_url: str = Field(
        default="https://app.sysdigcloud.com",
        validation_alias=AliasChoices("SDC_URL", "sysdig_url"),
        description="Telemetry backend base URL",
    )
    kubeconfig: Path = Field(
        default_factory=_default_kubeconfig,
        validation_alias=AliasChoices("KUBECONFIG", "kubeconfig"),
        description="Path to the kubeconfig used to reach the orchestrator",
    )

    # Watch
    watch_namespace: str = Field(
        default="default",
        description="Namespace whose pods are watched",
    )
    watch_all_namespaces: bool = Field(
        default=False,
        description="Watch pods in every namespace instead of watch_namespace",
    )
    reconnect_base_delay_s: float = Field(default=1.0, gt=0)
    reconnect_max_delay_s: float = Field(default=60.0, gt=0)
    max_reconnect_attempts: int = Field(default=10, ge=1)
    watch_connect_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Connect timeout of each watch connection; reads never time out",
    )

    # Telemetry fan-out
    probe_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Deadline of a single telemetry probe",
    )
    max_concurrent_probes: int = Field(
        default=32,
        ge=0,
        description="Upper bound on in-flight probes. 0 = unbounded",
    )
    attempt_timeout_s: Optional[float] = Field(
        default=None,
        gt=0,
        description="Deadline of the whole fan-out of one attempt. None = no deadline",
    )
    telemetry_window_s: int = Field(default=60, gt=0, le=86400)
    telemetry_sampling_s: int = Field(default=60, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @field_validator("sysdig_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def metric_query(self) -> MetricQuery:
        """The probe every node is subjected to."""
        return MetricQuery.trailing_window(
            self.sysdig_metric,
            window_s=self.telemetry_window_s,
            sampling_s=self.telemetry_sampling_s,
        )
