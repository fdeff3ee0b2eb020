"""
latency_scheduler/cluster/event_stream.py
─────────────────────────────────────────
WatchStream: the scheduler's only input, a long-lived watch on pods.

What it produces
─────────────────
An unbounded async sequence of WorkloadEvent, one per line of the watch
response. Each line is an independent JSON record:

    {"type": "ADDED", "object": {"metadata": {...}, "status": {...}, "spec": {...}}}

Records that do not decode are logged and skipped; they never end the
sequence and never affect the records after them.

Connection lifecycle
─────────────────────
A watch ends for mundane reasons. Ending the connection therefore ends only
the *connection*, not the sequence:

    CONNECTED ──(clean 2xx end of body)──► CONNECTED   (reopened at once)
    CONNECTED ──(transport error / non-2xx)──► TERMINATED
    TERMINATED ──(backoff sleep)──► CONNECTED
    TERMINATED ──(max_attempts consecutive failures)──► StreamTerminated raised

The API server closes every watch after its own timeout (minutes, with or
without traffic), so a clean end of body is routine: it resets the failure
counter and is reopened without delay. Only transport errors and non-2xx
answers count as failures. Backoff is exponential: base, 2×base, 4×base …
capped at max_delay.

On reconnect the watch resumes from the last resourceVersion seen, so
events are not replayed. Bookmarks are requested so the resume point keeps
moving on a quiet namespace. A watch ERROR record (typically 410 Gone, the
resume point is too old) or an HTTP 410 clears the resume point and the
next connection starts from "now".

Filtering
──────────
is_actionable() is the single predicate deciding whether an event needs a
scheduling attempt: ADDED, phase Pending, and addressed to this scheduler.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from latency_scheduler.cluster.kube_client import (
    ALL_PODS_PATH,
    KubeApiClient,
    namespaced_pods_path,
)
from latency_scheduler.shared.models import (
    DEFAULT_NAMESPACE,
    PENDING_PHASE,
    ChangeType,
    WorkloadEvent,
)

logger = logging.getLogger(__name__)

# Longest excerpt of an undecodable record that is written to the log
_LOG_EXCERPT = 200


class StreamDecodeError(ValueError):
    """
    Raised when one watch record cannot be turned into a WorkloadEvent.

    Recoverable: the record is skipped and the stream continues.

    Attributes:
        line: The raw record (possibly truncated for logging).
    """

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"undecodable watch record ({reason}): {line[:_LOG_EXCERPT]!r}")


class StreamTerminated(Exception):
    """
    Raised when the watch could not be re-established.

    Fatal: the scheduler has no input left. Raised after
    `max_attempts` consecutive connections failed (transport error or
    non-2xx answer).
    """


# ── Decoding and filtering ────────────────────────────────────────────────────

def parse_record(line: str) -> Dict[str, Any]:
    """Decode one line into a JSON object."""
    try:
        record = json.loads(line)
    except ValueError as e:
        raise StreamDecodeError(line, f"invalid JSON: {e}") from e
    if not isinstance(record, dict):
        raise StreamDecodeError(line, "record is not an object")
    return record


def decode_event(line: str) -> WorkloadEvent:
    """
    Decode one line of the watch stream.

    Raises:
        StreamDecodeError: invalid JSON or a record of the wrong shape.
    """
    return _event_from_record(line, parse_record(line))


def _event_from_record(line: str, record: Dict[str, Any]) -> WorkloadEvent:
    try:
        return WorkloadEvent.from_watch_record(record)
    except ValueError as e:
        raise StreamDecodeError(line, "; ".join(str(e).splitlines())) from e


def is_actionable(event: WorkloadEvent, scheduler_name: str) -> bool:
    """True if the event is a new pending pod addressed to `scheduler_name`."""
    return (
        event.change_type == ChangeType.ADDED
        and event.phase == PENDING_PHASE
        and event.scheduler_name == scheduler_name
    )


# ── Stream ────────────────────────────────────────────────────────────────────

class WatchStream:
    """
    Reconnecting watch on pods.

    Usage:
        stream = WatchStream(api, namespace="default")
        async for event in stream.events():
            ...

    Args:
        api:            Shared orchestrator API client.
        namespace:      Namespace to watch.
        all_namespaces: Watch every namespace instead (namespace is ignored).
        base_delay_s:   First reconnect delay.
        max_delay_s:    Reconnect delay cap.
        max_attempts:   Consecutive failed connections tolerated before
                        StreamTerminated is raised. Clean closes by the
                        server are not failures.
        connect_timeout_s: Connect timeout for each watch connection.
    """

    def __init__(
        self,
        api: KubeApiClient,
        namespace: str = DEFAULT_NAMESPACE,
        all_namespaces: bool = False,
        base_delay_s: float = 1.0,
        max_delay_s: float = 60.0,
        max_attempts: int = 10,
        connect_timeout_s: float = 10.0,
    ) -> None:
        self._api = api
        self._path = ALL_PODS_PATH if all_namespaces else namespaced_pods_path(namespace or DEFAULT_NAMESPACE)
        self._base_delay_s = base_delay_s
        self._max_delay_s = max_delay_s
        self._max_attempts = max_attempts
        self._connect_timeout_s = connect_timeout_s

        self._resource_version: Optional[str] = None
        self._failed_attempts: int = 0
        self.connections: int = 0
        self.clean_closes: int = 0
        self.decode_failures: int = 0

    @property
    def resource_version(self) -> Optional[str]:
        """Resume point used by the next connection. None = start from now."""
        return self._resource_version

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect number `attempt` (1-based)."""
        return min(self._base_delay_s * (2 ** (attempt - 1)), self._max_delay_s)

    async def lines(self) -> AsyncIterator[str]:
        """
        Yield non-blank lines forever, reconnecting as needed.

        Raises:
            StreamTerminated: after max_attempts consecutive failed connections.
        """
        while True:
            params = {"allowWatchBookmarks": "true"}
            if self._resource_version:
                params["resourceVersion"] = self._resource_version

            try:
                self.connections += 1
                logger.info("Opening watch on %s (resourceVersion=%s)", self._path, self._resource_version)
                async with self._api.watch(self._path, params, connect_timeout_s=self._connect_timeout_s) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        yield line
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 410:
                    self._resource_version = None
                cause = f"HTTP {e.response.status_code}"
            except httpx.RequestError as e:
                cause = f"{type(e).__name__}: {e}"
            else:
                # server-side watch timeout
                self._failed_attempts = 0
                self.clean_closes += 1
                logger.info("Watch on %s closed by server. Reopening.", self._path)
                continue

            self._failed_attempts += 1

            if self._failed_attempts > self._max_attempts:
                logger.error("Watch on %s lost and %d reconnects failed. Giving up.", self._path, self._max_attempts)
                raise StreamTerminated(
                    f"watch on {self._path} could not be re-established after "
                    f"{self._max_attempts} attempts (last cause: {cause})"
                )

            delay = self.backoff_delay(self._failed_attempts)
            logger.warning(
                "Watch ended (%s). Reconnecting in %.1fs (attempt %d/%d)",
                cause, delay, self._failed_attempts, self._max_attempts,
            )
            await asyncio.sleep(delay)

    async def events(self) -> AsyncIterator[WorkloadEvent]:
        """Yield every decodable event in arrival order."""
        async for line in self.lines():
            try:
                record = parse_record(line)
                if record.get("type") == "ERROR":
                    self._handle_watch_error(record)
                    continue
                if record.get("type") == "BOOKMARK":
                    self._handle_bookmark(record)
                    continue
                event = _event_from_record(line, record)
            except StreamDecodeError as e:
                self.decode_failures += 1
                logger.warning("Skipping record: %s", e)
                continue

            if event.resource_version:
                self._resource_version = event.resource_version
            yield event

    def _handle_bookmark(self, record: Dict[str, Any]) -> None:
        obj = record.get("object") if isinstance(record.get("object"), dict) else {}
        metadata = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
        version = metadata.get("resourceVersion")
        if version:
            logger.debug("Watch bookmark at resourceVersion=%s", version)
            self._resource_version = str(version)

    def _handle_watch_error(self, record: Dict[str, Any]) -> None:
        status = record.get("object") if isinstance(record.get("object"), dict) else {}
        logger.warning(
            "Watch reported error %s: %s. Resetting resume point.",
            status.get("code"), status.get("message"),
        )
        self._resource_version = None
