"""
latency_scheduler/control_plane/decision_engine.py
──────────────────────────────────────────────────
The decision layer: picks WHICH node a workload goes to.

Policy
───────
Lower is better. Among the nodes whose probe succeeded, the one with the
smallest metric value wins. Ties are broken by node name, lexicographically,
so the same samples always produce the same node regardless of the order
in which the probes happened to complete.

Ranking happens only after the collector's barrier, on the full sample set.
Samples with non-finite values never rank.

Error handling contract
────────────────────────
  NoCandidateError: raised when no sample is OK. The control loop must
                    abandon the attempt and must NOT call the Binder.
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

import numpy as np

from latency_scheduler.shared.models import TelemetrySample

logger = logging.getLogger(__name__)


class NoCandidateError(Exception):
    """
    Raised when no node has a usable telemetry value.

    When is this raised?
        • Every probe failed (backend outage, all hosts timed out, metric
          not reported by any host).

    Attributes:
        n_probed: Number of samples the decision was asked to rank.
        n_failed: How many of them were FAILED.
    """

    def __init__(self, n_probed: int, n_failed: int) -> None:
        self.n_probed = n_probed
        self.n_failed = n_failed
        super().__init__(
            f"not a single node could be found "
            f"({n_failed}/{n_probed} probes failed)"
        )


def rank_candidates(samples: Sequence[TelemetrySample]) -> List[TelemetrySample]:
    """
    Return the usable samples, best first.

    Ordering: ascending value, then ascending node name.
    """
    candidates = [
        s for s in samples
        if s.is_ok and s.value is not None and math.isfinite(s.value)
    ]
    if not candidates:
        return []

    values = np.array([s.value for s in candidates], dtype=np.float64)
    # fixed-width unicode dtype, sized to the longest name; it orders by
    # code point like str, so shorter names sort before their extensions
    names = np.array([s.node_name for s in candidates])
    # lexsort: the last key is the primary one
    order = np.lexsort((names, values))
    return [candidates[int(i)] for i in order]


def choose_node(samples: Sequence[TelemetrySample]) -> TelemetrySample:
    """
    Select the winning sample.

    Args:
        samples: Every sample of one attempt, OK and FAILED.

    Returns:
        The OK sample with the minimum value (name breaks ties).

    Raises:
        NoCandidateError: no OK sample with a finite value.
    """
    ranked = rank_candidates(samples)
    if not ranked:
        raise NoCandidateError(
            n_probed=len(samples),
            n_failed=sum(1 for s in samples if not s.is_ok),
        )

    best = ranked[0]
    if len(ranked) > 1 and ranked[1].value == best.value:
        logger.debug(
            "choose_node: %d nodes tied at %s, picked %s by name",
            sum(1 for s in ranked if s.value == best.value), best.value, best.node_name,
        )
    return best
