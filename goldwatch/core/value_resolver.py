"""
Multi-source value resolver.

Asks every configured :class:`Source` for the same quantity (gold spot,
USD/IDR), throws away implausible readings and reconciles what is left:

* candidates are ordered by source priority (lower = more trusted);
* a candidate joins the first cluster whose anchor (first member) is
  strictly closer than ``tolerance``, otherwise it opens a new cluster;
* the biggest cluster wins, ties go to the lowest mean priority, and a
  full tie keeps the cluster formed first;
* the answer is the mean of the winning cluster.

``resolve()`` never raises. ``None`` means "no data" and must not be
read as zero.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from .errors import NoConsensus, UpstreamUnavailable
from .logger import get_logger

logger = get_logger("value_resolver")


class Source(Protocol):
    """A single upstream reading of one numeric quantity."""

    name: str
    priority: int

    async def fetch(self) -> float:
        """Return the reading or raise :class:`UpstreamUnavailable`."""
        ...


@dataclass(frozen=True, slots=True)
class Candidate:
    source: str
    value: float
    priority: float


def cluster_candidates(candidates: Sequence[Candidate], tolerance: float) -> List[List[Candidate]]:
    """Group candidates around the first member of each cluster."""
    clusters: List[List[Candidate]] = []
    for cand in candidates:
        for cluster in clusters:
            if abs(cluster[0].value - cand.value) < tolerance:
                cluster.append(cand)
                break
        else:
            clusters.append([cand])
    return clusters


def pick_cluster(clusters: Sequence[List[Candidate]]) -> List[Candidate]:
    """Largest cluster, then lowest mean priority. Raises NoConsensus if empty."""
    best: Optional[List[Candidate]] = None
    best_priority = math.inf
    for cluster in clusters:
        if not cluster:
            continue
        mean_priority = sum(c.priority for c in cluster) / len(cluster)
        if best is None or len(cluster) > len(best):
            best, best_priority = cluster, mean_priority
        elif len(cluster) == len(best) and mean_priority < best_priority:
            best, best_priority = cluster, mean_priority
    if best is None:
        raise NoConsensus("no candidates")
    return best


def reconcile(candidates: Sequence[Candidate], tolerance: float) -> Optional[float]:
    """Cluster, pick and average. ``None`` when there is nothing to pick."""
    ordered = sorted(candidates, key=lambda c: c.priority)
    try:
        winner = pick_cluster(cluster_candidates(ordered, tolerance))
    except NoConsensus:
        return None
    return sum(c.value for c in winner) / len(winner)


class ValueResolver:
    """Query sources concurrently and reconcile their readings."""

    def __init__(
        self,
        name: str,
        sources: Sequence[Source],
        *,
        min_value: float,
        max_value: float,
        tolerance: float,
        timeout_s: float = 5.0,
    ) -> None:
        self.name = name
        self.sources = sorted(sources, key=lambda s: s.priority)
        self.min_value = min_value
        self.max_value = max_value
        self.tolerance = tolerance
        self.timeout_s = timeout_s

        self.last_value: Optional[float] = None
        self.last_candidates: List[Candidate] = []
        self.last_errors: Dict[str, str] = {}
        self.resolve_count = 0
        self.unavailable_count = 0

    def is_plausible(self, value: Any) -> bool:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return False
        if not math.isfinite(value):
            return False
        return self.min_value < value < self.max_value

    async def _query(self, source: Source) -> Tuple[Optional[float], Optional[str]]:
        try:
            value = await asyncio.wait_for(source.fetch(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            return None, f"timeout after {self.timeout_s}s"
        except UpstreamUnavailable as exc:
            return None, exc.reason
        except Exception as exc:
            # a broken parser must not take the resolver down
            return None, f"{type(exc).__name__}: {exc}"
        if not self.is_plausible(value):
            return None, f"implausible reading {value!r}"
        return float(value), None

    async def resolve(self) -> Optional[float]:
        """Return the reconciled value, or ``None`` when nothing is usable."""
        self.resolve_count += 1
        start = time.perf_counter()
        results = await asyncio.gather(*(self._query(s) for s in self.sources))

        candidates: List[Candidate] = []
        errors: Dict[str, str] = {}
        for source, (value, error) in zip(self.sources, results):
            if value is None:
                errors[source.name] = error or "no value"
                logger.debug("[%s] %s dropped: %s", self.name, source.name, error)
                continue
            candidates.append(Candidate(source=source.name, value=value, priority=source.priority))

        self.last_candidates = candidates
        self.last_errors = errors
        value = reconcile(candidates, self.tolerance)
        duration_ms = (time.perf_counter() - start) * 1000

        if value is None:
            self.unavailable_count += 1
            logger.info("[%s] Failed - no data (%d sources, %.0fms)", self.name, len(self.sources), duration_ms)
            return None

        self.last_value = value
        logger.debug(
            "[%s] %.4f from %s (%.0fms)",
            self.name, value, ",".join(c.source for c in candidates), duration_ms,
        )
        return value

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "last_value": self.last_value,
            "candidates": {c.source: c.value for c in self.last_candidates},
            "errors": dict(self.last_errors),
            "resolve_count": self.resolve_count,
            "unavailable_count": self.unavailable_count,
        }
