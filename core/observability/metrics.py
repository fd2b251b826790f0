"""
In-process metrics for the reconciliation engine.

Counters cover subset-sum reconstruction, balance capping and audit runs.
Timing samples are kept per stage (bounded) for average and p95.
"""

import statistics
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, Iterable, Optional


MAX_TIMING_SAMPLES = 1000


# =============================================================================
# Metric Groups
# =============================================================================

@dataclass
class ReconstructionMetrics:
    """One entry per find_matches call."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    nodes_visited: int = 0
    by_strategy: Counter = field(default_factory=Counter)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "exhausted": self.exhausted,
            "nodes_visited": self.nodes_visited,
            "by_strategy": dict(self.by_strategy),
        }


@dataclass
class BalanceMetrics:
    resolutions: int = 0
    caps_by_bucket: Counter = field(default_factory=Counter)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "resolutions": self.resolutions,
            "capping_events": sum(self.caps_by_bucket.values()),
            "caps_by_bucket": dict(self.caps_by_bucket),
        }


@dataclass
class AuditMetrics:
    started: int = 0
    completed: int = 0
    findings_in: int = 0
    findings_out: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return dict(vars(self))


def _p95(samples: Iterable[float]) -> float:
    ordered = sorted(samples)
    if not ordered:
        return 0.0
    return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]


@dataclass
class TimingMetrics:
    """Bounded duration samples, overall and per stage (milliseconds)."""
    overall: Deque[float] = field(default_factory=lambda: deque(maxlen=MAX_TIMING_SAMPLES))
    by_stage: Dict[str, Deque[float]] = field(
        default_factory=lambda: defaultdict(lambda: deque(maxlen=MAX_TIMING_SAMPLES))
    )

    def add(self, stage: str, duration_ms: float):
        self.overall.append(duration_ms)
        self.by_stage[stage].append(duration_ms)

    def stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        samples = self.overall if stage is None else self.by_stage.get(stage, ())
        return {
            "average_ms": statistics.mean(samples) if samples else 0.0,
            "p95_ms": _p95(samples),
            "sample_count": len(samples),
        }


# =============================================================================
# Collector
# =============================================================================

class MetricsCollector:
    """
    Thread-safe collector shared by the whole process.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_reconstruction(success=True, nodes=1200, strategy="total")
        metrics.record_processing_time("balance", 0.4)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self.reset()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def reset(self):
        with self._lock:
            self.reconstruction = ReconstructionMetrics()
            self.balance = BalanceMetrics()
            self.audits = AuditMetrics()
            self.timings = TimingMetrics()

    def record_reconstruction(self, success: bool, nodes: int, exhausted: bool = False, strategy: str = None):
        """Record one find_matches call. `strategy` is the pass that matched."""
        with self._lock:
            r = self.reconstruction
            r.attempted += 1
            r.nodes_visited += nodes
            r.exhausted += int(exhausted)
            if not success:
                r.failed += 1
                return
            r.succeeded += 1
            if strategy:
                r.by_strategy[strategy] += 1

    def record_balance_resolved(self, capped_buckets: Iterable[str] = ()):
        with self._lock:
            self.balance.resolutions += 1
            self.balance.caps_by_bucket.update(capped_buckets or ())

    def record_audit_started(self, findings_in: int):
        with self._lock:
            self.audits.started += 1
            self.audits.findings_in += findings_in

    def record_audit_completed(self, findings_out: int, duration_ms: float = None):
        with self._lock:
            self.audits.completed += 1
            self.audits.findings_out += findings_out
            if duration_ms is not None:
                self.timings.add("audit", duration_ms)

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add(stage, duration_ms)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        with self._lock:
            return self.timings.stats(stage)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "reconstruction": self.reconstruction.snapshot(),
                "balance": self.balance.snapshot(),
                "audits": self.audits.snapshot(),
                "timings": {
                    "overall": self.timings.stats(),
                    "by_stage": {stage: self.timings.stats(stage) for stage in list(self.timings.by_stage)},
                },
            }


# =============================================================================
# Shortcuts
# =============================================================================

def get_metrics() -> MetricsCollector:
    return MetricsCollector.instance()


def record_reconstruction(success: bool, nodes: int, exhausted: bool = False, strategy: str = None):
    get_metrics().record_reconstruction(success, nodes, exhausted, strategy)


def record_balance_resolved(capped_buckets: Iterable[str] = ()):
    get_metrics().record_balance_resolved(capped_buckets)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
