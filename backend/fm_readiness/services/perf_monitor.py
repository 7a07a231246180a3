"""Performance monitoring utilities for the readiness audit pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("fm-readiness.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def load_preset(payload):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class AuditPerformanceTracker:
    """
    Thread-safe in-memory tracker for audit-level metrics.

    Tracks:
    - Total audits processed and assets audited
    - Average duration per pipeline phase (resolve / uniqueness / score / assemble)
    - Slowest phase observed
    - Capability failures broken down by kind (lookup, computed, type_record)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._audits_processed: int = 0
        self._assets_audited: int = 0
        self._total_audit_duration_ms: float = 0.0
        self._phase_durations: Dict[str, list] = {}       # phase -> [duration_ms, ...]
        self._capability_errors: Dict[str, int] = {}      # kind -> count
        self._slowest_phase: Optional[str] = None
        self._slowest_phase_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_audit_complete(self, duration_ms: float, assets_audited: int) -> None:
        """Call once when a full audit run finishes."""
        with self._lock:
            self._audits_processed += 1
            self._assets_audited += assets_audited
            self._total_audit_duration_ms += duration_ms

    def record_phase_duration(self, phase: str, duration_ms: float) -> None:
        with self._lock:
            self._phase_durations.setdefault(phase, []).append(duration_ms)
            if duration_ms > self._slowest_phase_ms:
                self._slowest_phase_ms = duration_ms
                self._slowest_phase = phase

    def record_capability_error(self, kind: str) -> None:
        """Increment the failure counter for one host capability kind."""
        with self._lock:
            self._capability_errors[kind] = self._capability_errors.get(kind, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            audits_processed        : int
            assets_audited          : int
            avg_audit_duration_ms   : float  (0 if none processed)
            slowest_phase           : str | None
            slowest_phase_ms        : float
            capability_error_count  : int   (total across all kinds)
            capability_errors       : dict  {kind: count}
            phase_avg_durations_ms  : dict  {phase: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_audit_duration_ms / self._audits_processed, 2)
                if self._audits_processed > 0
                else 0.0
            )
            phase_avgs = {
                phase: round(sum(d) / len(d), 2) if d else 0.0
                for phase, d in self._phase_durations.items()
            }
            return {
                "audits_processed": self._audits_processed,
                "assets_audited": self._assets_audited,
                "avg_audit_duration_ms": avg,
                "slowest_phase": self._slowest_phase,
                "slowest_phase_ms": round(self._slowest_phase_ms, 2),
                "capability_error_count": sum(self._capability_errors.values()),
                "capability_errors": dict(self._capability_errors),
                "phase_avg_durations_ms": phase_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._audits_processed = 0
            self._assets_audited = 0
            self._total_audit_duration_ms = 0.0
            self._phase_durations.clear()
            self._capability_errors.clear()
            self._slowest_phase = None
            self._slowest_phase_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = AuditPerformanceTracker()
