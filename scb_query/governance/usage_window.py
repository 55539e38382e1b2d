"""
Usage window -- local tracker of the API's calls-per-time-window budget.

The server advertises ``maxCallsPerTimeWindow`` and ``timeWindow`` on its
``/config`` endpoint.  This module keeps a fixed (not sliding) window:
once ``reset_at`` has passed, the next admission check starts a fresh window
with ``used = 0``.  There is no background timer; resets happen lazily.

The tracker is a single-writer approximation of the server's limiter.  It
cannot rule out 429s (a sibling client or a restart may have spent the
budget) but it never knowingly exceeds the last-known budget.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from scb_query.core.logging import get_logger

logger = get_logger(__name__)


# ── Limits & resolution ─────────────────────────────────


@dataclass(frozen=True)
class WindowLimits:
    """Budget of *capacity* calls per *window_seconds*."""
    capacity: int
    window_seconds: float

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {self.window_seconds}")


LIMITS_FROM_SERVER = "server"
LIMITS_FROM_DEFAULTS = "defaults"


@dataclass(frozen=True)
class LimitsResolution:
    """Outcome of looking up the server-advertised limits.

    ``source`` is ``"server"`` when the lookup succeeded, otherwise
    ``"defaults"`` with the failure text in ``error``.
    """
    limits: WindowLimits
    source: str
    error: str | None = None

    @property
    def from_server(self) -> bool:
        return self.source == LIMITS_FROM_SERVER


def resolve_limits(
    fetch_limits: Callable[[], WindowLimits],
    default: WindowLimits,
) -> LimitsResolution:
    """Call *fetch_limits*; fall back to *default* when it fails.

    Any error raised by the lookup (network, HTTP status, schema mismatch,
    non-positive values) selects the default.  This function never raises.
    """
    try:
        limits = fetch_limits()
    except Exception as exc:  # noqa: BLE001 -- every lookup failure selects the default
        logger.warning("Failed to fetch server rate limits, using defaults %d/%ss: %s",
                       default.capacity, default.window_seconds, exc)
        return LimitsResolution(limits=default, source=LIMITS_FROM_DEFAULTS, error=str(exc))
    return LimitsResolution(limits=limits, source=LIMITS_FROM_SERVER)


# ── Admission ───────────────────────────────────────────


@dataclass(frozen=True)
class Admission:
    """Result of an admission check."""
    permitted: bool
    retry_after: float = 0.0
    used: int = 0
    capacity: int = 0
    # start of the window the call was counted in; the token for ``release``
    window_start: float | None = None

    @classmethod
    def permit(cls, used: int, capacity: int, window_start: float | None = None) -> "Admission":
        return cls(permitted=True, used=used, capacity=capacity, window_start=window_start)

    @classmethod
    def reject(cls, retry_after: float, used: int, capacity: int) -> "Admission":
        return cls(permitted=False, retry_after=retry_after, used=used, capacity=capacity)


@dataclass(frozen=True)
class UsageSnapshot:
    """Point-in-time view of the window."""
    used: int
    capacity: int
    window_seconds: float
    window_start: float
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.used)

    def to_dict(self) -> dict[str, Any]:
        return {
            "used": self.used,
            "capacity": self.capacity,
            "remaining": self.remaining,
            "window_seconds": self.window_seconds,
            "window_start": datetime.fromtimestamp(self.window_start, tz=timezone.utc).isoformat(),
            "reset_at": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
        }


# ── Window ──────────────────────────────────────────────


class UsageWindow:
    """Thread-safe fixed-window call counter.

    Parameters
    ----------
    limits : WindowLimits
        Initial capacity and window length.
    clock : callable, optional
        Returns the current time in epoch seconds.  Defaults to ``time.time``.
    """

    def __init__(self, limits: WindowLimits, clock: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._clock = clock
        self._capacity = limits.capacity
        self._window_seconds = float(limits.window_seconds)
        self._used = 0
        self._window_start = clock()
        self._reset_at = self._window_start + self._window_seconds

    # ── Public API ──────────────────────────────────────

    @property
    def limits(self) -> WindowLimits:
        with self._lock:
            return WindowLimits(self._capacity, self._window_seconds)

    def initialize(self, capacity: int, window_seconds: float) -> None:
        """Replace the limits in place, keeping the current window's start and count.

        ``used`` is clamped to the new capacity so ``used <= capacity`` holds.
        """
        limits = WindowLimits(capacity, window_seconds)
        with self._lock:
            self._capacity = limits.capacity
            self._window_seconds = float(limits.window_seconds)
            self._reset_at = self._window_start + self._window_seconds
            self._used = min(self._used, self._capacity)
        logger.info("Usage window limits set to %d calls / %ss", capacity, window_seconds)

    def admit(self) -> Admission:
        """Check whether one more call fits in the current window (does not consume it)."""
        with self._lock:
            now = self._clock()
            self._maybe_reset(now)
            return self._check(now)

    def record_call(self) -> None:
        """Count one dispatched call against the current window.

        Calls are counted even past capacity so overspend stays visible.
        """
        with self._lock:
            self._maybe_reset(self._clock())
            self._used += 1
            used, capacity = self._used, self._capacity
        if used > capacity:
            logger.warning("Call recorded beyond the window budget: %d/%d used", used, capacity)

    def reserve(self) -> Admission:
        """Atomically admit and count one call.

        Two concurrent callers can never both take the last slot.  The
        returned admission's ``window_start`` is the token to pass to
        :meth:`release` if the call was never sent.
        """
        with self._lock:
            now = self._clock()
            self._maybe_reset(now)
            admission = self._check(now)
            if admission.permitted:
                self._used += 1
                admission = Admission.permit(self._used, self._capacity, self._window_start)
        if not admission.permitted:
            logger.warning("Admission rejected: %d/%d used, retry in %.1fs",
                           admission.used, admission.capacity, admission.retry_after)
        return admission

    def release(self, window_start: float | None) -> bool:
        """Return a slot taken by :meth:`reserve` for a call that was never sent.

        *window_start* is the token from the reserving admission.  If the
        window has reset since, the slot belonged to an earlier window and
        nothing is returned.  Returns True when a slot was freed.
        """
        with self._lock:
            self._maybe_reset(self._clock())
            if window_start is None or window_start != self._window_start or self._used == 0:
                return False
            self._used -= 1
            return True

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            self._maybe_reset(self._clock())
            return UsageSnapshot(
                used=self._used,
                capacity=self._capacity,
                window_seconds=self._window_seconds,
                window_start=self._window_start,
                reset_at=self._reset_at,
            )

    # ── Internals (caller holds the lock) ───────────────

    def _maybe_reset(self, now: float) -> None:
        if now >= self._reset_at:
            self._used = 0
            self._window_start = now
            self._reset_at = now + self._window_seconds

    def _check(self, now: float) -> Admission:
        if self._used >= self._capacity:
            return Admission.reject(self._reset_at - now, self._used, self._capacity)
        return Admission.permit(self._used, self._capacity)
