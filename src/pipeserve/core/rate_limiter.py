"""
=============================================================================
SLIDING WINDOW RATE LIMITER
=============================================================================

Tracks recent request timestamps per client identifier and decides whether
one more request fits inside the window.

=============================================================================
SLIDING WINDOW LOG
=============================================================================

    limit = 3, window = 1000 ms, identifier = "10.0.0.7"

    time (ms) ──────────────────────────────────────────────────────────►

              100   400   700         1150
               │     │     │            │
    window     ●     ●     ●            ?
                                        │
                   ◄──────── 1000 ms ───┤
                                        │
    At t=1150 the entry at t=100 is older than the window and is pruned.
    Two entries remain (400, 700) → 2 < 3 → ALLOW, record 1150.

    At t=1160 three entries remain (400, 700, 1150) → DENY, record nothing.

Unlike a token bucket, a sliding log never lets a burst at the edge of two
fixed windows double the effective rate. The cost is one timestamp per
admitted request per identifier.

=============================================================================
CONCURRENCY
=============================================================================

    ┌──────────────┐     ┌──────────────┐
    │  Worker A    │     │  Worker B    │    same identifier, same tick
    └──────┬───────┘     └──────┬───────┘
           │                    │
           ▼                    ▼
    ┌──────────────────────────────────────┐
    │ _lock (mapping)  → find/create window│   short critical section
    └──────────────────┬───────────────────┘
                       ▼
    ┌──────────────────────────────────────┐
    │ window.lock → prune, count, append   │   one atomic check-and-record
    └──────────────────────────────────────┘

Without the per-identifier lock both workers could read "4 of 5", both
append, and admit 6 requests.

=============================================================================
MEMORY GROWTH
=============================================================================

Pruning shrinks an identifier's timestamp list but never removes the
identifier itself. Pass ``max_identifiers`` to bound the mapping: the
least recently used identifier is dropped once the bound is exceeded.

=============================================================================
"""

import threading
import time
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


Clock = Callable[[], float]


def _epoch_ms() -> float:
    return time.time() * 1000.0


@dataclass
class RateWindow:
    """
    Timestamps (ms since epoch) of admitted requests for one identifier.

    Attributes:
        timestamps: Admission times, oldest first.
        lock: Serializes check-and-record for this identifier.
    """
    timestamps: List[float] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def prune(self, now: float, window_ms: float) -> None:
        """Drop entries that are window_ms or more in the past."""
        self.timestamps = [t for t in self.timestamps if now - t < window_ms]


class SlidingWindowRateLimiter:
    """
    Per-identifier sliding window log.

    The limiter is a plain store object. Middleware receives it at
    construction time; tests can share or isolate instances freely.

    Example:
        limiter = SlidingWindowRateLimiter()

        if not limiter.check_and_record("10.0.0.7", limit=5, window_ms=60_000):
            return too_many_requests()

    Args:
        clock: Returns the current time in milliseconds since the epoch.
        max_identifiers: Optional LRU bound on tracked identifiers.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        max_identifiers: Optional[int] = None,
    ):
        if max_identifiers is not None and max_identifiers < 1:
            raise ValueError("max_identifiers must be >= 1")

        self._clock = clock or _epoch_ms
        self.max_identifiers = max_identifiers

        self._windows: "OrderedDict[str, RateWindow]" = OrderedDict()
        self._lock = threading.Lock()  # Protects _windows

    # =========================================================================
    # CORE OPERATION
    # =========================================================================

    def check_and_record(self, identifier: str, limit: int, window_ms: float) -> bool:
        """
        Decide whether one more request from ``identifier`` is allowed.

        Expired entries are pruned first. A denied request records nothing;
        an allowed request appends the current time.

        Args:
            identifier: Client key (forwarded-for address, API key, ...).
            limit: Maximum requests inside one window.
            window_ms: Window length in milliseconds.

        Returns:
            True if the request is admitted, False if the quota is used up.
        """
        window = self._window_for(identifier)

        with window.lock:
            now = self._clock()
            window.prune(now, window_ms)

            if len(window.timestamps) >= limit:
                logger.debug(
                    f"Rate limit hit for {identifier}: "
                    f"{len(window.timestamps)}/{limit} in {window_ms}ms"
                )
                return False

            window.timestamps.append(now)
            return True

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def remaining(self, identifier: str, limit: int, window_ms: float) -> int:
        """Requests still available to ``identifier`` in the current window."""
        window = self._peek(identifier)
        if window is None:
            return limit

        with window.lock:
            now = self._clock()
            live = sum(1 for t in window.timestamps if now - t < window_ms)
        return max(0, limit - live)

    def retry_after_ms(self, identifier: str, window_ms: float) -> float:
        """
        Milliseconds until the oldest live entry expires.

        Returns 0 when the identifier has no live entries.
        """
        window = self._peek(identifier)
        if window is None:
            return 0.0

        with window.lock:
            now = self._clock()
            live = [t for t in window.timestamps if now - t < window_ms]
        if not live:
            return 0.0
        return max(0.0, live[0] + window_ms - now)

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget one identifier, or every identifier when none is given."""
        with self._lock:
            if identifier is None:
                self._windows.clear()
            else:
                self._windows.pop(identifier, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._windows

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _window_for(self, identifier: str) -> RateWindow:
        with self._lock:
            window = self._windows.get(identifier)
            if window is None:
                window = RateWindow()
                self._windows[identifier] = window
                self._evict_if_needed()
            else:
                self._windows.move_to_end(identifier)
            return window

    def _peek(self, identifier: str) -> Optional[RateWindow]:
        with self._lock:
            return self._windows.get(identifier)

    def _evict_if_needed(self) -> None:
        # Caller holds self._lock
        if self.max_identifiers is None:
            return
        while len(self._windows) > self.max_identifiers:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug(f"Evicted rate window for {evicted}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# SlidingWindowRateLimiter.check_and_record(identifier, limit, window_ms)
#   1. find or create the identifier's window (mapping lock)
#   2. prune entries older than the window (window lock)
#   3. deny if count >= limit, else append now and allow
#
# Optional max_identifiers turns the mapping into an LRU.
# =============================================================================
