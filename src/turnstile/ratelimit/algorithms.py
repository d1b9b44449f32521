"""Per-caller rate-limit state, one class per algorithm.

Every state object owns its own lock. ``allow()`` is a single atomic
check-and-mutate; ``retry_after_ms()`` reads the same state under the
same lock and returns 0 exactly when ``allow()`` would admit.

Timestamps are integer milliseconds since the epoch. Both operations
accept an explicit ``now_ms`` so callers (and tests) can pin the clock.
"""

import math
import threading
import time
from collections import deque
from typing import ClassVar

from turnstile.ratelimit.rule import RateLimitAlgorithm, RateLimitRule


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class RateLimitState:
    """Base class: lock handling, ``max_requests == 0`` and bookkeeping.

    Subclasses implement ``_allow`` and ``_retry_after``; both run with
    the instance lock held.
    """

    __slots__ = ("_lock", "last_seen", "rule")

    algorithm: ClassVar[RateLimitAlgorithm]

    def __init__(self, rule: RateLimitRule) -> None:
        self.rule = rule
        self.last_seen = 0
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self.rule.max_requests

    @property
    def window_ms(self) -> int:
        return self.rule.window_ms

    def allow(self, now_ms: int | None = None) -> bool:
        """Admit or deny one request at ``now_ms``. Mutates state."""
        now = now_millis() if now_ms is None else now_ms
        with self._lock:
            self.last_seen = max(self.last_seen, now)
            if self.rule.max_requests <= 0:
                return False
            return self._allow(now)

    def retry_after_ms(self, now_ms: int | None = None) -> int:
        """Milliseconds until ``allow()`` would admit; 0 if it would now."""
        now = now_millis() if now_ms is None else now_ms
        with self._lock:
            if self.rule.max_requests <= 0:
                return max(self.rule.window_ms, 1)
            return self._retry_after(now)

    def _allow(self, now: int) -> bool:
        raise NotImplementedError

    def _retry_after(self, now: int) -> int:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule={self.rule.key!r}, max={self.max_requests}, window_ms={self.window_ms})"


class FixedWindowState(RateLimitState):
    """Counter over wall-clock aligned windows."""

    __slots__ = ("count", "window_start")

    algorithm = RateLimitAlgorithm.FIXED_WINDOW

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.window_start: int | None = None
        self.count = 0

    def _aligned(self, now: int) -> int:
        # A non-positive window makes every instant its own window.
        window = self.rule.window_ms
        if window <= 0:
            return now
        return now // window * window

    def _allow(self, now: int) -> bool:
        start = self._aligned(now)
        if start != self.window_start:
            self.window_start = start
            self.count = 0
        if self.count < self.rule.max_requests:
            self.count += 1
            return True
        return False

    def _retry_after(self, now: int) -> int:
        start = self._aligned(now)
        if start != self.window_start or self.count < self.rule.max_requests:
            return 0
        return max(1, start + max(self.rule.window_ms, 0) - now)


class UserFixedWindowState(RateLimitState):
    """Counter over a window anchored at the caller's first request."""

    __slots__ = ("count", "window_start")

    algorithm = RateLimitAlgorithm.USER_FIXED_WINDOW

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.window_start: int | None = None
        self.count = 0

    def _expired(self, now: int) -> bool:
        return self.window_start is None or now - self.window_start >= self.rule.window_ms

    def _allow(self, now: int) -> bool:
        if self._expired(now):
            self.window_start = now
            self.count = 0
        if self.count < self.rule.max_requests:
            self.count += 1
            return True
        return False

    def _retry_after(self, now: int) -> int:
        if self._expired(now) or self.count < self.rule.max_requests:
            return 0
        assert self.window_start is not None
        return max(1, self.window_start + self.rule.window_ms - now)


class MinimumCooldownFixedWindowState(FixedWindowState):
    """Aligned fixed window that an exhausted caller cannot escape early.

    While the caller has allowance left the window behaves like
    ``FixedWindowState``. Once exhausted, the next boundary does not
    reset the counter; only a full window since the last admitted
    request does.
    """

    __slots__ = ("last_request",)

    algorithm = RateLimitAlgorithm.MINIMUM_COOLDOWN_FIXED_WINDOW

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.last_request: int | None = None

    def _allow(self, now: int) -> bool:
        limit = self.rule.max_requests
        start = self._aligned(now)
        if start != self.window_start and self.count < limit:
            self.window_start = start
            self.count = 0
        if self.count < limit:
            self.count += 1
            self.last_request = now
            return True
        if self._cooled_down(now):
            self.window_start = start
            self.count = 1
            self.last_request = now
            return True
        return False

    def _cooled_down(self, now: int) -> bool:
        return self.last_request is not None and now >= self.last_request + self.rule.window_ms

    def _retry_after(self, now: int) -> int:
        if self.count < self.rule.max_requests or self._cooled_down(now):
            return 0
        assert self.last_request is not None
        return max(1, self.last_request + self.rule.window_ms - now)


class MinimumCooldownUserFixedWindowState(UserFixedWindowState):
    """Caller-anchored fixed window with the minimum-cooldown override."""

    __slots__ = ("last_request",)

    algorithm = RateLimitAlgorithm.MINIMUM_COOLDOWN_USER_FIXED_WINDOW

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.last_request: int | None = None

    def _allow(self, now: int) -> bool:
        limit = self.rule.max_requests
        if self.count < limit and self._expired(now):
            self.window_start = now
            self.count = 0
        if self.count < limit:
            self.count += 1
            self.last_request = now
            return True
        if self._cooled_down(now):
            self.window_start = now
            self.count = 1
            self.last_request = now
            return True
        return False

    def _cooled_down(self, now: int) -> bool:
        return self.last_request is not None and now >= self.last_request + self.rule.window_ms

    def _retry_after(self, now: int) -> int:
        if self.count < self.rule.max_requests or self._cooled_down(now):
            return 0
        assert self.last_request is not None
        return max(1, self.last_request + self.rule.window_ms - now)


class SlidingWindowState(RateLimitState):
    """Admission timestamps over a trailing window.

    The deque never holds more than ``max_requests`` entries, so pruning
    is bounded by the number of admissions inside one window.
    """

    __slots__ = ("timestamps",)

    algorithm = RateLimitAlgorithm.SLIDING_WINDOW

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.timestamps: deque[int] = deque()

    def _allow(self, now: int) -> bool:
        cutoff = now - self.rule.window_ms
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()
        if len(self.timestamps) < self.rule.max_requests:
            self.timestamps.append(now)
            return True
        return False

    def _retry_after(self, now: int) -> int:
        cutoff = now - self.rule.window_ms
        live = [ts for ts in self.timestamps if ts > cutoff]
        if len(live) < self.rule.max_requests:
            return 0
        oldest = live[len(live) - self.rule.max_requests]
        return max(1, oldest + self.rule.window_ms - now)


class TokenBucketState(RateLimitState):
    """Continuously refilling bucket that starts full."""

    __slots__ = ("last_refill", "tokens")

    algorithm = RateLimitAlgorithm.TOKEN_BUCKET

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)
        self.tokens = float(rule.max_requests)
        self.last_refill: int | None = None

    def _refill(self, now: int) -> None:
        capacity = self.rule.max_requests
        window = self.rule.window_ms
        if self.last_refill is None:
            self.last_refill = now
            return
        if window <= 0:
            self.tokens = float(capacity)
        elif now > self.last_refill:
            # Multiply before dividing so whole-token refills stay exact
            self.tokens = min(float(capacity), self.tokens + (now - self.last_refill) * capacity / window)
        if now > self.last_refill:
            self.last_refill = now

    def _allow(self, now: int) -> bool:
        self._refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def _retry_after(self, now: int) -> int:
        # Refill is monotonic, so refilling on a query is safe.
        self._refill(now)
        if self.tokens >= 1.0:
            return 0
        missing = 1.0 - self.tokens
        return max(1, math.ceil(missing * self.rule.window_ms / self.rule.max_requests))


STATE_TYPES: dict[RateLimitAlgorithm, type[RateLimitState]] = {
    RateLimitAlgorithm.FIXED_WINDOW: FixedWindowState,
    RateLimitAlgorithm.USER_FIXED_WINDOW: UserFixedWindowState,
    RateLimitAlgorithm.MINIMUM_COOLDOWN_FIXED_WINDOW: MinimumCooldownFixedWindowState,
    RateLimitAlgorithm.MINIMUM_COOLDOWN_USER_FIXED_WINDOW: MinimumCooldownUserFixedWindowState,
    RateLimitAlgorithm.SLIDING_WINDOW: SlidingWindowState,
    RateLimitAlgorithm.TOKEN_BUCKET: TokenBucketState,
}


def create_state(rule: RateLimitRule) -> RateLimitState:
    """Create a fresh state object for ``rule.algorithm``."""
    return STATE_TYPES[rule.algorithm](rule)
