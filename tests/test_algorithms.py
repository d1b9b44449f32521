"""Tests for turnstile.ratelimit.algorithms — per-caller admission state."""

import threading

import pytest

from turnstile.errors import ConfigurationError
from turnstile.ratelimit.algorithms import (
    FixedWindowState,
    MinimumCooldownFixedWindowState,
    MinimumCooldownUserFixedWindowState,
    SlidingWindowState,
    TokenBucketState,
    UserFixedWindowState,
    create_state,
)
from turnstile.ratelimit.rule import RateLimitAlgorithm, RateLimitRule


def _rule(max_requests: int, window_ms: int, algorithm: RateLimitAlgorithm) -> RateLimitRule:
    return RateLimitRule("test", max_requests, window_ms, algorithm)


class TestRule:
    def test_empty_key(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitRule("", 1, 1000)

    def test_negative_max(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitRule("x", -1, 1000)

    def test_bad_algorithm(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitRule("x", 1, 1000, "token_bucket")  # type: ignore[arg-type]

    def test_default_algorithm(self) -> None:
        assert RateLimitRule("x", 1, 1000).algorithm is RateLimitAlgorithm.USER_FIXED_WINDOW


class TestCreateState:
    @pytest.mark.parametrize(
        ("algorithm", "state_type"),
        [
            (RateLimitAlgorithm.FIXED_WINDOW, FixedWindowState),
            (RateLimitAlgorithm.USER_FIXED_WINDOW, UserFixedWindowState),
            (RateLimitAlgorithm.MINIMUM_COOLDOWN_FIXED_WINDOW, MinimumCooldownFixedWindowState),
            (
                RateLimitAlgorithm.MINIMUM_COOLDOWN_USER_FIXED_WINDOW,
                MinimumCooldownUserFixedWindowState,
            ),
            (RateLimitAlgorithm.SLIDING_WINDOW, SlidingWindowState),
            (RateLimitAlgorithm.TOKEN_BUCKET, TokenBucketState),
        ],
    )
    def test_maps_algorithm_to_state(self, algorithm, state_type) -> None:
        state = create_state(_rule(1, 1000, algorithm))
        assert type(state) is state_type
        assert state.algorithm is algorithm


class TestFixedWindow:
    def test_sequence(self) -> None:
        state = create_state(_rule(3, 1000, RateLimitAlgorithm.FIXED_WINDOW))
        assert [state.allow(t) for t in (0, 1, 2, 3)] == [True, True, True, False]
        assert state.allow(1000) is True

    def test_aligned_to_wall_clock(self) -> None:
        state = create_state(_rule(1, 1000, RateLimitAlgorithm.FIXED_WINDOW))
        assert state.allow(999) is True
        # New aligned window starts at 1000, one millisecond later
        assert state.retry_after_ms(999) == 1
        assert state.allow(1000) is True

    def test_retry_after_runs_to_window_end(self) -> None:
        state = create_state(_rule(1, 1000, RateLimitAlgorithm.FIXED_WINDOW))
        state.allow(250)
        assert state.retry_after_ms(400) == 600

    def test_zero_window_is_per_instant(self) -> None:
        state = create_state(_rule(1, 0, RateLimitAlgorithm.FIXED_WINDOW))
        assert state.allow(5) is True
        assert state.allow(5) is False
        assert state.retry_after_ms(5) == 1
        assert state.allow(6) is True


class TestUserFixedWindow:
    def test_window_anchored_at_first_request(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.USER_FIXED_WINDOW))
        assert state.allow(500) is True
        assert state.allow(900) is True
        assert state.allow(1200) is False
        assert state.retry_after_ms(1200) == 300
        assert state.allow(1500) is True


class TestMinimumCooldown:
    def test_user_window_waits_from_last_admitted_request(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.MINIMUM_COOLDOWN_USER_FIXED_WINDOW))
        assert state.allow(0) is True
        assert state.allow(100) is True
        assert state.allow(500) is False
        # The plain variant would reset here; the cooldown runs from t=100
        assert state.allow(1000) is False
        assert state.retry_after_ms(1000) == 100
        assert state.allow(1100) is True

    def test_aligned_window_not_rescued_by_boundary(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.MINIMUM_COOLDOWN_FIXED_WINDOW))
        assert state.allow(900) is True
        assert state.allow(950) is True
        assert state.allow(1000) is False
        assert state.retry_after_ms(1000) == 950
        assert state.allow(1950) is True

    def test_boundary_still_resets_unexhausted_counter(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.MINIMUM_COOLDOWN_FIXED_WINDOW))
        assert state.allow(900) is True
        assert state.allow(1000) is True
        assert state.allow(1001) is True
        assert state.allow(1002) is False

    def test_plain_fixed_window_is_rescued_by_boundary(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.FIXED_WINDOW))
        state.allow(900)
        state.allow(950)
        assert state.allow(1000) is True


class TestSlidingWindow:
    def test_sequence(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.SLIDING_WINDOW))
        assert state.allow(0) is True
        assert state.allow(500) is True
        assert state.allow(999) is False
        assert state.retry_after_ms(999) == 1
        assert state.allow(1000) is True

    def test_denied_attempts_are_not_recorded(self) -> None:
        state = create_state(_rule(1, 1000, RateLimitAlgorithm.SLIDING_WINDOW))
        assert state.allow(0) is True
        assert state.allow(600) is False
        assert state.allow(1000) is True

    def test_zero_window_admits_everything(self) -> None:
        state = create_state(_rule(1, 0, RateLimitAlgorithm.SLIDING_WINDOW))
        assert all(state.allow(10) for _ in range(5))


class TestTokenBucket:
    def test_burst_then_refill(self) -> None:
        state = create_state(_rule(5, 1000, RateLimitAlgorithm.TOKEN_BUCKET))
        assert all(state.allow(0) for _ in range(5))
        assert state.allow(0) is False
        assert state.retry_after_ms(0) == 200
        assert state.allow(200) is True
        assert state.allow(200) is False

    def test_refill_is_capped(self) -> None:
        state = create_state(_rule(2, 1000, RateLimitAlgorithm.TOKEN_BUCKET))
        state.allow(0)
        results = [state.allow(100_000) for _ in range(3)]
        assert results == [True, True, False]

    def test_zero_window_refills_instantly(self) -> None:
        state = create_state(_rule(1, 0, RateLimitAlgorithm.TOKEN_BUCKET))
        assert state.allow(0) is True
        assert state.allow(1) is True


class TestSharedContract:
    @pytest.mark.parametrize("algorithm", list(RateLimitAlgorithm))
    def test_zero_max_never_admits(self, algorithm: RateLimitAlgorithm) -> None:
        state = create_state(_rule(0, 1000, algorithm))
        assert state.allow(0) is False
        assert state.allow(10_000) is False
        assert state.retry_after_ms(0) == 1000

    @pytest.mark.parametrize("algorithm", list(RateLimitAlgorithm))
    def test_retry_after_zero_iff_admissible(self, algorithm: RateLimitAlgorithm) -> None:
        state = create_state(_rule(3, 1000, algorithm))
        for now in range(0, 3000, 37):
            wait = state.retry_after_ms(now)
            admitted = state.allow(now)
            assert (wait == 0) == admitted, (algorithm, now, wait)
            if not admitted:
                assert wait >= 1

    @pytest.mark.parametrize("algorithm", list(RateLimitAlgorithm))
    def test_concurrent_allow_admits_exactly_max(self, algorithm: RateLimitAlgorithm) -> None:
        state = create_state(_rule(100, 60_000, algorithm))
        admitted: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            local = [state.allow(1_000) for _ in range(50)]
            with lock:
                admitted.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(admitted) == 100

    def test_last_seen_tracks_attempts(self) -> None:
        state = create_state(_rule(1, 1000, RateLimitAlgorithm.USER_FIXED_WINDOW))
        state.allow(10)
        state.allow(20)
        assert state.last_seen == 20
