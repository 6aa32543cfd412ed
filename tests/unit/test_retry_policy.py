"""Tests for RetryPolicy backoff (kisaan_kernel/domain/retry.py)."""

import random

import pytest

from kisaan_kernel.domain.retry import NO_WAIT, RetryPolicy


class TestRetryPolicy:
    def test_exponential_without_jitter(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.01, max_delay=1.0, multiplier=2.0, jitter=0.0)
        assert policy.delays() == pytest.approx([0.01, 0.02, 0.04, 0.08])

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(max_attempts=6, base_delay=0.1, max_delay=0.25, jitter=0.0)
        assert max(policy.delays()) == pytest.approx(0.25)

    def test_jitter_only_shortens(self):
        policy = RetryPolicy(max_attempts=4, base_delay=0.1, max_delay=1.0, jitter=0.5)
        rng = random.Random(7)
        for attempt in range(1, 4):
            full = min(1.0, 0.1 * 2 ** (attempt - 1))
            delay = policy.delay_for(attempt, rng)
            assert full * 0.5 <= delay <= full

    def test_no_wait_after_final_attempt(self):
        assert len(RetryPolicy(max_attempts=3).delays()) == 2
        assert RetryPolicy(max_attempts=1).delays() == []

    def test_no_wait_policy(self):
        assert NO_WAIT.delays() == [0.0, 0.0]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"base_delay": -1},
            {"multiplier": 0.5},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_policies_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_attempt_numbers_start_at_one(self):
        with pytest.raises(ValueError):
            RetryPolicy().delay_for(0)
