"""
Tests for the retry policy (secretary_sync/sync/retry.py).
"""

from datetime import datetime, timedelta, timezone

import pytest

from secretary_sync.core.config import RetrySettings
from secretary_sync.core.models import SyncRecord
from secretary_sync.sync.retry import RetryPolicy

pytestmark = [pytest.mark.unit, pytest.mark.sync]

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestRetryPolicy:

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0, exponential_base=2.0)
        assert [policy.backoff(n) for n in range(0, 6)] == [0.0, 1.0, 2.0, 4.0, 8.0, 10.0]

    def test_jitter_stays_within_a_quarter(self):
        policy = RetryPolicy(base_delay=4.0, jitter=True)
        for _ in range(50):
            assert 3.0 <= policy.backoff(1) <= 5.0

    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_fresh_record_is_due(self):
        assert RetryPolicy().is_due(SyncRecord(key="k"), NOW)

    def test_record_waits_for_backoff_window(self):
        policy = RetryPolicy(base_delay=10.0)
        record = SyncRecord(key="k", attempts=2, last_attempt=NOW)
        assert not policy.is_due(record, NOW + timedelta(seconds=19))
        assert policy.is_due(record, NOW + timedelta(seconds=20))

    def test_from_settings(self):
        policy = RetryPolicy.from_settings(RetrySettings(max_attempts=2, base_delay=0.5))
        assert policy.max_attempts == 2
        assert policy.backoff(1) == 0.5
