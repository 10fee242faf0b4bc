"""
Retry policy for replaying pending records.

Transient failures are never retried inline; the reconciliation sweep
asks the policy whether a record is due and when it has used up its
attempts.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..core.config import RetrySettings
from ..core.models import SyncRecord
from ..utils.date import utc_now


@dataclass
class RetryPolicy:
    """Exponential backoff with an attempt cap."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 300.0
    exponential_base: float = 2.0
    jitter: bool = False

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            exponential_base=settings.exponential_base,
            jitter=settings.jitter,
        )

    def backoff(self, attempt: int) -> float:
        """
        Delay in seconds to wait after the given (1-based) failed attempt.

        Uses exponential backoff capped at max_delay, with optional
        ±25% jitter.
        """
        if attempt <= 0:
            return 0.0

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * 0.25
            delay = max(0.0, delay + random.uniform(-jitter_range, jitter_range))

        return delay

    def should_retry(self, attempts: int) -> bool:
        """True while a record has attempts left."""
        return attempts < self.max_attempts

    def next_attempt_at(self, record: SyncRecord) -> Optional[datetime]:
        if record.last_attempt is None or record.attempts <= 0:
            return None
        return record.last_attempt + timedelta(seconds=self.backoff(record.attempts))

    def is_due(self, record: SyncRecord, now: Optional[datetime] = None) -> bool:
        """True if the record's backoff window has elapsed."""
        next_at = self.next_attempt_at(record)
        if next_at is None:
            return True
        return (now or utc_now()) >= next_at
