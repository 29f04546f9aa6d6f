from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Callable, TypeVar

from .errors import RETRYABLE_STATUSES

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for rate-limited or unavailable providers.

    Only failures carrying a ``status`` attribute in ``retry_statuses`` are
    retried. The delay before retry ``n`` (1-based) is ``base_delay_s * 2**(n-1)``,
    so the defaults sleep 1s then 2s before giving up on the third attempt.
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    retry_statuses: frozenset[int] = RETRYABLE_STATUSES
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def run(self, operation: Callable[[], T], *, label: str = "call") -> T:
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return operation()
            except Exception as exc:
                status = getattr(exc, "status", None)
                if status not in self.retry_statuses or attempt >= attempts - 1:
                    raise
                delay_s = self.base_delay_s * (2**attempt)
                logger.warning(
                    "%s: retry attempt %d/%d after %dms (status=%s)",
                    label,
                    attempt + 1,
                    attempts,
                    int(delay_s * 1000),
                    status,
                )
                self.sleep(delay_s)
        raise AssertionError("unreachable")
