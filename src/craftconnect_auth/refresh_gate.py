"""Back-off gate for client-side token refresh attempts.

This module implements RefreshGate, a thread-safe throttle that stops a client
from hammering the refresh endpoint with a refresh token that just failed.
This protects against:

1. Retry storms when many callers discover an expired session at once
2. Burning server capacity on a refresh token that is already invalid
3. Cascading failures while the refresh endpoint is down

After a failure the gate denies further attempts for a configured interval
and counts the denials, logging once the count reaches a threshold.
"""

from __future__ import annotations

import threading
import time
from typing import Final

from .logging import get_logger

_DEFAULT_INTERVAL: Final[float] = 10
"""Default back-off after a failed refresh, in seconds."""

_DEFAULT_ALERT_THRESHOLD: Final[int] = 5
"""Default number of denials before a warning is logged."""

log = get_logger(__name__)


class RefreshGate:
    """Thread-safe back-off for refresh operations.

    A success (or a fresh gate) leaves the gate open. A failure closes it for
    ``min_interval`` seconds; attempts during that window are denied and
    counted.

    Thread Safety:
        All operations are protected by an internal lock.

    Attributes:
        _min_interval: Seconds to stay closed after a failure.
        _alert_threshold: Number of denials before logging a warning.
        _lock: Thread synchronization lock.
        _next_allowed_at: Unix timestamp when the next attempt is allowed.
        _denied_attempts: Count of denied attempts since the last failure.
    """

    def __init__(
        self,
        min_interval: float = _DEFAULT_INTERVAL,
        alert_threshold: int = _DEFAULT_ALERT_THRESHOLD,
    ) -> None:
        """Initialize the refresh gate.

        Args:
            min_interval: Seconds to deny attempts after a failure.
            alert_threshold: Number of denied attempts before warning.

        Raises:
            ValueError: If min_interval or alert_threshold are invalid.
        """
        if min_interval <= 0:
            raise ValueError(f"min_interval must be positive, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._min_interval = min_interval
        self._alert_threshold = alert_threshold

        self._lock = threading.Lock()
        self._next_allowed_at: float = 0.0
        self._denied_attempts: int = 0

    def allow(self) -> bool:
        """Check whether a refresh attempt may go to the network now.

        Returns:
            True if the gate is open, False while backing off after a failure.
        """
        now = time.time()

        with self._lock:
            if now < self._next_allowed_at:
                self._denied_attempts += 1
                if self._denied_attempts == self._alert_threshold:
                    log.warning(
                        "refresh_throttled",
                        denied=self._denied_attempts,
                        retry_in=round(self._next_allowed_at - now, 3),
                    )
                return False
            return True

    def record_failure(self) -> None:
        """Close the gate for ``min_interval`` seconds."""
        with self._lock:
            self._next_allowed_at = time.time() + self._min_interval
            self._denied_attempts = 0

    def record_success(self) -> None:
        """Re-open the gate immediately."""
        with self._lock:
            self._next_allowed_at = 0.0
            self._denied_attempts = 0

    @property
    def denied_attempts(self) -> int:
        with self._lock:
            return self._denied_attempts
