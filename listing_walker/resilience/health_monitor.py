"""
Health monitoring for the browser session.
Detects an unresponsive browser between incarnations and restarts it.
"""

import logging
import time
from typing import List, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from ..browser import BrowserPage

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Monitors browser session health and triggers recovery."""

    def __init__(
        self,
        page: "BrowserPage",
        max_failures: int = 5,
        failure_window: float = 600.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize monitor with page reference.

        Args:
            page: BrowserPage to monitor
            max_failures: Max failures within window before giving up
            failure_window: Time window in seconds for counting failures
            clock: Function returning seconds
        """
        self.page = page
        self.max_failures = max_failures
        self.failure_window = failure_window
        self._clock = clock
        self._failure_times: List[float] = []
        self._recovery_count = 0

    def check_health(self) -> bool:
        """
        Check if the browser session is responsive.

        Returns:
            True if session is responsive, False otherwise
        """
        try:
            return self.page.is_alive()
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return False

    def record_failure(self):
        """Record a session failure event."""
        now = self._clock()
        cutoff = now - self.failure_window
        self._failure_times = [t for t in self._failure_times if t > cutoff]
        self._failure_times.append(now)
        logger.warning("Session failure recorded (%d in window)", len(self._failure_times))

    def should_pause(self) -> bool:
        """
        Check if too many failures occurred.

        Returns:
            True if failures reach the threshold within the window
        """
        return self.get_failure_count() >= self.max_failures

    def recover(self) -> bool:
        """
        Attempt to recover the session by restarting the browser.

        Returns:
            True if recovery successful, False otherwise
        """
        self._recovery_count += 1
        logger.info("Attempting session recovery (attempt #%d)...", self._recovery_count)

        try:
            self.page.restart()
            if self.check_health():
                logger.info("Session recovery successful")
                return True
            logger.error("Session recovery failed - browser not responsive")
            return False
        except Exception as e:
            logger.error("Session recovery failed: %s", e)
            return False

    def get_failure_count(self) -> int:
        cutoff = self._clock() - self.failure_window
        return len([t for t in self._failure_times if t > cutoff])

    def get_stats(self) -> dict:
        """
        Get health monitor statistics.

        Returns:
            Dict with monitor state info
        """
        return {
            'recent_failures': self.get_failure_count(),
            'total_recoveries': self._recovery_count,
            'max_failures': self.max_failures,
            'failure_window': self.failure_window,
            'should_pause': self.should_pause()
        }
