"""
Retry handling with exponential backoff.
Bounds the retries of transient step failures (readiness timeouts, failed
transitions, result submission).
"""

import logging
import time
from typing import Callable, Tuple, Any, Optional

from ..config import RetryConfig

logger = logging.getLogger(__name__)


class RetryHandler:
    """Manages retry logic with exponential backoff."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        should_abort: Optional[Callable[[], bool]] = None
    ):
        """
        Initialize retry handler.

        Args:
            config: RetryConfig instance, uses defaults if None
            sleep: Sleep function taking seconds
            should_abort: Checked before every attempt; a True result stops
                retrying (used to stop as soon as a block is raised)
        """
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._should_abort = should_abort
        self._total_retries = 0

    def execute_with_retry(
        self,
        func: Callable,
        *args,
        **kwargs
    ) -> Tuple[bool, Any]:
        """
        Execute function with retry logic.

        A call succeeds when it returns without raising and its result is not
        None or False.

        Args:
            func: Function to execute
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Tuple of (success: bool, result or last error message)
        """
        last_error = None
        delay = self.config.base_delay

        for attempt in range(1, self.config.max_retries + 1):
            if self._should_abort and self._should_abort():
                return False, "aborted"
            try:
                result = func(*args, **kwargs)
                if result is not None and result is not False:
                    return True, result
                last_error = f"{getattr(func, '__name__', 'step')} returned {result!r}"
            except Exception as e:
                last_error = str(e)
                logger.warning("Attempt %d/%d failed: %s", attempt, self.config.max_retries, e)

            if attempt < self.config.max_retries:
                sleep_time = min(delay, self.config.max_delay)
                logger.debug("Retrying in %.1fs...", sleep_time)
                self._total_retries += 1
                self._sleep(sleep_time)
                delay *= self.config.backoff_factor

        return False, last_error

    def get_stats(self) -> dict:
        """
        Get retry handler statistics.

        Returns:
            Dict with handler state info
        """
        return {
            'total_retries': self._total_retries,
            'max_retries': self.config.max_retries,
            'base_delay': self.config.base_delay
        }
