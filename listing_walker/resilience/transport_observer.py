"""
Network-level block signal.
Feeds completed exchanges reported by the browser into the block detector,
independently of the content heuristic.
"""

import logging
from typing import Iterable, Tuple, Optional, TYPE_CHECKING

from .block_detector import BlockDetector

if TYPE_CHECKING:
    from ..browser import BrowserPage

logger = logging.getLogger(__name__)


class TransportObserver:
    """Reports network status codes and URLs to the block detector."""

    def __init__(self, detector: BlockDetector):
        self.detector = detector
        self._observed = 0
        self._triggered = 0

    def report(self, status: Optional[int], url: Optional[str]) -> bool:
        """
        Report one completed exchange.

        Returns:
            True if it raised the block flag
        """
        self._observed += 1
        if self.detector.observe_response(status, url):
            self._triggered += 1
            return True
        return False

    def report_many(self, exchanges: Iterable[Tuple[Optional[int], Optional[str]]]) -> bool:
        triggered = False
        for status, url in exchanges:
            triggered = self.report(status, url) or triggered
        return triggered

    def poll(self, page: "BrowserPage") -> bool:
        """
        Drain the page's network events and report them.

        Returns:
            True if any exchange raised the block flag
        """
        try:
            events = page.network_events()
        except Exception as e:
            logger.debug("Could not read network events: %s", e)
            return False
        return self.report_many(events)

    def get_stats(self) -> dict:
        return {
            'observed': self._observed,
            'triggered': self._triggered
        }
