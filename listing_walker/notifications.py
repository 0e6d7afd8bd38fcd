"""
Progress notification channel.
Best-effort fan-out of job lifecycle events to registered listeners.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

STARTING = 'Starting'
PROCESSING = 'Processing'
PAUSED = 'Paused'
COMPLETED = 'Completed'
CANCELLED = 'Cancelled'

Listener = Callable[[str, Dict[str, Any]], None]


class ProgressNotifier:
    """Delivers progress events; a failing listener never affects the walk."""

    def __init__(self, listeners: List[Listener] = None):
        self._listeners: List[Listener] = list(listeners or [])
        self.history: List[tuple] = []

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def emit(self, event: str, **data):
        """
        Send an event to every listener.

        Args:
            event: One of STARTING, PROCESSING, PAUSED, COMPLETED, CANCELLED
            **data: Event payload (e.g. current=3, total=10 for PROCESSING)
        """
        self.history.append((event, data))
        if event == PROCESSING and 'current' in data:
            logger.info("%s %s/%s", event, data['current'], data.get('total', '?'))
        else:
            logger.info("%s %s", event, data or '')
        for listener in self._listeners:
            try:
                listener(event, data)
            except Exception as e:
                logger.warning("Progress listener failed on %s: %s", event, e)
