"""
Resilience components for the listing walker.
"""

from .progress_tracker import ProgressTracker
from .block_detector import BlockDetector
from .transport_observer import TransportObserver
from .humanizer import Humanizer
from .health_monitor import HealthMonitor
from .retry_handler import RetryHandler
from .content_discovery import LinkCollector

__all__ = [
    'ProgressTracker',
    'BlockDetector',
    'TransportObserver',
    'Humanizer',
    'HealthMonitor',
    'RetryHandler',
    'LinkCollector'
]
