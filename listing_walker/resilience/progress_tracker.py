"""
Progress tracking for resumable walks.
Persists the single WorkflowProgress record so a fresh process can pick up
exactly where the previous one stopped.
"""

import logging
from datetime import datetime
from typing import Optional

from ..errors import ProgressInvariantError
from ..kv_store import KeyValueStore
from ..models import WorkflowProgress

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Durable load / persist / clear of the active job's progress."""

    PROGRESS_KEY = "workflow_progress"

    def __init__(self, store: KeyValueStore):
        """
        Initialize tracker on top of a persistent store.

        Args:
            store: KeyValueStore shared with the block detector
        """
        self.store = store

    def load(self) -> Optional[WorkflowProgress]:
        """
        Load the persisted progress.

        Returns:
            WorkflowProgress if one exists and decodes, None otherwise
        """
        data = self.store.get(self.PROGRESS_KEY)
        if not data:
            return None

        try:
            progress = WorkflowProgress.from_dict(data)
            progress.validate()
            return progress
        except (KeyError, TypeError, ValueError, AttributeError, ProgressInvariantError) as e:
            logger.error("Persisted progress is unreadable, ignoring it: %s", e)
            return None

    def persist(self, progress: WorkflowProgress):
        """
        Validate and write progress immediately.

        Callers persist after every mutation that must survive a transition,
        since a transition ends the incarnation.

        Args:
            progress: WorkflowProgress to persist

        Raises:
            ProgressInvariantError: if the progress is inconsistent
        """
        progress.validate()
        now = datetime.now().isoformat()
        if not progress.started_at:
            progress.started_at = now
        progress.last_updated = now
        self.store.set(self.PROGRESS_KEY, progress.to_dict())

    def clear(self):
        """Remove progress (finalize or cancel)."""
        self.store.remove(self.PROGRESS_KEY)

    def has_active_job(self) -> bool:
        """True only for a readable record; an unreadable one does not hold the slot."""
        return self.load() is not None

    def has_record(self) -> bool:
        return self.store.get(self.PROGRESS_KEY) is not None

    def get_stats(self) -> dict:
        """
        Get current progress statistics.

        Returns:
            Dict with progress stats
        """
        progress = self.load()
        if progress is None:
            return {
                'job_id': None,
                'cursor': 0,
                'total': 0,
                'extracted': 0,
                'percent': 0.0
            }

        total = len(progress.target_queue)
        return {
            'job_id': progress.job_id,
            'cursor': progress.cursor,
            'total': total,
            'extracted': len(progress.results),
            'percent': (progress.cursor / total * 100) if total > 0 else 0.0
        }
