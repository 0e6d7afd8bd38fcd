"""
Exception hierarchy for the listing walker.
"""

from typing import List


class WalkerError(Exception):
    """Base class for all walker errors."""


class JobValidationError(WalkerError):
    """Raised when a job or its config fails validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid job: {', '.join(self.errors)}")


class JobRejectedError(WalkerError):
    """Raised when a job is submitted while another one is in flight."""


class ProgressInvariantError(WalkerError):
    """Raised when a WorkflowProgress would be persisted in an invalid state."""


class NavigationError(WalkerError):
    """A transition did not complete."""


class ContentTimeoutError(WalkerError):
    """Expected content did not appear within the readiness timeout."""


class ResultSubmissionError(WalkerError):
    """The result sink refused or failed to accept a payload."""
