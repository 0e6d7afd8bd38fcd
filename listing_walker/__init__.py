"""
Resumable listing walker.
"""

from .config import HumanizeConfig, Job, JobConfig, SelectorConfig
from .models import ExtractedRecord, StepOutcome, WorkflowProgress, WorkflowState
from .scraper_controller import WalkController

__version__ = "0.1.0"

__all__ = [
    'HumanizeConfig',
    'Job',
    'JobConfig',
    'SelectorConfig',
    'ExtractedRecord',
    'StepOutcome',
    'WorkflowProgress',
    'WorkflowState',
    'WalkController',
]
