"""
Result sinks.
Accept the aggregated payload of a finalized job.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .errors import ResultSubmissionError
from .resilience.retry_handler import RetryHandler

logger = logging.getLogger(__name__)


class ResultSink(ABC):
    """Destination of finalized job results."""

    @abstractmethod
    def submit(self, payload: Dict[str, Any]):
        """
        Deliver a result payload.

        Raises:
            ResultSubmissionError: if the payload was not accepted
        """


class HttpResultSink(ResultSink):
    """POSTs results to the job API with a bearer key."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        retry_handler: Optional[RetryHandler] = None,
        session: Optional[requests.Session] = None
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.retry_handler = retry_handler or RetryHandler()
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if api_key:
            self.session.headers['Authorization'] = f'Bearer {api_key}'

    def _post(self, payload: Dict[str, Any]) -> bool:
        response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return True

    def submit(self, payload: Dict[str, Any]):
        success, result = self.retry_handler.execute_with_retry(self._post, payload)
        if not success:
            raise ResultSubmissionError(f"Failed to submit results for job {payload.get('jobId')}: {result}")
        logger.info("Submitted %d records for job %s",
                    payload.get('metadata', {}).get('itemsExtracted', 0), payload.get('jobId'))


class JsonFileResultSink(ResultSink):
    """Writes each job's payload to <output_dir>/<job_id>.json."""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)

    def path_for(self, job_id: str) -> Path:
        return self.output_dir / f"{job_id}.json"

    def submit(self, payload: Dict[str, Any]):
        job_id = payload.get('jobId')
        if not job_id:
            raise ResultSubmissionError("Payload has no jobId")
        path = self.path_for(job_id)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.output_dir, suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            raise ResultSubmissionError(f"Could not write {path}: {e}") from e
        logger.info("Wrote results to %s", path)
