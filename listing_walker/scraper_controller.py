"""
Resumable walk orchestrator.
Every step() is one incarnation: it rebuilds its position from the persisted
progress and the page's current URL, does the work of that position, and
ends with at most one transition.
"""

import logging
import random
import time
from typing import Callable, Optional, Union, TYPE_CHECKING

from .config import BlockConfig, Job, RetryConfig
from .errors import ContentTimeoutError, JobRejectedError, NavigationError, ResultSubmissionError
from .extractor import DetailExtractor, content_word_count
from .kv_store import KeyValueStore
from .models import (
    ExtractedRecord,
    JobResult,
    JobStatus,
    StepOutcome,
    WorkflowProgress,
    WorkflowState,
)
from .notifications import CANCELLED, COMPLETED, PAUSED, PROCESSING, STARTING, ProgressNotifier
from .result_sink import ResultSink
from .resilience.block_detector import BlockDetector
from .resilience.content_discovery import LinkCollector
from .resilience.health_monitor import HealthMonitor
from .resilience.humanizer import Humanizer
from .resilience.progress_tracker import ProgressTracker
from .resilience.retry_handler import RetryHandler
from .resilience.transport_observer import TransportObserver
from .utils import is_http_url, now_ms, same_resource

if TYPE_CHECKING:
    from .browser import BrowserPage

logger = logging.getLogger(__name__)

DEFAULT_LISTING_CONTAINER = '.searchResultsItem'
PHONE_REVEAL_TEXT = r'telefon|\bara\b|gsm|phone|numara'


class WalkController:
    """Sole entry point of the walk: job start, incarnations, cancel, resume."""

    def __init__(
        self,
        page: "BrowserPage",
        store: KeyValueStore,
        sink: Optional[ResultSink] = None,
        notifier: Optional[ProgressNotifier] = None,
        block_config: Optional[BlockConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        content_timeout: float = 15.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize controller and its collaborators.

        Args:
            page: Browser page the walk drives
            store: Persistent store shared by progress and block state
            sink: Receives the result payload on finalize
            notifier: Progress notification channel
            block_config: Backoff window settings
            retry_config: Bounds for transient step retries
            content_timeout: Seconds to wait for detail content per attempt
            sleep: Sleep function taking seconds
            rng: Random source for every humanized decision
            clock: Function returning epoch milliseconds
        """
        self.page = page
        self.store = store
        self.sink = sink
        self.notifier = notifier or ProgressNotifier()
        self.content_timeout = content_timeout
        self.rng = rng or random.Random()

        self.tracker = ProgressTracker(store)
        self.detector = BlockDetector(store, config=block_config, rng=self.rng, clock=clock)
        self.observer = TransportObserver(self.detector)
        self.humanizer = Humanizer(page, sleep=sleep, rng=self.rng)
        self.retry_handler = RetryHandler(
            config=retry_config,
            sleep=sleep,
            should_abort=self.detector.is_blocked
        )
        self.health_monitor = HealthMonitor(page=page)
        self.collector = LinkCollector(
            page, self.humanizer, self.detector, self.observer, navigate=self._transition
        )
        self.last_result: Optional[JobResult] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_job(self, job: Union[Job, dict]) -> StepOutcome:
        """
        Accept a job, collect its targets and set up the walk.

        Args:
            job: Job or raw job dict (validated via Job.from_dict)

        Returns:
            TRANSITIONED when the walk is ready for step(), FINALIZED when
            nothing was collected, BLOCKED or HALTED otherwise

        Raises:
            JobValidationError: if the job is invalid
            JobRejectedError: if another job is in flight
        """
        if isinstance(job, dict):
            job = Job.from_dict(job)

        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED
        if self.tracker.has_active_job():
            raise JobRejectedError("Another job is already in progress")

        config = job.config
        self.humanizer.with_config(config.humanize)
        self.notifier.emit(STARTING, job_id=job.id, url=config.anchor_resource)
        logger.info("Starting job %s at %s (max %d items)", job.id, config.anchor_resource, config.max_items)

        if config.humanize.warmup:
            self._warmup()
        if self._blocked():
            return StepOutcome.BLOCKED
        if not same_resource(self._current_url(), config.anchor_resource):
            if not self._transition(config.anchor_resource):
                logger.error("Could not open the listing for job %s", job.id)
                return StepOutcome.HALTED
        self._wait_for_listing(config.selectors.listing_container)

        progress = WorkflowProgress(
            job_id=job.id,
            token=job.token,
            anchor_resource=config.anchor_resource,
            selector_config=config.selectors,
            require_phone=config.require_phone,
            humanize_config=config.humanize,
            max_items=config.max_items,
            items_per_page=config.items_per_page,
        )

        def persist_growth(urls):
            if self.detector.is_blocked():
                return
            progress.target_queue = list(urls)
            self.tracker.persist(progress)

        if config.urls:
            logger.info("Job %s supplies %d targets, skipping link collection", job.id, len(config.urls))
            urls = list(config.urls)
            persist_growth(urls)
        else:
            urls = self.collector.collect(config, on_page=persist_growth)

        if self._blocked():
            if not urls:
                logger.warning("Blocked before any link was collected; job %s not started", job.id)
            self._notify_paused()
            return StepOutcome.BLOCKED

        if not urls:
            logger.warning("No listing links found for job %s", job.id)
            progress.add_error('No listing links found on page', 'collect')
            return self._finalize(progress, persisted=False)

        logger.info("Collected %d targets for job %s", len(urls), job.id)
        if same_resource(self._current_url(), config.anchor_resource):
            return StepOutcome.TRANSITIONED
        if self._transition(config.anchor_resource):
            return StepOutcome.TRANSITIONED
        return self._halt(progress, f"Could not return to {config.anchor_resource}", 'collect')

    def step(self) -> StepOutcome:
        """
        Run one incarnation.

        Never raises: unexpected errors are logged, recorded on the progress
        and reported as HALTED.
        """
        try:
            return self._step()
        except Exception as e:
            logger.exception("Step failed: %s", e)
            self._record_error(str(e), 'step')
            return StepOutcome.HALTED

    def run(self, max_steps: Optional[int] = None) -> StepOutcome:
        """
        Drive steps until a terminal outcome.

        Args:
            max_steps: Stop after this many steps even if the walk continues

        Returns:
            Last outcome
        """
        steps = 0
        outcome = StepOutcome.TRANSITIONED
        while max_steps is None or steps < max_steps:
            outcome = self.step()
            steps += 1
            if outcome.terminal:
                break
        logger.info("Run ended after %d steps: %s", steps, outcome.value)
        return outcome

    def cancel_job(self) -> bool:
        """
        Drop the active job without submitting results.

        Returns:
            True if a job was cancelled
        """
        had_job = self.tracker.has_record()
        progress = self.tracker.load()
        self.tracker.clear()
        if had_job:
            self.notifier.emit(CANCELLED, job_id=progress.job_id if progress else None)
        return had_job

    def resume(self):
        """Manual release: clear the block flag and the drift counter."""
        self.detector.clear()
        progress = self.tracker.load()
        if progress and progress.recovery_attempts:
            progress.recovery_attempts = 0
            self.tracker.persist(progress)

    def derive_state(self, progress: Optional[WorkflowProgress], current_url: Optional[str] = None) -> WorkflowState:
        """Position of this incarnation from progress and the current URL."""
        if self.detector.is_blocked():
            return WorkflowState.BLOCKED
        if progress is None:
            return WorkflowState.IDLE
        if progress.exhausted:
            return WorkflowState.FINALIZING
        current_url = self._current_url() if current_url is None else current_url
        if same_resource(current_url, progress.current_target):
            return WorkflowState.AT_TARGET
        if same_resource(current_url, progress.anchor_resource):
            return WorkflowState.AWAITING_TARGET
        return WorkflowState.RECOVERING

    def status(self) -> dict:
        """Summary of the stored job and block flag. Does not touch the page."""
        progress = self.tracker.load()
        if self.detector.is_blocked():
            state = WorkflowState.BLOCKED.value
        elif progress is None:
            state = WorkflowState.IDLE.value
        elif progress.exhausted:
            state = WorkflowState.FINALIZING.value
        else:
            state = JobStatus.RUNNING.value
        stats = {
            'state': state,
            'block': self.detector.get_stats(),
            'health': self.health_monitor.get_stats(),
        }
        stats.update(self.tracker.get_stats())
        if progress:
            stats['anchor'] = progress.anchor_resource
            stats['errors'] = len(progress.errors)
            stats['recovery_attempts'] = progress.recovery_attempts
            stats['started_at'] = progress.started_at
            stats['last_updated'] = progress.last_updated
        return stats

    # ------------------------------------------------------------------
    # Incarnation
    # ------------------------------------------------------------------

    def _step(self) -> StepOutcome:
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        progress = self.tracker.load()
        if progress is None:
            return StepOutcome.IDLE
        self.humanizer.with_config(progress.humanize_config)

        state = self.derive_state(progress)
        logger.debug("Incarnation state: %s (cursor %d/%d)",
                     state.value, progress.cursor, len(progress.target_queue))

        if state is WorkflowState.BLOCKED:
            self._notify_paused()
            return StepOutcome.BLOCKED
        if state is WorkflowState.FINALIZING:
            return self._finalize(progress)
        if state is WorkflowState.AT_TARGET:
            return self._at_target(progress)
        if state is WorkflowState.AWAITING_TARGET:
            return self._advance(progress)
        return self._recover(progress)

    def _at_target(self, progress: WorkflowProgress) -> StepOutcome:
        target = progress.current_target
        if self._content_blocked():
            return StepOutcome.BLOCKED

        extractor = DetailExtractor(progress.selector_config)
        container = ', '.join(extractor.chain('detail_container'))
        ready, error = self.retry_handler.execute_with_retry(self._wait_for_content, container)
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED
        if not ready:
            progress.step_failures += 1
            return self._recover_to_anchor(progress, f"Content not ready at {target}: {error}")

        words = content_word_count(self.page.page_source, extractor.chain('detail_container'))
        self.humanizer.dwell(words)
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        record = None
        if self.rng.random() < progress.humanize_config.quick_skip_chance:
            logger.info("  Quick skip of %s", target)
        else:
            record = self._extract(progress, extractor, target)

        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        if record is not None:
            progress.results.append(record)
        progress.cursor += 1
        progress.recovery_attempts = 0
        progress.step_failures = 0
        self.tracker.persist(progress)
        self.notifier.emit(PROCESSING, current=progress.cursor, total=len(progress.target_queue), url=target)

        if progress.exhausted:
            return self._finalize(progress)
        return self._return_to_anchor(progress)

    def _advance(self, progress: WorkflowProgress) -> StepOutcome:
        """On the listing: break if due, scroll to the item, go to it."""
        if progress.last_break_at != progress.cursor and self.humanizer.maybe_break(progress.cursor):
            progress.last_break_at = progress.cursor
            self.tracker.persist(progress)
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        self.humanizer.progressive_scroll(progress.cursor, progress.items_per_page)
        self.humanizer.nav_delay()
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        target = progress.current_target
        logger.info("[%d/%d] Visiting %s", progress.cursor + 1, len(progress.target_queue), target)
        if self._transition(target):
            return StepOutcome.TRANSITIONED
        progress.step_failures += 1
        return self._halt(progress, f"Could not navigate to {target}", 'navigate')

    def _recover(self, progress: WorkflowProgress) -> StepOutcome:
        """Neither at the target nor on the listing."""
        current = self._current_url()
        if is_http_url(current or ''):
            if self._content_blocked():
                return StepOutcome.BLOCKED
            if progress.recovery_attempts >= 1:
                return self._halt(progress, f"Drifted to {current} again after recovery", 'recover')
            progress.recovery_attempts += 1
            self.tracker.persist(progress)
            logger.warning("Unexpected page %s, returning to listing", current)
        else:
            # Fresh browser with nothing loaded yet
            logger.info("No page loaded, opening listing")

        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED
        if self._transition(progress.anchor_resource):
            return StepOutcome.TRANSITIONED
        return self._halt(progress, f"Could not navigate to {progress.anchor_resource}", 'recover')

    def _recover_to_anchor(self, progress: WorkflowProgress, reason: str) -> StepOutcome:
        """Single recovery for a failed target; halts on the second."""
        if progress.recovery_attempts >= 1:
            return self._halt(progress, reason, 'wait_for_content')
        progress.recovery_attempts += 1
        progress.add_error(reason, 'wait_for_content')
        self.tracker.persist(progress)
        logger.warning("%s, returning to listing", reason)
        if self._transition(progress.anchor_resource):
            return StepOutcome.TRANSITIONED
        return self._halt(progress, f"Could not navigate to {progress.anchor_resource}", 'recover')

    def _return_to_anchor(self, progress: WorkflowProgress) -> StepOutcome:
        """History back, direct navigation if back did not land on the listing."""
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED
        self.humanizer.nav_delay()
        try:
            self.page.go_back()
        except NavigationError as e:
            logger.warning("History back failed: %s", e)
        self.observer.poll(self.page)

        if same_resource(self._current_url(), progress.anchor_resource):
            self._wait_for_listing(progress.selector_config.listing_container)
            return StepOutcome.TRANSITIONED
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED
        if self._transition(progress.anchor_resource):
            self._wait_for_listing(progress.selector_config.listing_container)
            return StepOutcome.TRANSITIONED
        return self._halt(progress, f"Could not return to {progress.anchor_resource}", 'navigate')

    def _finalize(self, progress: WorkflowProgress, persisted: bool = True) -> StepOutcome:
        if self._blocked():
            self._notify_paused()
            return StepOutcome.BLOCKED

        result = JobResult(
            job_id=progress.job_id,
            token=progress.token,
            status=JobStatus.COMPLETED,
            records=list(progress.results),
            errors=list(progress.errors),
        )
        if self.sink is not None:
            try:
                self.sink.submit(result.to_payload())
            except ResultSubmissionError as e:
                logger.error("Result submission failed, keeping progress for retry: %s", e)
                if persisted:
                    self.tracker.persist(progress)
                return StepOutcome.HALTED

        if persisted:
            self.tracker.clear()
        self.last_result = result
        self.notifier.emit(COMPLETED, job_id=progress.job_id, items=len(result.records))
        logger.info("Job %s completed with %d records", progress.job_id, len(result.records))
        return StepOutcome.FINALIZED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_url(self) -> str:
        try:
            return self.page.current_url or ''
        except NavigationError as e:
            logger.warning("Could not read current URL: %s", e)
            return ''

    def _blocked(self) -> bool:
        """Drain the transport signal, then read the flag."""
        self.observer.poll(self.page)
        return self.detector.is_blocked()

    def _content_blocked(self) -> bool:
        if self.detector.check_content(self.page.visible_text()):
            self._notify_paused()
            return True
        return False

    def _notify_paused(self):
        self.notifier.emit(PAUSED, blocked_until=self.detector.blocked_until())

    def _navigate(self, url: str) -> bool:
        self.page.navigate(url)
        return True

    def _transition(self, url: str) -> bool:
        """
        Navigate with bounded retries; restarts an unresponsive browser once.

        Refuses outright while the health monitor has seen too many failed
        transitions within its window.
        """
        if self.health_monitor.should_pause():
            logger.error("Too many failed transitions recently, not navigating to %s", url)
            return False
        success, error = self.retry_handler.execute_with_retry(self._navigate, url)
        if not success and error != "aborted":
            self.health_monitor.record_failure()
            if (not self.health_monitor.should_pause()
                    and not self.health_monitor.check_health()
                    and self.health_monitor.recover()):
                success, error = self.retry_handler.execute_with_retry(self._navigate, url)
        if not success:
            logger.error("Navigation to %s failed: %s", url, error)
            return False
        self.observer.poll(self.page)
        return True

    def _wait_for_content(self, selector: str) -> bool:
        return self.page.wait_for(selector, timeout=self.content_timeout)

    def _wait_for_listing(self, container: Optional[str]):
        try:
            self.page.wait_for(container or DEFAULT_LISTING_CONTAINER, timeout=self.content_timeout)
        except ContentTimeoutError:
            logger.debug("Listing container did not appear, continuing")

    def _warmup(self):
        """A few idle gestures on whatever page is open before the walk."""
        self.humanizer.random_delay(800, 1500)
        self.humanizer.scroll('down')
        self.humanizer.scroll('up')

    def _extract(self, progress: WorkflowProgress, extractor: DetailExtractor, target: str) -> Optional[ExtractedRecord]:
        html = self.page.page_source
        if not extractor.extract_phone_from_html(html):
            if self._reveal_phone(extractor):
                html = self.page.page_source
        record = extractor.extract(html, target, require_phone=progress.require_phone)
        if record is not None:
            logger.info("  Extracted: %s", (record.title or target)[:60])
        return record

    def _reveal_phone(self, extractor: DetailExtractor) -> bool:
        """Click a phone reveal control, if one exists."""
        clicked = any(self.page.click(selector) for selector in extractor.chain('phone_reveal'))
        if not clicked:
            clicked = self.page.click_by_text('button, [role="button"]', PHONE_REVEAL_TEXT)
        if clicked:
            self.humanizer.random_delay(800, 1600)
        return clicked

    def _halt(self, progress: WorkflowProgress, message: str, step: str) -> StepOutcome:
        logger.error("Halting: %s", message)
        progress.add_error(message, step)
        self.tracker.persist(progress)
        return StepOutcome.HALTED

    def _record_error(self, message: str, step: str):
        try:
            progress = self.tracker.load()
            if progress is not None:
                progress.add_error(message, step)
                self.tracker.persist(progress)
        except Exception as e:
            logger.error("Could not record step error: %s", e)
