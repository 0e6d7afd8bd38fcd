from conftest import FakePage
from listing_walker.config import RetryConfig
from listing_walker.resilience.health_monitor import HealthMonitor
from listing_walker.resilience.retry_handler import RetryHandler


class TestRetryHandler:
    def test_backoff_delays(self):
        slept = []
        handler = RetryHandler(RetryConfig(max_retries=4, base_delay=1.0, max_delay=3.0), sleep=slept.append)
        success, error = handler.execute_with_retry(lambda: None)
        assert success is False
        assert "returned None" in error
        assert slept == [1.0, 2.0, 3.0]
        assert handler.get_stats()["total_retries"] == 3

    def test_success_after_exception(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise ValueError("not yet")
            return "ok"

        handler = RetryHandler(sleep=lambda s: None)
        assert handler.execute_with_retry(flaky) == (True, "ok")

    def test_abort(self):
        handler = RetryHandler(sleep=lambda s: None, should_abort=lambda: True)
        assert handler.execute_with_retry(lambda: True) == (False, "aborted")


class TestHealthMonitor:
    def test_healthy(self):
        assert HealthMonitor(FakePage()).check_health()

    def test_recover_restarts_dead_page(self):
        page = FakePage()
        page.alive = False
        monitor = HealthMonitor(page)
        assert not monitor.check_health()
        assert monitor.recover()
        assert page.restarts == 1
        assert monitor.get_stats()["total_recoveries"] == 1

    def test_pauses_after_too_many_failures_in_window(self):
        now = [1000.0]
        monitor = HealthMonitor(FakePage(), max_failures=2, clock=lambda: now[0])
        monitor.record_failure()
        assert not monitor.should_pause()
        monitor.record_failure()
        assert monitor.should_pause()
        now[0] += 601
        assert not monitor.should_pause()
        assert monitor.get_failure_count() == 0
