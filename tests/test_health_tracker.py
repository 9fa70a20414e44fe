"""
Tests for per-provider health tracking and eligibility.
"""

import threading

from tars.core.models import HealthStatus
from tars.routing.health import HealthTracker

from conftest import make_descriptor


class TestHealthRecord:
    """Test record creation and outcome bookkeeping."""

    def test_registered_provider_starts_unknown(self, fake_clock):
        """New record: unknown, never checked, no errors."""
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")

        record = tracker.get_record("deepseek")
        assert record.status == HealthStatus.UNKNOWN
        assert record.last_check is None
        assert record.response_time is None
        assert record.error_count == 0

    def test_register_is_idempotent(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        tracker.record_outcome("deepseek", False)
        tracker.register("deepseek")

        assert tracker.get_record("deepseek").error_count == 1
        assert tracker.keys() == ["deepseek"]

    def test_success_resets_error_count(self, fake_clock):
        """Success sets healthy, zero errors, response time and last check."""
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        tracker.record_outcome("deepseek", False)
        tracker.record_outcome("deepseek", False)

        status = tracker.record_outcome("deepseek", True, response_time_ms=420)

        record = tracker.get_record("deepseek")
        assert status == HealthStatus.HEALTHY
        assert record.status == HealthStatus.HEALTHY
        assert record.error_count == 0
        assert record.response_time == 420
        assert record.last_check == int(fake_clock.now * 1000)

    def test_failure_increments_and_keeps_response_time(self, fake_clock):
        """Failure leaves the last good response time untouched."""
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        tracker.record_outcome("deepseek", True, response_time_ms=300)

        fake_clock.advance(5)
        tracker.record_outcome("deepseek", False)

        record = tracker.get_record("deepseek")
        assert record.status == HealthStatus.ERROR
        assert record.error_count == 1
        assert record.response_time == 300
        assert record.last_check == int(fake_clock.now * 1000)

    def test_get_record_returns_copy(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")

        copy = tracker.get_record("deepseek")
        copy.error_count = 99

        assert tracker.get_record("deepseek").error_count == 0

    def test_unregistered_record_is_none(self):
        assert HealthTracker().get_record("missing") is None


class TestEligibility:
    """Test the routing eligibility rule."""

    def test_unknown_provider_is_eligible(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        assert tracker.is_eligible("deepseek") is True

    def test_healthy_provider_is_eligible(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        tracker.record_outcome("deepseek", True, 100)
        assert tracker.is_eligible("deepseek") is True

    def test_recent_failure_is_ineligible(self, fake_clock):
        """An errored provider checked moments ago is skipped."""
        tracker = HealthTracker(clock=fake_clock)
        tracker.register("deepseek")
        tracker.record_outcome("deepseek", False)

        fake_clock.advance(10)
        assert tracker.is_eligible("deepseek") is False

    def test_stale_failure_becomes_eligible_again(self, fake_clock):
        """After the staleness window an errored provider gets another try."""
        tracker = HealthTracker(clock=fake_clock, staleness_seconds=300)
        tracker.register("deepseek")
        for _ in range(10):
            tracker.record_outcome("deepseek", False)

        fake_clock.advance(300)
        assert tracker.is_eligible("deepseek") is False

        fake_clock.advance(1)
        assert tracker.is_eligible("deepseek") is True

    def test_unknown_key_is_ineligible(self):
        assert HealthTracker().is_eligible("missing") is False

    def test_custom_staleness_window(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock, staleness_seconds=30)
        tracker.register("ollama")
        tracker.record_outcome("ollama", False)

        fake_clock.advance(31)
        assert tracker.is_eligible("ollama") is True


class TestSnapshot:
    """Test the diagnostic status snapshot."""

    def test_snapshot_shape(self, fake_clock):
        tracker = HealthTracker(clock=fake_clock)
        deepseek = make_descriptor("deepseek", cost_per_token=0.0000014, name="DeepSeek")
        ollama = make_descriptor("ollama", name="Ollama")
        tracker.register("deepseek")
        tracker.register("ollama")
        tracker.record_outcome("deepseek", True, 250)

        snapshot = tracker.snapshot([deepseek, ollama])

        assert snapshot["deepseek"] == {
            "name": "DeepSeek",
            "status": "healthy",
            "responseTime": 250,
            "errorCount": 0,
            "lastCheck": int(fake_clock.now * 1000),
            "costPerToken": 0.0000014,
        }
        assert snapshot["ollama"]["status"] == "unknown"
        assert snapshot["ollama"]["lastCheck"] is None

    def test_snapshot_is_fresh_and_has_no_side_effects(self, fake_clock):
        """Mutating a snapshot never touches tracked state."""
        tracker = HealthTracker(clock=fake_clock)
        descriptor = make_descriptor("deepseek")
        tracker.register("deepseek")

        first = tracker.snapshot([descriptor])
        first["deepseek"]["status"] = "healthy"
        first["deepseek"]["errorCount"] = 42

        second = tracker.snapshot([descriptor])
        assert second["deepseek"]["status"] == "unknown"
        assert second["deepseek"]["errorCount"] == 0
        assert tracker.get_record("deepseek").last_check is None


class TestConcurrency:
    """Test per-record locking."""

    def test_concurrent_failures_are_all_counted(self):
        tracker = HealthTracker()
        tracker.register("deepseek")

        def hammer():
            for _ in range(500):
                tracker.record_outcome("deepseek", False)

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.get_record("deepseek").error_count == 4000
