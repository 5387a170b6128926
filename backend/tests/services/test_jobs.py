# backend/tests/services/test_jobs.py
"""
Tests for background jobs and their scheduling.

Test Coverage:
- BulkPriceRefreshJob: batching, partial failure, correlation scope
- CacheSweepJob: expired entries purged
- PeriodicJobRunner: start/stop, failures isolated per iteration
"""

import threading
from unittest.mock import MagicMock, patch

from cryptofolio.config import settings
from cryptofolio.services.jobs import (
    BulkPriceRefreshJob,
    CacheSweepJob,
    PeriodicJobRunner,
)
from cryptofolio.services.market_data.cache import PriceCache
from cryptofolio.services.valuation.types import PriceRefreshResult
from cryptofolio.utils.context import get_correlation_id


# =============================================================================
# BULK PRICE REFRESH
# =============================================================================

class TestBulkPriceRefreshJob:
    """Tests for the bulk current-price refresh."""

    def test_refreshes_every_user(self, repository, oracle, make_user, make_holding):
        alice, bob = make_user(), make_user()
        make_holding(alice, "BTC")
        make_holding(bob, "BTC")
        make_holding(bob, "ETH")
        oracle.set_current("BTC", "100")
        oracle.set_current("ETH", "10")

        result = BulkPriceRefreshJob(repository, oracle, batch_size=1, delay_seconds=0).run_once()

        assert result.users_processed == 2
        assert result.holdings_updated == 3
        assert result.errors == 0
        assert result.processing_time_seconds >= 0

    def test_missing_quotes_are_counted(self, repository, oracle, make_user, make_holding):
        user = make_user()
        make_holding(user, "BTC")
        make_holding(user, "DOGE")
        oracle.set_current("BTC", "100")

        result = BulkPriceRefreshJob(repository, oracle, delay_seconds=0).run_once()

        assert result.users_processed == 1
        assert result.holdings_updated == 1
        assert result.errors == 1
        assert result.error_messages == [f"user {user.id}: No current price for DOGE"]

    def test_failing_user_does_not_stop_run(self, oracle):
        repository = MagicMock()
        repository.list_user_ids_with_holdings.return_value = [1, 2, 3]
        job = BulkPriceRefreshJob(repository, oracle, batch_size=2, delay_seconds=0)

        def refresh(user_id):
            if user_id == 2:
                raise RuntimeError("database gone")
            return PriceRefreshResult(updated=1)

        with patch.object(job._refresher, "refresh_holding_prices", side_effect=refresh):
            result = job.run_once()

        assert result.users_processed == 2
        assert result.holdings_updated == 2
        assert result.errors == 1
        assert "user 2: database gone" in result.error_messages

    def test_pauses_between_batches(self, oracle):
        repository = MagicMock()
        repository.list_user_ids_with_holdings.return_value = [1, 2, 3]
        job = BulkPriceRefreshJob(repository, oracle, batch_size=1, delay_seconds=0.25)

        with patch.object(job._refresher, "refresh_holding_prices", return_value=PriceRefreshResult()), \
                patch("cryptofolio.services.jobs.time.sleep") as sleep:
            job.run_once()

        assert sleep.call_count == 2
        sleep.assert_called_with(0.25)

    def test_workers_share_run_correlation_id(self, oracle):
        repository = MagicMock()
        repository.list_user_ids_with_holdings.return_value = [1, 2]
        job = BulkPriceRefreshJob(repository, oracle, batch_size=2, delay_seconds=0)
        seen: list[str | None] = []

        def refresh(user_id):
            seen.append(get_correlation_id())
            return PriceRefreshResult()

        with patch.object(job._refresher, "refresh_holding_prices", side_effect=refresh):
            job.run_once()

        assert len(set(seen)) == 1
        assert seen[0].startswith("bulk-")


# =============================================================================
# CACHE SWEEP
# =============================================================================

class TestCacheSweepJob:
    """Tests for the price cache sweep."""

    def test_purges_expired(self):
        cache = PriceCache(ttl_seconds=60, max_size=100)
        cache.set("stale", 1, ttl_seconds=0)
        cache.set("fresh", 2)

        assert CacheSweepJob(cache).run_once() == 1
        assert cache.size() == 1


# =============================================================================
# PERIODIC RUNNER
# =============================================================================

class TestPeriodicJobRunner:
    """Tests for the daemon-thread scheduler."""

    def test_runs_until_stopped(self):
        ran = threading.Event()
        job = MagicMock()
        job.name = "cache-sweep"
        job.run_once.side_effect = lambda: ran.set()

        runner = PeriodicJobRunner(job, interval_seconds=0.01)
        runner.start()
        assert ran.wait(2)
        runner.stop(timeout=2)

        assert not runner.is_running
        assert runner.iterations >= 1
        assert runner.failures == 0

    def test_failures_do_not_stop_schedule(self):
        calls = {"n": 0}
        second_run = threading.Event()

        def run_once():
            calls["n"] += 1
            if calls["n"] >= 2:
                second_run.set()
            raise RuntimeError("boom")

        job = MagicMock()
        job.name = "flaky"
        job.run_once.side_effect = run_once

        runner = PeriodicJobRunner(job, interval_seconds=0.01)
        runner.start()
        assert second_run.wait(2)
        runner.stop(timeout=2)

        assert runner.failures >= 2

    def test_start_is_idempotent(self):
        job = MagicMock()
        job.name = "idle"
        runner = PeriodicJobRunner(job, interval_seconds=60)

        runner.start()
        first_thread = runner._thread
        runner.start()

        assert runner._thread is first_thread
        runner.stop(timeout=2)

    def test_default_interval_from_settings(self):
        runner = PeriodicJobRunner(MagicMock())
        assert runner._interval == settings.cache_sweep_interval_seconds
