# backend/cryptofolio/services/jobs.py
"""
Background jobs for periodic maintenance.

Jobs are plain objects with a run_once() method. Scheduling is separate
(PeriodicJobRunner), so a job can also be triggered by hand or from a
test without any thread involved.

This handles:
- Bulk current-price refresh for every user with holdings
- Sweeping expired entries from the price cache

Design Principles:
- Partial Success: a failing user is logged and counted, the run continues
- Backpressure: users are processed in small batches with a delay between
  batches, so a refresh never floods the rate-limited price oracle
- Isolation: one failing iteration never stops the schedule

Usage:
    job = BulkPriceRefreshJob(repository, oracle)
    result = job.run_once()

    runner = PeriodicJobRunner(CacheSweepJob(cache), interval_seconds=300)
    runner.start()
    ...
    runner.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from cryptofolio.config import settings
from cryptofolio.services.valuation.service import HoldingPriceRefresher
from cryptofolio.utils.context import correlation_scope, new_correlation_id, submit_with_context

if TYPE_CHECKING:
    from cryptofolio.services.market_data.cache import PriceCache
    from cryptofolio.services.protocols import LedgerRepositoryProtocol, PriceOracleProtocol

logger = logging.getLogger(__name__)


class Job(Protocol):
    """Anything PeriodicJobRunner can run."""

    name: str

    def run_once(self) -> object:
        ...


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class BulkRefreshResult:
    """
    Outcome of one bulk price refresh.

    Attributes:
        users_processed: Users whose refresh completed (possibly with failed holdings)
        holdings_updated: Holdings written with a fresh price
        errors: Failed holdings plus failed users
        processing_time_seconds: Wall time of the run
    """
    users_processed: int = 0
    holdings_updated: int = 0
    errors: int = 0
    processing_time_seconds: float = 0.0
    error_messages: list[str] = field(default_factory=list)


# =============================================================================
# JOBS
# =============================================================================

class BulkPriceRefreshJob:
    """Refreshes current prices for every user with holdings."""

    name = "bulk-price-refresh"

    def __init__(
            self,
            repository: LedgerRepositoryProtocol,
            price_oracle: PriceOracleProtocol,
            batch_size: int | None = None,
            delay_seconds: float | None = None,
    ) -> None:
        """
        Args:
            repository: Ledger repository
            price_oracle: Price oracle
            batch_size: Users refreshed concurrently (default settings.bulk_refresh_batch_size)
            delay_seconds: Pause between batches (default settings.bulk_refresh_delay_seconds)
        """
        self._repository = repository
        self._refresher = HoldingPriceRefresher(repository, price_oracle)
        self._batch_size = batch_size or settings.bulk_refresh_batch_size
        self._delay_seconds = (
            delay_seconds if delay_seconds is not None
            else settings.bulk_refresh_delay_seconds
        )

    def run_once(self) -> BulkRefreshResult:
        with correlation_scope(new_correlation_id("bulk")):
            started = time.perf_counter()
            result = BulkRefreshResult()

            user_ids = self._repository.list_user_ids_with_holdings()
            logger.info(f"Starting bulk price refresh for {len(user_ids)} users (batch size {self._batch_size})")

            with ThreadPoolExecutor(max_workers=self._batch_size, thread_name_prefix="bulk-refresh") as executor:
                for offset in range(0, len(user_ids), self._batch_size):
                    if offset > 0 and self._delay_seconds > 0:
                        time.sleep(self._delay_seconds)

                    batch = user_ids[offset:offset + self._batch_size]
                    futures = {
                        user_id: submit_with_context(executor, self._refresher.refresh_holding_prices, user_id)
                        for user_id in batch
                    }
                    for user_id, future in futures.items():
                        try:
                            refresh = future.result()
                        except Exception as e:
                            logger.error(f"Price refresh failed for user {user_id}: {e}", exc_info=True)
                            result.errors += 1
                            result.error_messages.append(f"user {user_id}: {e}")
                            continue

                        result.users_processed += 1
                        result.holdings_updated += refresh.updated
                        result.errors += refresh.failed
                        result.error_messages.extend(f"user {user_id}: {msg}" for msg in refresh.errors)

            result.processing_time_seconds = time.perf_counter() - started
            logger.info(
                f"Bulk price refresh done: {result.users_processed} users, "
                f"{result.holdings_updated} holdings updated, {result.errors} errors "
                f"in {result.processing_time_seconds:.2f}s"
            )
            return result


class CacheSweepJob:
    """Purges expired entries from a PriceCache."""

    name = "price-cache-sweep"

    def __init__(self, cache: PriceCache) -> None:
        self._cache = cache

    def run_once(self) -> int:
        removed = self._cache.purge_expired()
        logger.info(f"Price cache sweep removed {removed} entries, {self._cache.size()} remain")
        return removed


# =============================================================================
# SCHEDULING
# =============================================================================

class PeriodicJobRunner:
    """
    Runs a job on its own daemon thread at a fixed interval.

    The first run happens immediately after start(). stop() wakes the
    thread and waits for the current iteration to finish.
    """

    def __init__(self, job: Job, interval_seconds: float | None = None) -> None:
        self._job = job
        self._interval = (
            interval_seconds if interval_seconds is not None
            else settings.cache_sweep_interval_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.iterations = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"job-{self._job.name}", daemon=True)
        self._thread.start()
        logger.info(f"Started job '{self._job.name}' every {self._interval}s")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info(f"Stopped job '{self._job.name}' after {self.iterations} runs")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._job.run_once()
            except Exception as e:
                self.failures += 1
                logger.error(f"Job '{self._job.name}' failed: {e}", exc_info=True)
            self.iterations += 1
            self._stop_event.wait(self._interval)
