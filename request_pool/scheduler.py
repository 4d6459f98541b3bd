"""
Pool Scheduler - recurring maintenance of the request pool.

Includes:
- Expiration sweep (every tick, hourly)
- Availability reconciliation (daily at RECONCILE_HOUR UTC)
- Analytics and landlord metrics refresh (Mondays at RECONCILE_HOUR UTC)
- History pruning (first day of the month at RECONCILE_HOUR UTC)
"""

import asyncio
import logging
import time
from datetime import datetime, date
from typing import Optional, Dict, Any, Callable, Awaitable

from database import utcnow
from request_pool.config import PoolConfig
from request_pool.logger import pool_logger
from request_pool.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)


class PoolScheduler:
    """
    Runs pool jobs on interval boundaries (top of every hour by default).

    Each job goes through retry_async for transient store errors; a job
    that still fails is logged and does not stop the others.
    """

    def __init__(
        self,
        service,
        interval: int = PoolConfig.SWEEP_INTERVAL,
        maintenance_hour: int = PoolConfig.RECONCILE_HOUR,
        retry_attempts: int = RetryConfig.JOB_MAX_ATTEMPTS,
        retry_delay: float = RetryConfig.JOB_INITIAL_DELAY
    ):
        """
        Args:
            service: RequestPoolService
            interval: Seconds between ticks
            maintenance_hour: UTC hour of the daily/weekly/monthly jobs
            retry_attempts: Attempts per job
            retry_delay: Initial retry delay in seconds
        """
        self.service = service
        self.interval = interval
        self.maintenance_hour = maintenance_hour
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        # job name -> date of last run, keeps periodic jobs to one run per day
        self._last_run: Dict[str, date] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Run the scheduler loop until stop() is called."""
        if self._running:
            return

        self._running = True
        self._stop_event = asyncio.Event()
        logger.info(f"📅 Pool scheduler started (every {self.interval}s)")

        while self._running:
            try:
                await self.run_scheduled_tasks()
            except Exception as e:
                logger.error(f"❌ Scheduler tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.seconds_until_next_tick())
            except asyncio.TimeoutError:
                pass

        logger.info("🛑 Pool scheduler stopped")

    def seconds_until_next_tick(self, timestamp: Optional[float] = None) -> float:
        """
        Seconds to the next multiple of interval on the UTC epoch clock.

        Ticks stay on hour boundaries however long the jobs took, so the
        maintenance hour always gets a tick.
        """
        if timestamp is None:
            timestamp = time.time()
        return self.interval - (timestamp % self.interval)

    async def stop(self):
        """Stop the loop after the current tick."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def run_scheduled_tasks(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run every job due at `now`.

        Args:
            now: Tick time in UTC (defaults to current time)

        Returns:
            Job name -> job result, or {'error': message} for a failed job
        """
        now = now or utcnow()
        logger.info(f"🔄 Pool jobs at {now.strftime('%Y-%m-%d %H:%M')} UTC")

        results = {}
        results['sweep'] = await self._run_job(
            'sweep', lambda: self.service.cleanup_expired_requests(now)
        )

        if now.hour == self.maintenance_hour:
            if self._due('reconcile', now):
                results['reconcile'] = await self._run_job(
                    'reconcile', self.service.capacity.reconcile_availability
                )

            if now.weekday() == 0 and self._due('analytics', now):
                results['analytics'] = await self._run_job(
                    'analytics', self.service.refresh_all_analytics
                )

            if now.weekday() == 0 and self._due('metrics', now):
                results['metrics'] = await self._run_job(
                    'metrics', lambda: self.service.refresh_landlord_metrics(now)
                )

            if now.day == 1 and self._due('prune', now):
                results['prune'] = await self._run_job(
                    'prune', lambda: self.service.prune_history(now)
                )

        return results

    def _due(self, job: str, now: datetime) -> bool:
        if self._last_run.get(job) == now.date():
            return False
        self._last_run[job] = now.date()
        return True

    async def _run_job(self, name: str, job: Callable[[], Awaitable[Any]]) -> Any:
        job_logger = pool_logger(logger, job=name)
        try:
            result = await retry_async(
                job,
                max_attempts=self.retry_attempts,
                initial_delay=self.retry_delay
            )
            job_logger.info(f"✅ Job {name} done: {result}")
            return result
        except Exception as e:
            job_logger.error(f"❌ Job {name} failed: {e}", exc_info=True)
            return {'error': str(e)}
