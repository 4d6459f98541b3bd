"""
Unit tests for PoolScheduler.

Covers:
- Job dispatch by hour, weekday and day of month
- Once-a-day guard for maintenance jobs
- Retry of transient store errors
- Job isolation
- start/stop loop, ticks aligned to the clock
"""

import asyncio
import pytest
from datetime import datetime

from sqlalchemy.exc import OperationalError

from request_pool.retry import job_retry
from request_pool.scheduler import PoolScheduler


MONDAY_3AM = datetime(2026, 10, 19, 3, 0)
FIRST_OF_MONTH_3AM = datetime(2026, 10, 1, 3, 0)   # Thursday
MONDAY_NOON = datetime(2026, 10, 19, 12, 0)


class FakeCapacity:
    def __init__(self, calls):
        self.calls = calls

    async def reconcile_availability(self):
        self.calls.append('reconcile')
        return {'closed': 0, 'reopened': 0}


class FakeService:
    """Records which pool jobs were called."""

    def __init__(self):
        self.calls = []
        self.sweep_errors = []
        self.capacity = FakeCapacity(self.calls)

    async def cleanup_expired_requests(self, now=None):
        self.calls.append('sweep')
        if self.sweep_errors:
            raise self.sweep_errors.pop(0)
        return {'found': 0, 'expired': 0, 'failed': []}

    async def refresh_all_analytics(self):
        self.calls.append('analytics')
        return {'locations': 0, 'snapshots': 0}

    async def refresh_landlord_metrics(self, now=None):
        self.calls.append('metrics')
        return {'landlords': 0, 'with_responses': 0}

    async def prune_history(self, now=None):
        self.calls.append('prune')
        return {'analytics': 0, 'matches': 0}


@pytest.fixture
def fake_service():
    return FakeService()


@pytest.fixture
def scheduler(fake_service):
    return PoolScheduler(fake_service, interval=3600, maintenance_hour=3, retry_attempts=3, retry_delay=0)


@pytest.mark.unit
class TestDispatch:
    """run_scheduled_tasks."""

    async def test_sweep_only_outside_maintenance_hour(self, scheduler, fake_service):
        results = await scheduler.run_scheduled_tasks(MONDAY_NOON)

        assert fake_service.calls == ['sweep']
        assert set(results) == {'sweep'}

    async def test_monday_maintenance(self, scheduler, fake_service):
        await scheduler.run_scheduled_tasks(MONDAY_3AM)

        assert fake_service.calls == ['sweep', 'reconcile', 'analytics', 'metrics']

    async def test_first_of_month_maintenance(self, scheduler, fake_service):
        await scheduler.run_scheduled_tasks(FIRST_OF_MONTH_3AM)

        assert fake_service.calls == ['sweep', 'reconcile', 'prune']

    async def test_maintenance_once_per_day(self, scheduler, fake_service):
        await scheduler.run_scheduled_tasks(MONDAY_3AM)
        await scheduler.run_scheduled_tasks(MONDAY_3AM.replace(minute=40))

        assert fake_service.calls.count('sweep') == 2
        assert fake_service.calls.count('reconcile') == 1
        assert fake_service.calls.count('analytics') == 1
        assert fake_service.calls.count('metrics') == 1


@pytest.mark.unit
class TestJobFailures:
    """Retry and isolation."""

    async def test_transient_error_is_retried(self, scheduler, fake_service):
        fake_service.sweep_errors = [OperationalError('UPDATE rental_requests', {}, Exception('db restarting'))]

        results = await scheduler.run_scheduled_tasks(MONDAY_NOON)

        assert fake_service.calls == ['sweep', 'sweep']
        assert results['sweep']['found'] == 0

    async def test_failed_job_does_not_stop_others(self, scheduler, fake_service):
        fake_service.sweep_errors = [RuntimeError('bug')]

        results = await scheduler.run_scheduled_tasks(MONDAY_3AM)

        assert results['sweep'] == {'error': 'bug'}
        assert 'reconcile' in fake_service.calls
        assert fake_service.calls.count('sweep') == 1

    async def test_retries_exhausted(self, scheduler, fake_service):
        fake_service.sweep_errors = [ConnectionError('refused') for _ in range(3)]

        results = await scheduler.run_scheduled_tasks(MONDAY_NOON)

        assert fake_service.calls.count('sweep') == 3
        assert results['sweep'] == {'error': 'refused'}

    async def test_job_retry_decorator(self, monkeypatch):
        """Maintenance script wrapper retries store errors only."""
        delays = []

        async def no_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr('request_pool.retry.asyncio.sleep', no_sleep)
        attempts = []

        async def sweep():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError('refused')
            return {'found': 0}

        assert await job_retry(sweep)() == {'found': 0}
        assert delays == [5.0, 10.0]

        async def broken():
            raise RuntimeError('bug')

        with pytest.raises(RuntimeError):
            await job_retry(broken)()
        assert len(delays) == 2


@pytest.mark.unit
class TestLoop:
    """start/stop."""

    async def test_start_and_stop(self, scheduler, fake_service):
        task = asyncio.create_task(scheduler.start())

        for _ in range(100):
            if fake_service.calls:
                break
            await asyncio.sleep(0.01)

        assert scheduler.is_running
        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert not scheduler.is_running
        assert fake_service.calls[0] == 'sweep'

    @pytest.mark.parametrize('offset, expected', [
        (0, 3600),
        (1, 3599),
        (600, 3000),
        (3599.5, 0.5),
    ])
    def test_ticks_align_to_hour_boundaries(self, scheduler, offset, expected):
        top_of_hour = 1_792_378_800    # 2026-10-19 03:00:00 UTC
        assert scheduler.seconds_until_next_tick(top_of_hour + offset) == pytest.approx(expected)

    def test_slow_jobs_do_not_shift_the_schedule(self, scheduler):
        top_of_hour = 1_792_378_800
        # Tick started on the hour, jobs took 25 minutes
        assert scheduler.seconds_until_next_tick(top_of_hour + 1500) == pytest.approx(2100)
