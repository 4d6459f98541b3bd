"""
Unit tests for CapacityTracker.

Covers:
- Increment/decrement with availability recomputed in the same update
- Documented decrement policy (availability forced true)
- Missing landlords
- Listing cache invalidation
- Manual availability toggle and reconciliation
- Concurrent contract events
"""

import asyncio

import pytest

from database import DatabaseSession, User
from request_pool.cache import listing_key
from request_pool.capacity import CapacityTracker


@pytest.fixture
def tracker(pool_db):
    return CapacityTracker(pool_db)


@pytest.mark.unit
class TestUpdateCapacity:
    """update_capacity."""

    async def test_increment_until_full(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(total_capacity=2)

        assert await tracker.update_capacity(landlord_id, increment=True) is True
        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 1
        assert state['availability'] is True
        assert state['last_active_at'] is not None

        await tracker.update_capacity(landlord_id, increment=True)
        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 2
        assert state['availability'] is False

    async def test_invariant_after_increments(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(total_capacity=3)

        for increment in (True, True, False, True, True, False, False, True):
            await tracker.update_capacity(landlord_id, increment=increment)
            state = await pool_db.get_landlord(landlord_id)
            if increment:
                assert state['availability'] == (state['active_contracts'] < state['total_capacity'])
            else:
                assert state['availability'] is True

    async def test_decrement_forces_availability(self, tracker, pool_db, make_landlord):
        # Capacity was lowered below the current contract count
        landlord_id = await make_landlord(active_contracts=4, total_capacity=2)
        assert (await pool_db.get_landlord(landlord_id))['availability'] is False

        await tracker.update_capacity(landlord_id, increment=False)

        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 3
        assert state['availability'] is True

    async def test_decrement_floors_at_zero(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(active_contracts=0)

        await tracker.update_capacity(landlord_id, increment=False)

        assert (await pool_db.get_landlord(landlord_id))['active_contracts'] == 0

    async def test_missing_landlord_is_noop(self, tracker):
        assert await tracker.update_capacity(424242, increment=True) is False
        assert await tracker.update_capacity(424242, increment=False) is False

    async def test_tenant_is_not_a_landlord(self, tracker, pool_db):
        async with DatabaseSession() as session:
            tenant = User(email='tenant@example.com', role='TENANT')
            session.add(tenant)
            await session.flush()
            tenant_id = tenant.id

        assert await tracker.update_capacity(tenant_id, increment=True) is False

    async def test_invalidates_listing_cache(self, pool_db, memory_cache, make_landlord):
        landlord_id = await make_landlord()
        other_id = await make_landlord()
        tracker = CapacityTracker(pool_db, memory_cache)
        await memory_cache.set(listing_key(landlord_id, 1, 20), {'requests': []})
        await memory_cache.set(listing_key(landlord_id, 2, 20), {'requests': []})
        await memory_cache.set(listing_key(other_id, 1, 20), {'requests': []})

        await tracker.update_capacity(landlord_id, increment=True)

        assert await memory_cache.get(listing_key(landlord_id, 1, 20)) is None
        assert await memory_cache.get(listing_key(landlord_id, 2, 20)) is None
        assert await memory_cache.get(listing_key(other_id, 1, 20)) is not None


@pytest.mark.unit
class TestConcurrentContracts:
    """Contract events racing on one landlord."""

    async def test_mixed_events_lose_no_update(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(active_contracts=5, total_capacity=10)
        events = [True, False, True, True, False, True, False, True]

        results = await asyncio.gather(*(
            tracker.update_capacity(landlord_id, increment=increment) for increment in events
        ))

        assert all(results)
        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 7
        assert state['availability'] is True

    async def test_concurrent_increments_close_landlord(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(active_contracts=0, total_capacity=6)

        await asyncio.gather(*(
            tracker.update_capacity(landlord_id, increment=True) for _ in range(6)
        ))

        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 6
        assert state['availability'] is False


@pytest.mark.unit
class TestAvailabilityMaintenance:
    """set_availability and reconcile_availability."""

    async def test_manual_toggle(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(active_contracts=1, total_capacity=3)

        assert await tracker.set_availability(landlord_id, False) is False
        assert (await pool_db.get_landlord(landlord_id))['availability'] is False

        assert await tracker.set_availability(landlord_id, True) is True
        assert (await pool_db.get_landlord(landlord_id))['availability'] is True

    async def test_cannot_open_full_landlord(self, tracker, pool_db, make_landlord):
        landlord_id = await make_landlord(active_contracts=3, total_capacity=3)

        assert await tracker.set_availability(landlord_id, True) is False
        assert (await pool_db.get_landlord(landlord_id))['availability'] is False

    async def test_toggle_missing_landlord(self, tracker):
        assert await tracker.set_availability(999, True) is False

    async def test_contract_started_during_toggle(self, tracker, pool_db, make_landlord, monkeypatch):
        """A contract that fills the landlord just before the toggle lands keeps them closed."""
        landlord_id = await make_landlord(active_contracts=4, total_capacity=5, availability=False)
        apply_toggle = pool_db.set_landlord_availability

        async def contract_starts_first(*args, **kwargs):
            await tracker.update_capacity(landlord_id, increment=True)
            return await apply_toggle(*args, **kwargs)

        monkeypatch.setattr(pool_db, 'set_landlord_availability', contract_starts_first)

        assert await tracker.set_availability(landlord_id, True) is False
        state = await pool_db.get_landlord(landlord_id)
        assert state['active_contracts'] == 5
        assert state['availability'] is False

    async def test_toggle_does_not_read_before_writing(self, tracker, pool_db, make_landlord, monkeypatch):
        landlord_id = await make_landlord(active_contracts=4, total_capacity=5, availability=False)

        async def stale_read(_landlord_id):
            raise AssertionError('toggle must not depend on a separate read')

        monkeypatch.setattr(pool_db, 'get_landlord', stale_read)

        assert await tracker.set_availability(landlord_id, True) is True

    async def test_reconcile(self, tracker, pool_db, make_landlord):
        full_but_open = await make_landlord(active_contracts=3, total_capacity=3, availability=True)
        free_but_closed = await make_landlord(active_contracts=1, total_capacity=3, availability=False)
        consistent = await make_landlord(active_contracts=1, total_capacity=3)

        result = await tracker.reconcile_availability()

        assert result == {'closed': 1, 'reopened': 1}
        assert (await pool_db.get_landlord(full_but_open))['availability'] is False
        assert (await pool_db.get_landlord(free_but_closed))['availability'] is True
        assert (await pool_db.get_landlord(consistent))['availability'] is True

        assert await tracker.reconcile_availability() == {'closed': 0, 'reopened': 0}
