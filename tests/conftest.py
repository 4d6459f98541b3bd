"""
Shared fixtures: on-disk SQLite database through aiosqlite, repository,
service and factories for landlords, requests and matches.
"""

import itertools
from datetime import timedelta

import pytest
import pytest_asyncio

from database import init_database, close_database, utcnow
from request_pool.cache import MemoryCache
from request_pool.database import RequestPoolDB
from request_pool.models import PoolStatus
from request_pool.service import RequestPoolService


@pytest_asyncio.fixture
async def pool_db(tmp_path):
    """Fresh database per test."""
    await close_database()
    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'pool.db'}")
    yield RequestPoolDB()
    await close_database()


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def service(pool_db):
    """Service without cache (no-op PoolCache)."""
    return RequestPoolService(pool_db)


@pytest.fixture
def cached_service(pool_db, memory_cache):
    """Service with an in-memory cache."""
    return RequestPoolService(pool_db, cache=memory_cache)


@pytest.fixture
def make_landlord(pool_db):
    """Factory: landlord user with a profile, returns the landlord ID."""
    counter = itertools.count(1)

    async def _make(
        locations=('Warsaw',),
        active_contracts=0,
        total_capacity=5,
        last_active_at=None,
        acceptance_rate=None,
        average_response_time=None,
        min_budget=None,
        max_budget=None,
        availability=None
    ):
        n = next(counter)
        return await pool_db.create_landlord(
            email=f"landlord{n}@example.com",
            name=f"Landlord {n}",
            total_capacity=total_capacity,
            active_contracts=active_contracts,
            availability=availability,
            last_active_at=last_active_at,
            profile={
                'preferred_locations': list(locations),
                'min_budget': min_budget,
                'max_budget': max_budget,
                'acceptance_rate': acceptance_rate,
                'average_response_time': average_response_time,
            }
        )

    return _make


@pytest.fixture
def make_request(pool_db):
    """Factory: rental request, returns its dict (id, location, budget)."""

    async def _make(location='Warsaw', budget=3000, active=False, expires_in=timedelta(days=30)):
        fields = {'title': f"Flat in {location}"}
        if active:
            fields['pool_status'] = PoolStatus.ACTIVE
            fields['expires_at'] = utcnow() + expires_in
        request_id = await pool_db.create_rental_request(location=location, budget=budget, **fields)
        return {'id': request_id, 'location': location, 'budget': budget}

    return _make
