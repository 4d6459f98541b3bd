"""
Request Pool - rental request pool and landlord matching.

Enable via config/features.yaml:
    request_pool:
      enabled: true
      components:
        redis_cache: false
        analytics: true
        scheduler: true

Components:
- database/   - SQLAlchemy repository over the unified models in database.py
- matching/   - landlord candidate selection and scoring (0-100)
- capacity.py - landlord contract counters and availability
- listing.py  - paginated landlord listings, view/respond actions
- service.py  - pool manager (admission, removal, expiration sweep, stats)
- scheduler.py - hourly sweep and maintenance jobs

Quick Start:
    from request_pool.service import create_request_pool_service
    import asyncio

    async def main():
        service = await create_request_pool_service()
        request_id = await service.db.create_rental_request(location='Warsaw', budget=3000)
        matches = await service.admit_to_pool({'id': request_id, 'location': 'Warsaw', 'budget': 3000})
        await service.close()

    asyncio.run(main())
"""

__version__ = '1.0.0'

from request_pool.service import RequestPoolService, create_request_pool_service
from request_pool.exceptions import (
    RequestPoolError,
    RequestNotFoundError,
    InvalidPoolTransitionError,
)
from request_pool.models import PoolStatus, MatchStatus

__all__ = [
    'RequestPoolService',
    'create_request_pool_service',
    'RequestPoolError',
    'RequestNotFoundError',
    'InvalidPoolTransitionError',
    'PoolStatus',
    'MatchStatus',
]
