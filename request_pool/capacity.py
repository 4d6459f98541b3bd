"""
Landlord capacity tracking.

Keeps active_contracts, total_capacity and availability consistent. Every
change is one UPDATE statement, so concurrent contract events on the same
landlord cannot interleave.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from database import utcnow
from request_pool.cache import PoolCache, listing_pattern
from request_pool.logger import pool_logger

logger = logging.getLogger(__name__)


class CapacityTracker:
    """Owns landlord availability and contract counters."""

    def __init__(self, db, cache: Optional[PoolCache] = None):
        self.db = db
        self.cache = cache or PoolCache()

    async def update_capacity(self, landlord_id: int, increment: bool, now: Optional[datetime] = None) -> bool:
        """
        Apply a contract start (increment) or end (decrement).

        Increment sets last_active_at and closes availability when the new
        count reaches total capacity. Decrement always reopens availability
        and never takes the counter below zero.

        Args:
            landlord_id: Landlord user ID
            increment: True when a contract started, False when it ended
            now: Timestamp for last_active_at

        Returns:
            False if the landlord does not exist (no-op)
        """
        log = pool_logger(logger, landlord_id=landlord_id)
        updated = await self.db.apply_capacity_change(landlord_id, increment, now or utcnow())

        if not updated:
            log.info(f"ℹ️ Capacity update skipped, landlord {landlord_id} not found")
            return False

        await self.cache.clear_pattern(listing_pattern(landlord_id))

        log.info(
            f"📊 Landlord {landlord_id} capacity {'+1' if increment else '-1'}"
        )
        return True

    async def set_availability(self, landlord_id: int, available: bool) -> bool:
        """
        Manual availability toggle.

        A landlord at or over capacity stays unavailable. The capacity check
        and the write are one statement, so a contract starting at the same
        moment cannot leave a full landlord open.

        Returns:
            Resulting availability, False for a missing landlord
        """
        log = pool_logger(logger, landlord_id=landlord_id)

        result = await self.db.set_landlord_availability(landlord_id, available, utcnow())
        if result is None:
            log.info(f"ℹ️ Availability toggle skipped, landlord {landlord_id} not found")
            return False

        await self.cache.clear_pattern(listing_pattern(landlord_id))

        if available and not result:
            log.warning(f"⚠️ Landlord {landlord_id} is at capacity, keeping unavailable")
        else:
            log.info(f"✅ Landlord {landlord_id} availability set to {result}")
        return result

    async def reconcile_availability(self) -> Dict[str, int]:
        """
        Realign every landlord's availability flag with its capacity.

        Returns:
            {'closed': n, 'reopened': n}
        """
        result = await self.db.reconcile_availability()

        if result['closed'] or result['reopened']:
            logger.info(
                f"🔧 Availability reconciled: {result['closed']} closed, "
                f"{result['reopened']} reopened"
            )
        return result
