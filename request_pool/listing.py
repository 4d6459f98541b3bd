"""
Landlord request listing.

Read path of the landlord UI: paginated unviewed matches on live pool
requests, plus the view and respond actions that change them.
"""

import math
import logging
from typing import Dict, Any, Optional, Union

from database import utcnow
from request_pool.cache import PoolCache, listing_key, listing_pattern
from request_pool.config import PoolConfig
from request_pool.logger import pool_logger
from request_pool.models import MatchStatus
from request_pool.schemas import ListingQuery, ResponseUpdate

logger = logging.getLogger(__name__)


class LandlordRequestListing:
    """Paginated match listing for landlords."""

    def __init__(self, db, cache: Optional[PoolCache] = None):
        self.db = db
        self.cache = cache or PoolCache()

    async def get_requests_for_landlord(
        self,
        landlord_id: int,
        page: int = 1,
        limit: int = PoolConfig.DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """
        Unviewed matches of a landlord on ACTIVE, unexpired requests.

        Ordered by match_score desc, then created_at desc.

        Args:
            landlord_id: Landlord user ID
            page: 1-based page number
            limit: Page size (1-100)

        Returns:
            {
                'requests': [match dicts with 'rental_request'],
                'pagination': {'page', 'limit', 'total', 'pages'}
            }

        Raises:
            ValueError: invalid page or limit
        """
        query = ListingQuery(landlord_id=landlord_id, page=page, limit=limit)

        key = listing_key(query.landlord_id, query.page, query.limit)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        items, total = await self.db.find_landlord_listing(
            landlord_id=query.landlord_id,
            now=utcnow(),
            offset=query.offset,
            limit=query.limit
        )

        result = {
            'requests': items,
            'pagination': {
                'page': query.page,
                'limit': query.limit,
                'total': total,
                'pages': math.ceil(total / query.limit),
            }
        }

        await self.cache.set(key, result, ttl=PoolConfig.LISTING_TTL)
        return result

    async def mark_as_viewed(self, landlord_id: int, request_id: int) -> bool:
        """
        Mark a landlord's match on a request as viewed.

        Returns:
            True if a match row was updated
        """
        log = pool_logger(logger, landlord_id=landlord_id, request_id=request_id)
        updated = await self.db.update_matches(landlord_id, request_id, is_viewed=True)

        if updated:
            await self.db.increment_view_count(request_id)

        await self.cache.clear_pattern(listing_pattern(landlord_id))

        log.debug(f"Landlord {landlord_id} viewed request {request_id} ({updated} rows)")
        return updated > 0

    async def respond_to_request(
        self,
        landlord_id: int,
        request_id: int,
        status: Union[MatchStatus, str]
    ) -> bool:
        """
        Record a landlord's response (OFFERED or DECLINED) to a match.

        A response also marks the match as viewed.

        Raises:
            ValueError: status is not OFFERED or DECLINED
        """
        log = pool_logger(logger, landlord_id=landlord_id, request_id=request_id)
        response = ResponseUpdate(status=status)

        updated = await self.db.update_matches(
            landlord_id,
            request_id,
            is_viewed=True,
            is_responded=True,
            responded_at=utcnow(),
            status=response.status
        )

        await self.cache.clear_pattern(listing_pattern(landlord_id))

        if updated:
            log.info(f"📨 Landlord {landlord_id} responded {response.status.value} to request {request_id}")
        return updated > 0
