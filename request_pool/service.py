"""
Request Pool Service - coordination of the rental request pool.

Admission, removal, expiration sweep, stats and analytics. Matching,
capacity and listing are delegated to their components so callers can
hold a single service handle.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, Union

from database import init_database, close_database, utcnow
from request_pool.cache import PoolCache, create_cache, request_key, listing_pattern, matching_pattern
from request_pool.capacity import CapacityTracker
from request_pool.config import PoolConfig, is_request_pool_enabled, is_component_enabled
from request_pool.database import get_pool_db
from request_pool.exceptions import RequestNotFoundError, InvalidPoolTransitionError
from request_pool.listing import LandlordRequestListing
from request_pool.logger import pool_logger
from request_pool.matching import LandlordMatcher
from request_pool.models import PoolStatus, REMOVAL_REASONS, MatchStatus, parse_datetime
from request_pool.schemas import PoolRequest

logger = logging.getLogger(__name__)


class RequestPoolService:
    """
    Rental request pool manager.

    Workflow:
    1. admit_to_pool: request becomes ACTIVE for POOL_TTL_DAYS, matches are created
    2. Landlords page through their matches, view and respond
    3. remove_from_pool: request leaves the pool, its matches are deleted
    4. cleanup_expired_requests: scheduled removal of requests past expires_at
    """

    def __init__(
        self,
        db,
        cache: Optional[PoolCache] = None,
        analytics_enabled: bool = True
    ):
        """
        Args:
            db: RequestPoolDB repository
            cache: Result cache (no-op when omitted)
            analytics_enabled: Write pool_analytics snapshots
        """
        self.db = db
        self.cache = cache or PoolCache()
        self.analytics_enabled = analytics_enabled

        self.matcher = LandlordMatcher(db, self.cache)
        self.capacity = CapacityTracker(db, self.cache)
        self.listing = LandlordRequestListing(db, self.cache)

    # ============================================
    # POOL MEMBERSHIP
    # ============================================

    async def admit_to_pool(self, request: Union[Dict[str, Any], Any]) -> int:
        """
        Put a freshly created rental request into the pool and match it.

        Args:
            request: Rental request dict or object (id, location, budget)

        Returns:
            Number of matches created

        Raises:
            RequestNotFoundError: the request row does not exist
        """
        pool_request = PoolRequest.model_validate(request)
        log = pool_logger(logger, request_id=pool_request.id, location=pool_request.location)
        expires_at = utcnow() + timedelta(days=PoolConfig.POOL_TTL_DAYS)

        updated = await self.db.update_rental_request(
            pool_request.id,
            pool_status=PoolStatus.ACTIVE,
            expires_at=expires_at
        )
        if not updated:
            raise RequestNotFoundError(pool_request.id)

        match_count = await self.matcher.find_and_create_matches(pool_request)

        await self.update_pool_analytics(pool_request.location)

        await self.cache.set(
            request_key(pool_request.id),
            {
                **pool_request.model_dump(),
                'pool_status': PoolStatus.ACTIVE.value,
                'expires_at': expires_at.isoformat(),
                'match_count': match_count,
            },
            ttl=PoolConfig.REQUEST_TTL
        )

        log.info(
            f"✅ Request {pool_request.id} admitted to pool "
            f"({pool_request.location}, {pool_request.budget}): {match_count} matches"
        )
        return match_count

    async def remove_from_pool(self, request_id: int, reason: Union[PoolStatus, str]) -> bool:
        """
        Take a request out of the pool.

        Only an ACTIVE request transitions. Match rows and cached entries
        are removed regardless, so repeated calls and missing requests are
        no-ops.

        Args:
            request_id: Rental request ID
            reason: MATCHED, EXPIRED or CANCELLED

        Returns:
            True if the request transitioned

        Raises:
            InvalidPoolTransitionError: unknown reason
        """
        try:
            status = PoolStatus(reason)
        except ValueError:
            raise InvalidPoolTransitionError(f"Unknown pool removal reason: {reason}")
        if status not in REMOVAL_REASONS:
            raise InvalidPoolTransitionError(f"Unknown pool removal reason: {reason}")

        log = pool_logger(logger, request_id=request_id)
        matches = await self.db.find_matches(rental_request_id=request_id)

        transitioned = await self.db.update_rental_request(
            request_id,
            only_if_status=PoolStatus.ACTIVE,
            pool_status=status
        )
        deleted = await self.db.delete_matches(rental_request_id=request_id)

        await self.cache.delete(request_key(request_id))
        for landlord_id in {m['landlord_id'] for m in matches}:
            await self.cache.clear_pattern(listing_pattern(landlord_id))

        if transitioned:
            log.info(f"🚪 Request {request_id} removed from pool: {status.value} ({deleted} matches dropped)")
        else:
            log.debug(f"Request {request_id} not in pool, removal was a no-op")
        return transitioned

    async def cleanup_expired_requests(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Expire every ACTIVE request whose expires_at has passed.

        Each request is processed independently; a failure is recorded and
        the sweep continues.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            {'found': n, 'expired': n, 'failed': [request ids]}
        """
        now = parse_datetime(now) or utcnow()
        expired = await self.db.find_expired_request_ids(now)

        summary = {'found': len(expired), 'expired': 0, 'failed': []}
        touched_locations = set()

        for item in expired:
            try:
                if await self.remove_from_pool(item['id'], PoolStatus.EXPIRED):
                    summary['expired'] += 1
                    touched_locations.add(item['location'])
            except Exception as e:
                pool_logger(logger, request_id=item['id']).error(
                    f"❌ Failed to expire request {item['id']}: {e}", exc_info=True
                )
                summary['failed'].append(item['id'])

        for location in sorted(touched_locations):
            await self.update_pool_analytics(location)

        if summary['found']:
            logger.info(
                f"🧹 Expiration sweep: {summary['expired']}/{summary['found']} expired, "
                f"{len(summary['failed'])} failed"
            )
        return summary

    # ============================================
    # STATS & ANALYTICS
    # ============================================

    async def get_pool_stats(self) -> Dict[str, Any]:
        """
        Dashboard counters (approximate, cached for STATS_TTL seconds).

        Returns:
            {'active_requests', 'available_landlords', 'recent_matches', 'timestamp'}
        """
        cached = await self.cache.get(PoolConfig.KEY_STATS)
        if cached is not None:
            return cached

        now = utcnow()
        stats = {
            'active_requests': await self.db.count_rental_requests(pool_status=PoolStatus.ACTIVE),
            'available_landlords': await self.db.count_available_landlords(),
            'recent_matches': await self.db.count_recent_matches(
                now - timedelta(hours=PoolConfig.RECENT_MATCHES_HOURS)
            ),
            'timestamp': now.isoformat(),
        }

        await self.cache.set(PoolConfig.KEY_STATS, stats, ttl=PoolConfig.STATS_TTL)
        return stats

    async def update_pool_analytics(self, location: str) -> Optional[int]:
        """
        Append a pool snapshot for a location.

        Errors are logged and swallowed.

        Returns:
            Snapshot ID, None when disabled or failed
        """
        if not self.analytics_enabled:
            return None

        try:
            counts = await self.db.count_requests_by_status(location)
            landlord_count = await self.db.count_available_landlords(location)

            return await self.db.insert_analytics_snapshot(
                location=location,
                total_requests=counts['total'],
                active_requests=counts.get(PoolStatus.ACTIVE.value, 0),
                matched_requests=counts.get(PoolStatus.MATCHED.value, 0),
                expired_requests=counts.get(PoolStatus.EXPIRED.value, 0),
                landlord_count=landlord_count,
                date=utcnow()
            )
        except Exception as e:
            pool_logger(logger, location=location).warning(f"⚠️ Pool analytics update failed for {location}: {e}")
            return None

    async def refresh_all_analytics(self) -> Dict[str, int]:
        """Snapshot every location that has requests."""
        locations = await self.db.distinct_request_locations()

        snapshots = 0
        for location in locations:
            if await self.update_pool_analytics(location) is not None:
                snapshots += 1

        logger.info(f"📈 Analytics refreshed: {snapshots}/{len(locations)} locations")
        return {'locations': len(locations), 'snapshots': snapshots}

    async def refresh_landlord_metrics(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Recompute acceptance_rate and average_response_time of every landlord profile.

        Uses responses of the last METRICS_WINDOW_DAYS:
        - acceptance_rate: share of responses that are OFFERED (0.0 without responses)
        - average_response_time: mean seconds from match creation to response
          (None without responses)

        Returns:
            {'landlords': profiles updated, 'with_responses': n}
        """
        now = parse_datetime(now) or utcnow()
        responses = await self.db.find_responses(now - timedelta(days=PoolConfig.METRICS_WINDOW_DAYS))

        by_landlord: Dict[int, list] = {}
        for response in responses:
            by_landlord.setdefault(response['landlord_id'], []).append(response)

        updated = 0
        with_responses = 0
        for landlord_id in await self.db.find_landlord_profile_ids():
            rows = by_landlord.get(landlord_id, [])
            if rows:
                with_responses += 1
                offered = sum(1 for r in rows if r['status'] == MatchStatus.OFFERED.value)
                seconds = [
                    max(0.0, (r['responded_at'] - r['created_at']).total_seconds())
                    for r in rows
                ]
                acceptance_rate = offered / len(rows)
                average_response_time = sum(seconds) / len(seconds)
            else:
                acceptance_rate = 0.0
                average_response_time = None

            if await self.db.update_landlord_profile(
                landlord_id,
                acceptance_rate=acceptance_rate,
                average_response_time=average_response_time
            ):
                updated += 1

        # Candidate lists carry the old metrics
        await self.cache.clear_pattern(matching_pattern())

        logger.info(f"📈 Landlord metrics refreshed: {updated} landlords, {with_responses} with responses")
        return {'landlords': updated, 'with_responses': with_responses}

    async def prune_history(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Delete old analytics snapshots and old handled matches.

        Returns:
            {'analytics': n, 'matches': n} deleted rows
        """
        now = parse_datetime(now) or utcnow()

        result = await self.db.prune_history(
            analytics_before=now - timedelta(days=PoolConfig.ANALYTICS_RETENTION_DAYS),
            matches_before=now - timedelta(days=PoolConfig.MATCH_RETENTION_DAYS)
        )

        logger.info(f"🗑️ History pruned: {result['analytics']} snapshots, {result['matches']} matches")
        return result

    # ============================================
    # DELEGATES
    # ============================================

    async def update_capacity(self, landlord_id: int, increment: bool) -> bool:
        return await self.capacity.update_capacity(landlord_id, increment)

    async def get_requests_for_landlord(
        self,
        landlord_id: int,
        page: int = 1,
        limit: int = PoolConfig.DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        return await self.listing.get_requests_for_landlord(landlord_id, page, limit)

    async def mark_as_viewed(self, landlord_id: int, request_id: int) -> bool:
        return await self.listing.mark_as_viewed(landlord_id, request_id)

    async def respond_to_request(
        self,
        landlord_id: int,
        request_id: int,
        status: Union[MatchStatus, str]
    ) -> bool:
        return await self.listing.respond_to_request(landlord_id, request_id, status)

    async def close(self):
        """Release cache and database connections."""
        await self.cache.close()
        await close_database()


async def create_request_pool_service(
    database_url: Optional[str] = None,
    use_redis: Optional[bool] = None
) -> RequestPoolService:
    """
    Build a RequestPoolService from configuration.

    Args:
        database_url: Explicit database URL (defaults to DATABASE_URL)
        use_redis: Override the redis_cache feature flag

    Returns:
        Initialized RequestPoolService
    """
    if not is_request_pool_enabled():
        logger.error("❌ Request pool is disabled in config/features.yaml")
        raise RuntimeError("Request pool disabled in features config")

    await init_database(database_url)

    if use_redis is None:
        use_redis = is_component_enabled('redis_cache')
    cache = await create_cache(use_redis)

    db = await get_pool_db()
    service = RequestPoolService(
        db,
        cache=cache,
        analytics_enabled=is_component_enabled('analytics')
    )

    logger.info(f"✅ Request pool service ready (cache: {cache.backend})")
    return service
