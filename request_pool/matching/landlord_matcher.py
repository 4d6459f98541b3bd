"""
Landlord matching engine for pooled rental requests.

Selects eligible landlords, scores them (0-100) and persists match rows.
"""

import math
import logging
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional, Union

from database import utcnow
from request_pool.cache import PoolCache, matching_key, listing_pattern
from request_pool.config import PoolConfig
from request_pool.logger import pool_logger
from request_pool.models import normalize_location, parse_datetime, serialize_for_json
from request_pool.schemas import PoolRequest

logger = logging.getLogger(__name__)


class LandlordMatcher:
    """
    Matches rental requests with landlords.

    Scoring (0-100):
    - Base score 50
    - Spare capacity: up to +20, linear in the free share of total capacity
    - Recency: +15 (active within a day) / +10 (a week) / +5 (30 days)
    - Quality: +10 acceptance rate above 80%, +5 average response under an hour
    """

    # Recency tiers, checked in order, first match wins
    RECENCY_TIERS = (
        (timedelta(days=1), 15),
        (timedelta(days=7), 10),
        (timedelta(days=30), 5),
    )

    FALLBACK_REASON = 'Location and budget match'

    def __init__(self, db, cache: Optional[PoolCache] = None):
        """
        Args:
            db: RequestPoolDB repository
            cache: Result cache (no-op when omitted)
        """
        self.db = db
        self.cache = cache or PoolCache()

        self._stats = {
            'candidate_queries': 0,
            'candidate_cache_hits': 0,
            'matches_created': 0,
        }

    # ============================================
    # CANDIDATES
    # ============================================

    async def find_matching_landlords(self, request: Union[Dict[str, Any], Any]) -> List[Dict[str, Any]]:
        """
        Eligible landlords for a rental request, best prospects first.

        Served from cache for the same (location, budget) for MATCHING_TTL
        seconds; a cached list is identical to a fresh one.

        Args:
            request: Rental request dict or object (id, location, budget)

        Returns:
            Up to MAX_CANDIDATES landlord dicts with 'profile'
        """
        pool_request = PoolRequest.model_validate(request)
        self._stats['candidate_queries'] += 1

        key = matching_key(normalize_location(pool_request.location), pool_request.budget)
        cached = await self.cache.get(key)
        if cached is not None:
            self._stats['candidate_cache_hits'] += 1
            logger.debug(f"Candidate cache hit: {key}")
            return cached

        landlords = await self.db.find_landlords(
            location=pool_request.location,
            budget=pool_request.budget,
            limit=PoolConfig.MAX_CANDIDATES
        )
        landlords = serialize_for_json(landlords)

        await self.cache.set(key, landlords, ttl=PoolConfig.MATCHING_TTL)

        logger.debug(
            f"Found {len(landlords)} candidate landlords for "
            f"{pool_request.location} / {pool_request.budget}"
        )
        return landlords

    # ============================================
    # SCORING
    # ============================================

    def calculate_match_score(self, landlord: Dict[str, Any], now: Optional[datetime] = None) -> int:
        """
        Score a landlord for a match.

        Deterministic for a given landlord and `now`.

        Args:
            landlord: Landlord dict (capacity fields + optional 'profile')
            now: Reference time for recency (defaults to current UTC time)

        Returns:
            Integer score in [0, 100]
        """
        now = parse_datetime(now) or utcnow()
        profile = landlord.get('profile') or {}

        score = float(PoolConfig.BASE_SCORE)
        score += self._capacity_bonus(landlord)

        last_active_at = parse_datetime(landlord.get('last_active_at'))
        if last_active_at is not None:
            inactive_for = now - last_active_at
            for window, bonus in self.RECENCY_TIERS:
                if inactive_for <= window:
                    score += bonus
                    break

        if self._has_high_acceptance(profile):
            score += 10

        if self._has_fast_response(profile):
            score += 5

        # Half rounds up: 57.5 scores 58
        return max(0, min(100, math.floor(score + 0.5)))

    def generate_match_reason(self, landlord: Dict[str, Any]) -> str:
        """
        Human-readable explanation from the same signals as the score.

        Order: spare capacity, acceptance rate, response time.
        """
        profile = landlord.get('profile') or {}
        reasons = []

        spare = self._spare_slots(landlord)
        if spare > 0:
            reasons.append(f"{spare} open contract slot{'s' if spare > 1 else ''}")

        if self._has_high_acceptance(profile):
            reasons.append('High acceptance rate')

        if self._has_fast_response(profile):
            reasons.append('Fast response time')

        return ', '.join(reasons) if reasons else self.FALLBACK_REASON

    def _capacity_bonus(self, landlord: Dict[str, Any]) -> float:
        total = landlord.get('total_capacity') or 0
        if total <= 0:
            return 0.0
        active = landlord.get('active_contracts') or 0
        free_share = max(0.0, min(1.0, 1 - active / total))
        return free_share * PoolConfig.CAPACITY_WEIGHT

    @staticmethod
    def _spare_slots(landlord: Dict[str, Any]) -> int:
        total = landlord.get('total_capacity') or 0
        if total <= 0:
            return 0
        return max(0, total - (landlord.get('active_contracts') or 0))

    @staticmethod
    def _has_high_acceptance(profile: Dict[str, Any]) -> bool:
        rate = profile.get('acceptance_rate')
        return rate is not None and rate > PoolConfig.HIGH_ACCEPTANCE_RATE

    @staticmethod
    def _has_fast_response(profile: Dict[str, Any]) -> bool:
        seconds = profile.get('average_response_time')
        return seconds is not None and seconds < PoolConfig.FAST_RESPONSE_SECONDS

    # ============================================
    # MATCH CREATION
    # ============================================

    async def find_and_create_matches(self, request: Union[Dict[str, Any], Any]) -> int:
        """
        Create match rows for every eligible landlord of a request.

        Pairs that already have a match are skipped, so replays are safe.

        Args:
            request: Rental request dict or object (id, location, budget)

        Returns:
            Number of new match rows
        """
        pool_request = PoolRequest.model_validate(request)
        landlords = await self.find_matching_landlords(pool_request)
        log = pool_logger(logger, request_id=pool_request.id, location=pool_request.location)

        if not landlords:
            log.info(f"ℹ️ No eligible landlords for request {pool_request.id} ({pool_request.location})")
            return 0

        now = utcnow()
        rows = [
            {
                'landlord_id': landlord['id'],
                'rental_request_id': pool_request.id,
                'match_score': self.calculate_match_score(landlord, now),
                'match_reason': self.generate_match_reason(landlord),
            }
            for landlord in landlords
        ]

        created_for = await self.db.create_matches(rows)

        for landlord_id in created_for:
            await self.cache.clear_pattern(listing_pattern(landlord_id))

        self._stats['matches_created'] += len(created_for)
        log.info(
            f"🎯 Request {pool_request.id}: {len(created_for)} new matches "
            f"({len(landlords)} candidates)"
        )
        return len(created_for)

    def get_stats(self) -> Dict[str, int]:
        """Matcher counters since startup."""
        return self._stats.copy()
