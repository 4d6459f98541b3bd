"""
Unit tests for LandlordRequestListing.

Covers:
- Pagination and ordering
- Filtering of viewed, removed and expired requests
- mark_as_viewed and respond_to_request
- Parameter validation
- Listing cache invalidation
"""

import pytest
from datetime import timedelta

from database import utcnow
from request_pool.listing import LandlordRequestListing
from request_pool.models import PoolStatus


@pytest.fixture
def listing(pool_db):
    return LandlordRequestListing(pool_db)


async def add_match(pool_db, landlord_id, request, score, created_at=None):
    row = {'landlord_id': landlord_id, 'rental_request_id': request['id'], 'match_score': score}
    if created_at is not None:
        row['created_at'] = created_at
    await pool_db.create_matches([row])


@pytest.mark.unit
class TestPagination:
    """get_requests_for_landlord."""

    async def test_second_page(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        scores = list(range(100, 75, -1))  # 25 matches
        for score in scores:
            await add_match(pool_db, landlord_id, await make_request(active=True), score)

        page = await listing.get_requests_for_landlord(landlord_id, page=2, limit=10)

        assert [item['match_score'] for item in page['requests']] == scores[10:20]
        assert page['pagination'] == {'page': 2, 'limit': 10, 'total': 25, 'pages': 3}

    async def test_last_partial_page(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        for score in range(12):
            await add_match(pool_db, landlord_id, await make_request(active=True), score)

        page = await listing.get_requests_for_landlord(landlord_id, page=2, limit=10)

        assert len(page['requests']) == 2
        assert page['pagination']['pages'] == 2

    async def test_empty(self, listing, make_landlord):
        landlord_id = await make_landlord()

        page = await listing.get_requests_for_landlord(landlord_id)

        assert page == {'requests': [], 'pagination': {'page': 1, 'limit': 20, 'total': 0, 'pages': 0}}

    async def test_ties_broken_by_newest(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        older = await make_request(active=True)
        newer = await make_request(active=True)
        await add_match(pool_db, landlord_id, older, 70, created_at=utcnow() - timedelta(hours=2))
        await add_match(pool_db, landlord_id, newer, 70, created_at=utcnow() - timedelta(hours=1))

        page = await listing.get_requests_for_landlord(landlord_id)

        assert [item['rental_request_id'] for item in page['requests']] == [newer['id'], older['id']]

    async def test_only_unviewed_live_matches(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        other_landlord = await make_landlord()
        live = await make_request(active=True)
        viewed = await make_request(active=True)
        expired = await make_request(active=True, expires_in=timedelta(hours=-1))
        matched = await make_request(active=True)
        not_pooled = await make_request()
        for request in (live, viewed, expired, matched, not_pooled):
            await add_match(pool_db, landlord_id, request, 50)
        await add_match(pool_db, other_landlord, live, 90)
        await pool_db.update_matches(landlord_id, viewed['id'], is_viewed=True)
        await pool_db.update_rental_request(matched['id'], pool_status=PoolStatus.MATCHED)

        page = await listing.get_requests_for_landlord(landlord_id)

        assert [item['rental_request_id'] for item in page['requests']] == [live['id']]
        assert page['requests'][0]['landlord_id'] == landlord_id
        assert page['requests'][0]['rental_request']['pool_status'] == 'ACTIVE'

    @pytest.mark.parametrize('page, limit', [(0, 20), (-1, 20), (1, 0), (1, 101)])
    async def test_invalid_parameters(self, listing, page, limit):
        with pytest.raises(ValueError):
            await listing.get_requests_for_landlord(1, page=page, limit=limit)

    async def test_cached_until_invalidated(self, pool_db, memory_cache, make_landlord, make_request):
        listing = LandlordRequestListing(pool_db, memory_cache)
        landlord_id = await make_landlord()
        first = await make_request(active=True)
        await add_match(pool_db, landlord_id, first, 60)

        assert (await listing.get_requests_for_landlord(landlord_id))['pagination']['total'] == 1

        # Written behind the listing's back: served from cache
        await add_match(pool_db, landlord_id, await make_request(active=True), 70)
        assert (await listing.get_requests_for_landlord(landlord_id))['pagination']['total'] == 1

        await listing.mark_as_viewed(landlord_id, first['id'])
        assert (await listing.get_requests_for_landlord(landlord_id))['pagination']['total'] == 1
        assert (await listing.get_requests_for_landlord(landlord_id))['requests'][0]['match_score'] == 70


@pytest.mark.unit
class TestViewAndRespond:
    """mark_as_viewed and respond_to_request."""

    async def test_mark_as_viewed(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        request = await make_request(active=True)
        await add_match(pool_db, landlord_id, request, 60)

        assert await listing.mark_as_viewed(landlord_id, request['id']) is True

        match = (await pool_db.find_matches(landlord_id=landlord_id, rental_request_id=request['id']))[0]
        assert match['is_viewed'] is True
        assert (await pool_db.get_rental_request(request['id']))['view_count'] == 1
        assert (await listing.get_requests_for_landlord(landlord_id))['requests'] == []

    async def test_mark_unknown_pair(self, listing, pool_db, make_landlord, make_request):
        landlord_id = await make_landlord()
        request = await make_request(active=True)

        assert await listing.mark_as_viewed(landlord_id, request['id']) is False
        assert (await pool_db.get_rental_request(request['id']))['view_count'] == 0

    @pytest.mark.parametrize('status', ['OFFERED', 'DECLINED'])
    async def test_respond(self, listing, pool_db, make_landlord, make_request, status):
        landlord_id = await make_landlord()
        request = await make_request(active=True)
        await add_match(pool_db, landlord_id, request, 60)

        assert await listing.respond_to_request(landlord_id, request['id'], status) is True

        match = (await pool_db.find_matches(landlord_id=landlord_id))[0]
        assert match['status'] == status
        assert match['is_responded'] is True
        assert match['is_viewed'] is True
        assert match['responded_at'] is not None

    @pytest.mark.parametrize('status', ['PENDING', 'ACCEPTED', ''])
    async def test_respond_invalid_status(self, listing, status):
        with pytest.raises(ValueError):
            await listing.respond_to_request(1, 1, status)

    async def test_respond_unknown_pair(self, listing):
        assert await listing.respond_to_request(1, 1, 'DECLINED') is False
