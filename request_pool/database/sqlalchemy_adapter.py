"""
SQLAlchemy adapter for the request pool.

Repository over the unified database.py models. Every method opens its own
DatabaseSession, so each call is one transaction; results are plain dicts.
"""

import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, Iterable, Tuple

from sqlalchemy import select, update, delete, insert, func, and_, or_, case
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from database import (
    User as UserModel,
    LandlordProfile as LandlordProfileModel,
    LandlordLocation as LandlordLocationModel,
    RentalRequest as RentalRequestModel,
    LandlordRequestMatch as MatchModel,
    PoolAnalytics as PoolAnalyticsModel,
    DatabaseSession,
    utcnow,
)
from request_pool.models import (
    PoolStatus,
    MatchStatus,
    UserRole,
    normalize_location,
)

logger = logging.getLogger(__name__)


def _conditions(model, filters: Dict[str, Any]) -> list:
    """Equality conditions for column filters (enum values unwrapped)."""
    conditions = []
    for field, value in filters.items():
        column = getattr(model, field, None)
        if column is None:
            raise ValueError(f"Unknown filter field for {model.__tablename__}: {field}")
        if isinstance(value, (PoolStatus, MatchStatus, UserRole)):
            value = value.value
        if value is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == value)
    return conditions


def _unwrap(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: v.value if isinstance(v, (PoolStatus, MatchStatus, UserRole)) else v
        for k, v in fields.items()
    }


def _location_rows(landlord_id: int, locations: Optional[Iterable[str]]) -> List[Dict[str, Any]]:
    """landlord_locations rows for a preferred location list (normalized, deduplicated)."""
    normalized = {normalize_location(loc) for loc in (locations or [])} - {''}
    return [{'landlord_id': landlord_id, 'location': loc} for loc in sorted(normalized)]


class RequestPoolDB:
    """
    SQLAlchemy repository for the rental request pool.

    Owns no state; sessions come from database.DatabaseSession.
    """

    # ============================================
    # RENTAL REQUESTS
    # ============================================

    async def create_rental_request(self, location: str, budget: float, **fields) -> int:
        """Create a rental request (tenant-side CRUD lives outside the pool)."""
        async with DatabaseSession() as session:
            request = RentalRequestModel(location=location, budget=budget, **_unwrap(fields))
            session.add(request)
            await session.flush()
            return request.id

    async def get_rental_request(self, request_id: int) -> Optional[Dict[str, Any]]:
        """Get a rental request by ID."""
        async with DatabaseSession() as session:
            request = await session.get(RentalRequestModel, request_id)
            if not request:
                return None
            return self._request_to_dict(request)

    async def update_rental_request(
        self,
        request_id: int,
        only_if_status: Optional[PoolStatus] = None,
        **fields
    ) -> bool:
        """
        Update a rental request in one statement.

        Args:
            request_id: Rental request ID
            only_if_status: Apply only while the request has this pool status
            **fields: Column values

        Returns:
            True if a row was updated
        """
        conditions = [RentalRequestModel.id == request_id]
        if only_if_status is not None:
            conditions.append(RentalRequestModel.pool_status == PoolStatus(only_if_status).value)

        values = _unwrap(fields)
        values['updated_at'] = utcnow()

        async with DatabaseSession() as session:
            result = await session.execute(
                update(RentalRequestModel)
                .where(and_(*conditions))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def find_rental_requests(self, **filters) -> List[Dict[str, Any]]:
        """Find rental requests by column equality filters."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(RentalRequestModel)
                .where(and_(*_conditions(RentalRequestModel, filters)))
                .order_by(RentalRequestModel.id)
            )
            return [self._request_to_dict(r) for r in result.scalars().all()]

    async def count_rental_requests(self, **filters) -> int:
        """Count rental requests by column equality filters."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(func.count(RentalRequestModel.id))
                .where(and_(*_conditions(RentalRequestModel, filters)))
            )
            return result.scalar_one()

    async def count_requests_by_status(self, location: str) -> Dict[str, int]:
        """Request counts of a location grouped by pool status (plus 'total')."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(RentalRequestModel.pool_status, func.count(RentalRequestModel.id))
                .where(RentalRequestModel.location == location)
                .group_by(RentalRequestModel.pool_status)
            )
            counts = {status: count for status, count in result.all()}

        counts['total'] = sum(counts.values())
        return counts

    async def find_expired_request_ids(self, now: datetime) -> List[Dict[str, Any]]:
        """ACTIVE requests whose expires_at is before now."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(RentalRequestModel.id, RentalRequestModel.location, RentalRequestModel.expires_at)
                .where(
                    and_(
                        RentalRequestModel.pool_status == PoolStatus.ACTIVE.value,
                        RentalRequestModel.expires_at < now
                    )
                )
                .order_by(RentalRequestModel.expires_at)
            )
            return [
                {'id': row.id, 'location': row.location, 'expires_at': row.expires_at}
                for row in result.all()
            ]

    async def distinct_request_locations(self) -> List[str]:
        """All locations that have at least one rental request."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(RentalRequestModel.location).distinct().order_by(RentalRequestModel.location)
            )
            return [row[0] for row in result.all()]

    async def increment_view_count(self, request_id: int) -> bool:
        """Atomic view counter increment."""
        async with DatabaseSession() as session:
            result = await session.execute(
                update(RentalRequestModel)
                .where(RentalRequestModel.id == request_id)
                .values(view_count=RentalRequestModel.view_count + 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def _request_to_dict(self, request: RentalRequestModel) -> Dict[str, Any]:
        """Convert a rental request to dict."""
        return {
            'id': request.id,
            'tenant_id': request.tenant_id,
            'title': request.title,
            'location': request.location,
            'budget': request.budget,
            'move_in_date': request.move_in_date.isoformat() if request.move_in_date else None,
            'property_type': request.property_type,
            'pool_status': request.pool_status,
            'expires_at': request.expires_at.isoformat() if request.expires_at else None,
            'view_count': request.view_count,
            'created_at': request.created_at.isoformat() if request.created_at else None,
            'updated_at': request.updated_at.isoformat() if request.updated_at else None,
        }

    # ============================================
    # LANDLORDS
    # ============================================

    async def create_landlord(
        self,
        email: str,
        name: Optional[str] = None,
        total_capacity: int = 5,
        active_contracts: int = 0,
        availability: Optional[bool] = None,
        last_active_at: Optional[datetime] = None,
        profile: Optional[Dict[str, Any]] = None
    ) -> int:
        """Create a landlord user with an optional matching profile."""
        if availability is None:
            availability = active_contracts < total_capacity

        async with DatabaseSession() as session:
            user = UserModel(
                email=email,
                name=name,
                role=UserRole.LANDLORD.value,
                availability=availability,
                active_contracts=active_contracts,
                total_capacity=total_capacity,
                last_active_at=last_active_at,
            )
            session.add(user)
            await session.flush()

            if profile is not None:
                session.add(LandlordProfileModel(user_id=user.id, **profile))
                rows = _location_rows(user.id, profile.get('preferred_locations'))
                if rows:
                    await session.execute(insert(LandlordLocationModel), rows)
                await session.flush()

            return user.id

    async def update_landlord_profile(self, landlord_id: int, **fields) -> bool:
        """
        Update profile columns of a landlord.

        A new preferred_locations list also replaces the landlord's
        landlord_locations rows in the same transaction.

        Returns:
            False if the landlord has no profile
        """
        async with DatabaseSession() as session:
            result = await session.execute(
                update(LandlordProfileModel)
                .where(LandlordProfileModel.user_id == landlord_id)
                .values(**fields, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False

            if 'preferred_locations' in fields:
                await session.execute(
                    delete(LandlordLocationModel)
                    .where(LandlordLocationModel.landlord_id == landlord_id)
                    .execution_options(synchronize_session=False)
                )
                rows = _location_rows(landlord_id, fields['preferred_locations'])
                if rows:
                    await session.execute(insert(LandlordLocationModel), rows)

            return True

    async def find_landlord_profile_ids(self) -> List[int]:
        """IDs of every landlord that has a matching profile."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(LandlordProfileModel.user_id)
                .join(UserModel, LandlordProfileModel.user_id == UserModel.id)
                .where(UserModel.role == UserRole.LANDLORD.value)
                .order_by(LandlordProfileModel.user_id)
            )
            return [row[0] for row in result.all()]

    async def get_landlord(self, landlord_id: int) -> Optional[Dict[str, Any]]:
        """Get a landlord with profile by user ID."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(UserModel, LandlordProfileModel)
                .outerjoin(LandlordProfileModel, LandlordProfileModel.user_id == UserModel.id)
                .where(
                    and_(
                        UserModel.id == landlord_id,
                        UserModel.role == UserRole.LANDLORD.value
                    )
                )
            )
            row = result.first()
            if not row:
                return None
            return self._landlord_to_dict(*row)

    async def find_landlords(
        self,
        location: str,
        budget: float,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Landlords eligible for a request.

        Available landlords under capacity whose budget bounds admit the
        request budget and whose preferred locations contain the location
        (normalized comparison through landlord_locations). Ordered by last
        activity (never active last), then spare capacity.

        Args:
            location: Request location
            budget: Request budget
            limit: Maximum number of landlords

        Returns:
            List of landlord dicts with 'profile'
        """
        wanted = normalize_location(location)
        if not wanted:
            return []

        query = (
            select(UserModel, LandlordProfileModel)
            .join(LandlordProfileModel, LandlordProfileModel.user_id == UserModel.id)
            .join(LandlordLocationModel, LandlordLocationModel.landlord_id == UserModel.id)
            .where(
                and_(
                    LandlordLocationModel.location == wanted,
                    UserModel.role == UserRole.LANDLORD.value,
                    UserModel.availability == True,
                    UserModel.active_contracts < UserModel.total_capacity,
                    or_(
                        LandlordProfileModel.max_budget.is_(None),
                        LandlordProfileModel.max_budget >= budget
                    ),
                    or_(
                        LandlordProfileModel.min_budget.is_(None),
                        LandlordProfileModel.min_budget <= budget
                    )
                )
            )
            .order_by(
                UserModel.last_active_at.desc().nulls_last(),
                (UserModel.total_capacity - UserModel.active_contracts).desc(),
                UserModel.id
            )
        )
        if limit is not None:
            query = query.limit(limit)

        async with DatabaseSession() as session:
            result = await session.execute(query)
            return [self._landlord_to_dict(user, profile) for user, profile in result.all()]

    async def count_available_landlords(self, location: Optional[str] = None) -> int:
        """Count available landlords, optionally only those preferring a location."""
        query = select(func.count(UserModel.id)).where(
            and_(
                UserModel.role == UserRole.LANDLORD.value,
                UserModel.availability == True
            )
        )
        if location is not None:
            query = query.join(
                LandlordLocationModel, LandlordLocationModel.landlord_id == UserModel.id
            ).where(LandlordLocationModel.location == normalize_location(location))

        async with DatabaseSession() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def update_landlord(self, landlord_id: int, **fields) -> bool:
        """Update landlord columns; False if the landlord does not exist."""
        async with DatabaseSession() as session:
            result = await session.execute(
                update(UserModel)
                .where(
                    and_(
                        UserModel.id == landlord_id,
                        UserModel.role == UserRole.LANDLORD.value
                    )
                )
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def apply_capacity_change(self, landlord_id: int, increment: bool, now: datetime) -> bool:
        """
        Atomic contract counter change with availability recomputed in the same UPDATE.

        increment: active_contracts + 1, last_active_at = now,
                   availability = new count < total_capacity
        decrement: active_contracts - 1 (not below 0), availability = true

        Returns:
            False if the landlord does not exist
        """
        if increment:
            new_count = UserModel.active_contracts + 1
            values = {
                'active_contracts': new_count,
                'last_active_at': now,
                'availability': case(
                    (new_count >= UserModel.total_capacity, False),
                    else_=True
                ),
            }
        else:
            values = {
                'active_contracts': case(
                    (UserModel.active_contracts > 0, UserModel.active_contracts - 1),
                    else_=0
                ),
                'availability': True,
            }

        async with DatabaseSession() as session:
            result = await session.execute(
                update(UserModel)
                .where(
                    and_(
                        UserModel.id == landlord_id,
                        UserModel.role == UserRole.LANDLORD.value
                    )
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def set_landlord_availability(
        self,
        landlord_id: int,
        available: bool,
        now: datetime
    ) -> Optional[bool]:
        """
        Availability toggle checked against capacity in the same UPDATE.

        Opening only takes effect while active_contracts < total_capacity,
        evaluated on the row as it is when the statement runs.

        Returns:
            Resulting availability, None if the landlord does not exist
        """
        if available:
            availability = case(
                (UserModel.active_contracts < UserModel.total_capacity, True),
                else_=False
            )
        else:
            availability = False

        async with DatabaseSession() as session:
            result = await session.execute(
                update(UserModel)
                .where(
                    and_(
                        UserModel.id == landlord_id,
                        UserModel.role == UserRole.LANDLORD.value
                    )
                )
                .values(availability=availability, last_active_at=now)
                .returning(UserModel.availability)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none()

    async def reconcile_availability(self) -> Dict[str, int]:
        """Bring every landlord's availability flag in line with capacity."""
        async with DatabaseSession() as session:
            closed = await session.execute(
                update(UserModel)
                .where(
                    and_(
                        UserModel.role == UserRole.LANDLORD.value,
                        UserModel.availability == True,
                        UserModel.active_contracts >= UserModel.total_capacity
                    )
                )
                .values(availability=False)
                .execution_options(synchronize_session=False)
            )
            reopened = await session.execute(
                update(UserModel)
                .where(
                    and_(
                        UserModel.role == UserRole.LANDLORD.value,
                        UserModel.availability == False,
                        UserModel.active_contracts < UserModel.total_capacity
                    )
                )
                .values(availability=True)
                .execution_options(synchronize_session=False)
            )
            return {'closed': closed.rowcount, 'reopened': reopened.rowcount}

    def _landlord_to_dict(
        self,
        user: UserModel,
        profile: Optional[LandlordProfileModel]
    ) -> Dict[str, Any]:
        """Convert landlord + profile to dict."""
        return {
            'id': user.id,
            'email': user.email,
            'name': user.name,
            'availability': user.availability,
            'active_contracts': user.active_contracts,
            'total_capacity': user.total_capacity,
            'last_active_at': user.last_active_at.isoformat() if user.last_active_at else None,
            'profile': {
                'preferred_locations': list(profile.preferred_locations or []),
                'min_budget': profile.min_budget,
                'max_budget': profile.max_budget,
                'property_types': list(profile.property_types or []),
                'amenities': list(profile.amenities or []),
                'average_response_time': profile.average_response_time,
                'acceptance_rate': profile.acceptance_rate,
            } if profile else None
        }

    # ============================================
    # MATCHES
    # ============================================

    async def create_matches(self, rows: Iterable[Dict[str, Any]]) -> List[int]:
        """
        Batch insert-or-ignore of match rows on (landlord_id, rental_request_id).

        Existing pairs are filtered out inside the transaction, concurrent
        inserts are absorbed by ON CONFLICT DO NOTHING.

        Returns:
            Landlord IDs of the rows this call inserted
        """
        rows = list(rows)
        if not rows:
            return []

        async with DatabaseSession() as session:
            request_ids = {row['rental_request_id'] for row in rows}
            result = await session.execute(
                select(MatchModel.landlord_id, MatchModel.rental_request_id)
                .where(MatchModel.rental_request_id.in_(request_ids))
            )
            existing: set = {(landlord_id, request_id) for landlord_id, request_id in result.all()}

            now = utcnow()
            new_rows = []
            for row in rows:
                key = (row['landlord_id'], row['rental_request_id'])
                if key in existing:
                    continue
                existing.add(key)
                new_rows.append({
                    'landlord_id': row['landlord_id'],
                    'rental_request_id': row['rental_request_id'],
                    'match_score': row.get('match_score', 0),
                    'match_reason': row.get('match_reason'),
                    'is_viewed': False,
                    'is_responded': False,
                    'status': MatchStatus.PENDING.value,
                    'created_at': row.get('created_at', now),
                    'updated_at': now,
                })

            if not new_rows:
                return []

            dialect = session.get_bind().dialect.name
            if dialect == 'postgresql':
                stmt = pg_insert(MatchModel).values(new_rows).on_conflict_do_nothing(
                    index_elements=['landlord_id', 'rental_request_id']
                )
            elif dialect == 'sqlite':
                stmt = sqlite_insert(MatchModel).values(new_rows).on_conflict_do_nothing(
                    index_elements=['landlord_id', 'rental_request_id']
                )
            else:
                stmt = insert(MatchModel).values(new_rows)

            # Conflicting rows are not returned
            result = await session.execute(stmt.returning(MatchModel.landlord_id))
            return [row[0] for row in result.all()]

    async def delete_matches(self, **filters) -> int:
        """Delete matches by column equality filters."""
        async with DatabaseSession() as session:
            result = await session.execute(
                delete(MatchModel)
                .where(and_(*_conditions(MatchModel, filters)))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def find_matches(self, **filters) -> List[Dict[str, Any]]:
        """Find matches by column equality filters."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(MatchModel)
                .where(and_(*_conditions(MatchModel, filters)))
                .order_by(MatchModel.match_score.desc(), MatchModel.id)
            )
            return [self._match_to_dict(m) for m in result.scalars().all()]

    async def update_matches(self, landlord_id: int, rental_request_id: int, **fields) -> int:
        """Update the match row(s) of a (landlord, request) pair."""
        values = _unwrap(fields)
        values['updated_at'] = utcnow()

        async with DatabaseSession() as session:
            result = await session.execute(
                update(MatchModel)
                .where(
                    and_(
                        MatchModel.landlord_id == landlord_id,
                        MatchModel.rental_request_id == rental_request_id
                    )
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def find_landlord_listing(
        self,
        landlord_id: int,
        now: datetime,
        offset: int,
        limit: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Unviewed matches of a landlord on live pool requests.

        Ordered by match_score desc, created_at desc.

        Returns:
            (page of match dicts with 'rental_request', total count)
        """
        conditions = and_(
            MatchModel.landlord_id == landlord_id,
            MatchModel.is_viewed == False,
            RentalRequestModel.pool_status == PoolStatus.ACTIVE.value,
            RentalRequestModel.expires_at > now
        )

        async with DatabaseSession() as session:
            result = await session.execute(
                select(MatchModel, RentalRequestModel)
                .join(RentalRequestModel, MatchModel.rental_request_id == RentalRequestModel.id)
                .where(conditions)
                .order_by(
                    MatchModel.match_score.desc(),
                    MatchModel.created_at.desc(),
                    MatchModel.id.desc()
                )
                .offset(offset)
                .limit(limit)
            )
            items = [
                self._match_to_dict(match, request)
                for match, request in result.all()
            ]

            total_result = await session.execute(
                select(func.count(MatchModel.id))
                .join(RentalRequestModel, MatchModel.rental_request_id == RentalRequestModel.id)
                .where(conditions)
            )
            total = total_result.scalar_one()

        return items, total

    async def count_recent_matches(self, since: datetime) -> int:
        """Matches created at or after a timestamp."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(func.count(MatchModel.id)).where(MatchModel.created_at >= since)
            )
            return result.scalar_one()

    async def find_responses(self, since: datetime) -> List[Dict[str, Any]]:
        """Responded matches with responded_at at or after a timestamp."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(MatchModel.landlord_id, MatchModel.status, MatchModel.created_at, MatchModel.responded_at)
                .where(
                    and_(
                        MatchModel.is_responded == True,
                        MatchModel.responded_at >= since
                    )
                )
                .order_by(MatchModel.landlord_id, MatchModel.id)
            )
            return [
                {
                    'landlord_id': row.landlord_id,
                    'status': row.status,
                    'created_at': row.created_at,
                    'responded_at': row.responded_at,
                }
                for row in result.all()
            ]

    def _match_to_dict(
        self,
        match: MatchModel,
        request: Optional[RentalRequestModel] = None
    ) -> Dict[str, Any]:
        """Convert a match (optionally with its request) to dict."""
        data = {
            'id': match.id,
            'landlord_id': match.landlord_id,
            'rental_request_id': match.rental_request_id,
            'match_score': match.match_score,
            'match_reason': match.match_reason,
            'is_viewed': match.is_viewed,
            'is_responded': match.is_responded,
            'responded_at': match.responded_at.isoformat() if match.responded_at else None,
            'status': match.status,
            'created_at': match.created_at.isoformat() if match.created_at else None,
            'updated_at': match.updated_at.isoformat() if match.updated_at else None,
        }
        if request is not None:
            data['rental_request'] = self._request_to_dict(request)
        return data

    # ============================================
    # ANALYTICS & MAINTENANCE
    # ============================================

    async def insert_analytics_snapshot(self, **row) -> int:
        """Append a pool analytics snapshot."""
        async with DatabaseSession() as session:
            snapshot = PoolAnalyticsModel(**row)
            session.add(snapshot)
            await session.flush()
            return snapshot.id

    async def find_analytics(self, location: str) -> List[Dict[str, Any]]:
        """Snapshots of a location, oldest first."""
        async with DatabaseSession() as session:
            result = await session.execute(
                select(PoolAnalyticsModel)
                .where(PoolAnalyticsModel.location == location)
                .order_by(PoolAnalyticsModel.date, PoolAnalyticsModel.id)
            )
            return [{
                'id': s.id,
                'location': s.location,
                'total_requests': s.total_requests,
                'active_requests': s.active_requests,
                'matched_requests': s.matched_requests,
                'expired_requests': s.expired_requests,
                'landlord_count': s.landlord_count,
                'date': s.date.isoformat() if s.date else None,
            } for s in result.scalars().all()]

    async def prune_history(self, analytics_before: datetime, matches_before: datetime) -> Dict[str, int]:
        """Delete old analytics snapshots and old fully handled matches."""
        async with DatabaseSession() as session:
            analytics = await session.execute(
                delete(PoolAnalyticsModel)
                .where(PoolAnalyticsModel.date < analytics_before)
                .execution_options(synchronize_session=False)
            )
            matches = await session.execute(
                delete(MatchModel)
                .where(
                    and_(
                        MatchModel.created_at < matches_before,
                        MatchModel.is_viewed == True,
                        MatchModel.is_responded == True
                    )
                )
                .execution_options(synchronize_session=False)
            )
            return {'analytics': analytics.rowcount, 'matches': matches.rowcount}


# Global instance
_pool_db_instance: Optional[RequestPoolDB] = None


async def get_pool_db() -> RequestPoolDB:
    """Get the shared RequestPoolDB instance."""
    global _pool_db_instance

    if _pool_db_instance is None:
        _pool_db_instance = RequestPoolDB()

    return _pool_db_instance
