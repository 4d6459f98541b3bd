"""
Store repository for the request pool.

Example usage:
    from request_pool.database import get_pool_db

    db = await get_pool_db()

    request_id = await db.create_rental_request(
        location='Warsaw',
        budget=3000,
        title='2-room flat near the centre'
    )

    landlords = await db.find_landlords(location='Warsaw', budget=3000, limit=100)
"""

from .sqlalchemy_adapter import RequestPoolDB, get_pool_db

__all__ = [
    'RequestPoolDB',
    'get_pool_db',
]
