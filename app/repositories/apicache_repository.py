"""
Repository for the ApiCache singleton (conditional-fetch ETag)

The api_cache table was added after the first schema; stores created before
it may not have it, so reads degrade to "no token" instead of failing.
"""

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import OperationalError

import structlog

from constants import API_CACHE_ID
from models.apicache import ApiCache

logger = structlog.get_logger("repositories.apicache")


class ApiCacheRepository:
    """Repository for ApiCache database operations"""

    @staticmethod
    def get_etag(session):
        try:
            return session.scalar(select(ApiCache.etag).where(ApiCache.id == API_CACHE_ID))
        except OperationalError as e:
            logger.debug("api_cache table unavailable, no stored etag", error=str(e))
            session.rollback()
            return None

    @staticmethod
    def get(session):
        try:
            return session.get(ApiCache, API_CACHE_ID)
        except OperationalError:
            session.rollback()
            return None

    @staticmethod
    def save_etag(session, etag, now):
        stmt = insert(ApiCache).values(id=API_CACHE_ID, etag=etag, last_checked=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ApiCache.id],
            set_={"etag": stmt.excluded.etag, "last_checked": now, "updated_at": now},
        )
        try:
            session.execute(stmt)
            return True
        except OperationalError as e:
            logger.warning("Could not persist etag, api_cache table unavailable", error=str(e))
            session.rollback()
            return False
