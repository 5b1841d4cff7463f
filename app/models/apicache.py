"""
Model: ApiCache
Conditional-fetch validator (ETag) of the remote catalog
"""

from sqlalchemy import CheckConstraint, Column, Integer, String

from db import Base


class ApiCache(Base):
    __tablename__ = "api_cache"

    id = Column(Integer, primary_key=True, autoincrement=False)
    etag = Column(String)
    last_checked = Column(String)  # Last time the remote confirmed the etag
    updated_at = Column(String)

    __table_args__ = (CheckConstraint("id = 1", name="ck_api_cache_singleton"),)
