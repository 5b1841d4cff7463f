"""
Model: SchemaVersion
"""

from sqlalchemy import Column, Integer, String

from db import Base


class SchemaVersion(Base):
    __tablename__ = "schema_version"

    version = Column(Integer, primary_key=True, autoincrement=False)
    applied_at = Column(String, nullable=False)
