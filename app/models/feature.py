"""
Model: Feature and its association tables
"""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from db import Base


class Feature(Base):
    __tablename__ = "features"

    id = Column(Integer, primary_key=True, autoincrement=False)  # Externally assigned roadmap ID
    title = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(String, nullable=False)  # "In development", "Rolling out", "Launched", ...
    general_availability_date = Column(String(7))  # YYYY-MM
    preview_availability_date = Column(String(7))  # YYYY-MM
    created = Column(String, nullable=False)  # ISO 8601
    modified = Column(String, nullable=False)  # ISO 8601, differential sync watermark

    products = relationship(
        "FeatureProduct", order_by="FeatureProduct.product", cascade="all, delete-orphan", passive_deletes=True
    )
    platforms = relationship(
        "FeaturePlatform", order_by="FeaturePlatform.platform", cascade="all, delete-orphan", passive_deletes=True
    )
    cloud_instances = relationship(
        "FeatureCloudInstance", order_by="FeatureCloudInstance.cloud_instance", cascade="all, delete-orphan", passive_deletes=True
    )
    release_rings = relationship(
        "FeatureReleaseRing", order_by="FeatureReleaseRing.release_ring", cascade="all, delete-orphan", passive_deletes=True
    )
    availabilities = relationship(
        "FeatureAvailability", order_by="FeatureAvailability.id", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_features_status", "status"),
        Index("idx_features_modified", "modified"),
        Index("idx_features_ga_date", "general_availability_date"),
    )


class FeatureProduct(Base):
    __tablename__ = "feature_products"

    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), primary_key=True)
    product = Column(String, primary_key=True)

    __table_args__ = (Index("idx_feature_products_product", "product"),)


class FeaturePlatform(Base):
    __tablename__ = "feature_platforms"

    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), primary_key=True)
    platform = Column(String, primary_key=True)

    __table_args__ = (Index("idx_feature_platforms_platform", "platform"),)


class FeatureCloudInstance(Base):
    __tablename__ = "feature_cloud_instances"

    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), primary_key=True)
    cloud_instance = Column(String, primary_key=True)


class FeatureReleaseRing(Base):
    __tablename__ = "feature_release_rings"

    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), primary_key=True)
    release_ring = Column(String, primary_key=True)


class FeatureAvailability(Base):
    __tablename__ = "feature_availabilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), nullable=False, index=True)
    ring = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(String, nullable=False)  # "February"
