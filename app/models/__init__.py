"""
Models package

One module per table group:
- feature.py (features and their tag/availability tables)
- synccheckpoint.py
- apicache.py
- schemaversion.py

The FTS5 index is not a model; see db.SEARCH_INDEX.
"""

from .feature import (
    Feature,
    FeatureProduct,
    FeaturePlatform,
    FeatureCloudInstance,
    FeatureReleaseRing,
    FeatureAvailability,
)
from .synccheckpoint import SyncCheckpoint
from .apicache import ApiCache
from .schemaversion import SchemaVersion

__all__ = [
    "Feature",
    "FeatureProduct",
    "FeaturePlatform",
    "FeatureCloudInstance",
    "FeatureReleaseRing",
    "FeatureAvailability",
    "SyncCheckpoint",
    "ApiCache",
    "SchemaVersion",
]
