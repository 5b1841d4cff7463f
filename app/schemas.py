"""
Typed records passed between the fetcher, the sync coordinator, the query
engine and the RPC layer.
"""
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from constants import (
    ASSOCIATION_CLOUD_INSTANCE,
    ASSOCIATION_PLATFORM,
    ASSOCIATION_PRODUCT,
    ASSOCIATION_RELEASE_RING,
    SEARCH_LIMIT_SENTINEL,
)


@dataclass
class AvailabilityRecord:
    ring: str
    year: int
    month: str

    @classmethod
    def from_api(cls, data: Dict) -> "AvailabilityRecord":
        return cls(
            ring=data.get("ring") or "",
            year=int(data.get("year") or 0),
            month=data.get("month") or "",
        )


@dataclass
class FeatureRecord:
    """One roadmap entry as delivered by the remote feed"""

    id: int
    title: Optional[str]
    description: Optional[str]
    status: Optional[str]
    created: Optional[str]
    modified: Optional[str]
    general_availability_date: Optional[str] = None
    preview_availability_date: Optional[str] = None
    products: List[str] = field(default_factory=list)
    platforms: List[str] = field(default_factory=list)
    cloud_instances: List[str] = field(default_factory=list)
    release_rings: List[str] = field(default_factory=list)
    availabilities: List[AvailabilityRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "FeatureRecord":
        """
        Build from a feed item (camelCase keys). Raises ValueError when the
        item has no usable integer id. Missing text fields become empty strings.
        """
        raw_id = data.get("id")
        if isinstance(raw_id, bool) or raw_id is None:
            raise ValueError(f"Feature without a valid id: {raw_id!r}")
        feature_id = int(raw_id)

        return cls(
            id=feature_id,
            title=data.get("title") or "",
            description=data.get("description"),
            status=data.get("status") or "",
            created=data.get("created") or "",
            modified=data.get("modified") or "",
            general_availability_date=data.get("generalAvailabilityDate") or None,
            preview_availability_date=data.get("previewAvailabilityDate") or None,
            products=list(data.get("products") or []),
            platforms=list(data.get("platforms") or []),
            cloud_instances=list(data.get("cloudInstances") or []),
            release_rings=list(data.get("releaseRings") or []),
            availabilities=[AvailabilityRecord.from_api(a) for a in data.get("availabilities") or []],
        )

    def associations(self) -> Dict[str, List[str]]:
        return {
            ASSOCIATION_PRODUCT: self.products,
            ASSOCIATION_PLATFORM: self.platforms,
            ASSOCIATION_CLOUD_INSTANCE: self.cloud_instances,
            ASSOCIATION_RELEASE_RING: self.release_rings,
        }


@dataclass
class SearchFilters:
    """Validated search request; None means the dimension was not supplied"""

    query: Optional[str] = None
    products: Optional[List[str]] = None
    platforms: Optional[List[str]] = None
    cloud_instances: Optional[List[str]] = None
    status: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class SearchCriteria:
    """Fully composed query handed to the store"""

    match_expression: Optional[str] = None
    products: Optional[List[str]] = None
    platforms: Optional[List[str]] = None
    cloud_instances: Optional[List[str]] = None
    status: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    limit: int = SEARCH_LIMIT_SENTINEL
    offset: int = 0


@dataclass
class SearchResponse:
    results: List[Dict]
    total_count: int
    has_more: bool

    def to_dict(self):
        return asdict(self)


@dataclass
class SyncRequest:
    force: bool = False


@dataclass
class SyncResult:
    success: bool
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    skipped: bool = False
    not_modified: bool = False

    def to_dict(self):
        data = asdict(self)
        if data["error"] is None:
            del data["error"]
        return data
