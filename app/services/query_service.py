"""
Query engine: turns validated SearchFilters into store criteria and shapes
the rows handed back to callers.
"""
import re

import structlog

from constants import (
    DESCRIPTION_SUMMARY_LENGTH,
    LEARN_SEARCH_URL_TEMPLATE,
    ROADMAP_URL_TEMPLATE,
    SEARCH_LIMIT_SENTINEL,
    TRUNCATION_MARKER,
)
from exceptions import NotFoundException
from metrics import track_db_query
from schemas import SearchCriteria, SearchResponse
from utils import now_utc, previous_month, truncate_text, year_month

logger = structlog.get_logger("query")

NON_ALPHANUMERIC = re.compile(r"[\W_]+", re.UNICODE)

DEFAULT_LOCALE = "en-us"

GUIDE_EXAMPLES = {
    "search_copilot": {"query": "Copilot", "limit": 10},
    "filter_by_product": {"products": ["Microsoft Teams"], "status": "In development"},
    "filter_by_date": {"date_from": "2026-01", "date_to": "2026-06"},
}


def sanitize_query_tokens(query):
    """Split on whitespace, strip non-alphanumerics from each token, drop empty ones"""
    if not query:
        return []
    tokens = []
    for raw in query.split():
        token = NON_ALPHANUMERIC.sub("", raw)
        if token:
            tokens.append(token)
    return tokens


def to_prefix_terms(tokens):
    return [f"{token}*" for token in tokens]


def build_match_expression(query):
    """
    FTS5 expression ANDing one prefix term per sanitized token, e.g.
    'Teams (Preview)!' -> '"Teams"* "Preview"*'. None when nothing survives.
    """
    tokens = sanitize_query_tokens(query)
    if not tokens:
        return None
    return " ".join(f'"{token}"*' for token in tokens)


def roadmap_url(feature_id, locale=DEFAULT_LOCALE):
    return ROADMAP_URL_TEMPLATE.format(locale=locale, id=feature_id)


def learn_search_url(feature_id, locale=DEFAULT_LOCALE):
    return LEARN_SEARCH_URL_TEMPLATE.format(locale=locale, id=feature_id)


class QueryService:
    def __init__(self, store, settings=None, clock=now_utc):
        self.store = store
        self.clock = clock

        search = (settings or {}).get("search", {})
        self.default_limit = search.get("default_limit", SEARCH_LIMIT_SENTINEL)
        self.summary_length = search.get("summary_length", DESCRIPTION_SUMMARY_LENGTH)
        self.locale = (settings or {}).get("references", {}).get("locale", DEFAULT_LOCALE)

    def build_criteria(self, filters):
        """Compose store criteria, applying the default window when no filter dimension is given"""
        match_expression = build_match_expression(filters.query)

        criteria = SearchCriteria(
            match_expression=match_expression,
            products=filters.products or None,
            platforms=filters.platforms or None,
            cloud_instances=filters.cloud_instances or None,
            status=filters.status or None,
            date_from=filters.date_from,
            date_to=filters.date_to,
            limit=filters.limit if filters.limit is not None else self.default_limit,
            offset=filters.offset or 0,
        )

        has_dimension = any(
            [
                criteria.match_expression,
                criteria.products,
                criteria.platforms,
                criteria.cloud_instances,
                criteria.status,
                criteria.date_from,
                criteria.date_to,
            ]
        )
        if not has_dimension:
            now = self.clock()
            criteria.date_from = year_month(previous_month(now))
            criteria.date_to = year_month(now)
            logger.debug("No filters given, applying default window", date_from=criteria.date_from, date_to=criteria.date_to)

        return criteria

    def shape_row(self, row):
        return {
            "id": row["id"],
            "title": row["title"],
            "description": truncate_text(row["description"], self.summary_length, TRUNCATION_MARKER),
            "status": row["status"],
            "products": row["products"],
            "platforms": row["platforms"],
            "general_availability_date": row["general_availability_date"],
            "preview_availability_date": row["preview_availability_date"],
            "modified": row["modified"],
            "roadmap_url": roadmap_url(row["id"], self.locale),
        }

    @track_db_query("search")
    def search(self, filters) -> SearchResponse:
        criteria = self.build_criteria(filters)
        rows, total_count = self.store.search(criteria)

        results = [self.shape_row(row) for row in rows]
        has_more = criteria.offset + len(results) < total_count

        logger.info("Search completed", total_count=total_count, returned=len(results), has_more=has_more)
        return SearchResponse(results=results, total_count=total_count, has_more=has_more)

    @track_db_query("get_feature")
    def get_feature(self, feature_id):
        feature = self.store.get_feature_by_id(feature_id)
        if feature is None:
            logger.warning("Feature not found", id=feature_id)
            raise NotFoundException(f"Feature not found: {feature_id}", resource_id=feature_id)

        feature["references"] = {
            "roadmap_url": roadmap_url(feature_id, self.locale),
            "roadmap_url_en": roadmap_url(feature_id, DEFAULT_LOCALE),
            "learn_search_url": learn_search_url(feature_id, self.locale),
            "learn_search_url_en": learn_search_url(feature_id, DEFAULT_LOCALE),
        }
        return feature

    def get_guide(self, data_freshness=None):
        """Available filter values plus example requests"""
        freshness = None
        if data_freshness:
            freshness = {
                "last_sync": data_freshness.get("last_sync"),
                "record_count": data_freshness.get("record_count"),
                "hours_since_sync": data_freshness.get("hours_since_sync"),
            }

        return {
            "description": "Use these values to construct search queries",
            "available_products": self.store.get_all_products(),
            "available_platforms": self.store.get_all_platforms(),
            "available_statuses": self.store.get_all_statuses(),
            "available_cloud_instances": self.store.get_all_cloud_instances(),
            "data_freshness": freshness,
            "examples": GUIDE_EXAMPLES,
        }
