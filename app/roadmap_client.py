"""
Client for the public Microsoft 365 Roadmap JSON feed

The feed is a single OData document ({"value": [...]}) holding every feature.
Requests are conditional on the last ETag seen by this client, so an
unchanged feed costs one 304 round trip.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

import requests
import structlog

from constants import ROADMAP_API_URL, USER_AGENT
from exceptions import RoadmapFetchException
from metrics import fetch_attempts_total
from schemas import FeatureRecord

logger = structlog.get_logger("roadmap_client")


@dataclass
class FetchResult:
    """Outcome of one conditional fetch of the whole feed"""

    modified: bool
    features: List[FeatureRecord] = field(default_factory=list)
    etag: Optional[str] = None


class MalformedFeedError(Exception):
    """Response body is not the expected OData document"""


class RoadmapClient:
    """Fetches the roadmap feed with retries, exponential backoff and ETag caching"""

    def __init__(
        self,
        api_url: str = ROADMAP_API_URL,
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        user_agent: str = USER_AGENT,
        session: requests.Session = None,
        sleep=time.sleep,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self._sleep = sleep
        self._cached_etag = None

    @classmethod
    def from_settings(cls, settings, **kwargs):
        roadmap = settings["roadmap"]
        return cls(
            api_url=roadmap["api_url"],
            timeout=roadmap["timeout_seconds"],
            max_retries=roadmap["max_retries"],
            retry_delay=roadmap["retry_delay_seconds"],
            user_agent=roadmap["user_agent"],
            **kwargs,
        )

    def get_cached_etag(self):
        return self._cached_etag

    def set_cached_etag(self, etag):
        self._cached_etag = etag or None

    def _headers(self, if_none_match=None):
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        if if_none_match:
            headers["If-None-Match"] = if_none_match
        return headers

    @staticmethod
    def _parse_body(response):
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedFeedError(f"Invalid JSON in response: {e}")
        if not isinstance(data, dict):
            raise MalformedFeedError("Response is not a JSON object")
        items = data.get("value") or []
        if not isinstance(items, list):
            raise MalformedFeedError("Response 'value' is not a list")
        return items

    def _request_with_retry(self, if_none_match=None):
        """
        Perform the GET, retrying failed attempts with exponential backoff.

        Returns (response, items); items is None for a 304.
        """
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(
                    self.api_url, headers=self._headers(if_none_match), timeout=self.timeout
                )

                if response.status_code == 304:
                    fetch_attempts_total.labels(outcome="not_modified").inc()
                    return response, None

                if not response.ok:
                    raise requests.HTTPError(f"HTTP {response.status_code}: {response.reason}", response=response)

                items = self._parse_body(response)
                fetch_attempts_total.labels(outcome="success").inc()
                return response, items

            except (requests.RequestException, MalformedFeedError) as e:
                fetch_attempts_total.labels(outcome="error").inc()
                last_error = str(e)

                if attempt == self.max_retries:
                    logger.error("Fetch failed after max retries", url=self.api_url, attempts=attempt, error=last_error)
                    break

                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    "Fetch failed, retrying", url=self.api_url, attempt=attempt, next_retry_s=delay, error=last_error
                )
                self._sleep(delay)

        raise RoadmapFetchException(
            f"Failed to fetch {self.api_url} after {self.max_retries} attempts: {last_error}",
            url=self.api_url,
            attempts=self.max_retries,
        )

    def fetch_all(self, use_cache: bool = True) -> FetchResult:
        """
        Fetch the whole feed. With use_cache the request carries the cached
        ETag and an unchanged feed yields FetchResult(modified=False).
        """
        if_none_match = self._cached_etag if use_cache else None
        logger.info("Fetching roadmap features", url=self.api_url, cached_etag=if_none_match)
        start_time = time.time()

        response, items = self._request_with_retry(if_none_match)
        duration_ms = int((time.time() - start_time) * 1000)

        if items is None:
            logger.info("Roadmap not modified (304)", duration_ms=duration_ms)
            return FetchResult(modified=False, features=[], etag=self._cached_etag)

        features = []
        for item in items:
            try:
                features.append(FeatureRecord.from_api(item))
            except (ValueError, TypeError, AttributeError) as e:
                raise RoadmapFetchException(f"Malformed feature record: {e}", url=self.api_url, attempts=1)

        new_etag = response.headers.get("ETag")
        if new_etag:
            self._cached_etag = new_etag

        logger.info("Fetched roadmap features", count=len(features), duration_ms=duration_ms, etag=new_etag)
        return FetchResult(modified=True, features=features, etag=new_etag)

    def fetch_feature_by_id(self, feature_id: int) -> Optional[FeatureRecord]:
        """The feed has no per-item endpoint: fetch everything and look the id up"""
        result = self.fetch_all(use_cache=False)
        for feature in result.features:
            if feature.id == feature_id:
                return feature
        return None
