"""
Pytest fixtures and configuration for RoadmapMirror tests
"""
import copy
import os
import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'app'))

from constants import DEFAULT_SETTINGS  # noqa: E402
from roadmap_client import FetchResult  # noqa: E402
from schemas import FeatureRecord  # noqa: E402
from store import FeatureStore  # noqa: E402

FIXED_NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_payload(feature_id, modified='2026-01-01T00:00:00Z', ga='2026-03', **overrides):
    """One feed item in the remote (camelCase) shape"""
    payload = {
        'id': feature_id,
        'title': f'Feature {feature_id}',
        'description': f'Description of feature {feature_id}',
        'status': 'In development',
        'created': '2025-06-01T00:00:00Z',
        'modified': modified,
        'generalAvailabilityDate': ga,
        'previewAvailabilityDate': None,
        'products': ['Microsoft Teams'],
        'platforms': ['Web'],
        'cloudInstances': ['Worldwide (Standard Multi-Tenant)'],
        'releaseRings': ['General Availability'],
        'availabilities': [{'ring': 'General Availability', 'year': 2026, 'month': 'March'}],
    }
    payload.update(overrides)
    return payload


def make_feature(feature_id, **kwargs):
    return FeatureRecord.from_api(make_payload(feature_id, **kwargs))


class FakeRoadmapClient:
    """In-memory stand-in for RoadmapClient"""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else FetchResult(modified=True, features=[], etag=None)
        self.error = error
        self.calls = []
        self._cached_etag = None

    def get_cached_etag(self):
        return self._cached_etag

    def set_cached_etag(self, etag):
        self._cached_etag = etag

    def fetch_all(self, use_cache=True):
        self.calls.append({'use_cache': use_cache, 'etag': self._cached_etag if use_cache else None})
        if self.error is not None:
            raise self.error
        if self.result.etag:
            self._cached_etag = self.result.etag
        return self.result


@pytest.fixture
def fixed_clock():
    """Clock returning a constant 'now' (2026-03-15 12:00 UTC)"""
    return lambda: FIXED_NOW


@pytest.fixture
def test_settings(tmp_path):
    """Default settings pointing at a temporary database"""
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    settings['database']['path'] = str(tmp_path / 'roadmap.db')
    settings['database']['seed_path'] = None
    settings['sync']['on_startup'] = False
    return settings


@pytest.fixture
def store(tmp_path):
    """Open FeatureStore on a temporary file"""
    feature_store = FeatureStore(db_path=str(tmp_path / 'roadmap.db'), seed_path=None)
    feature_store.open()
    yield feature_store
    feature_store.close()


@pytest.fixture
def fake_client():
    return FakeRoadmapClient()


@pytest.fixture
def sample_features():
    """Three features spread over time and products"""
    return [
        make_feature(
            1001,
            modified='2026-01-10T08:00:00Z',
            ga='2026-02',
            title='Microsoft Teams: Meeting recap',
            products=['Microsoft Teams'],
            platforms=['Desktop', 'Web'],
        ),
        make_feature(
            1002,
            modified='2026-01-20T08:00:00Z',
            ga='2026-03',
            title='Copilot in Outlook',
            description='Copilot drafts replies in Outlook (Preview)',
            status='Rolling out',
            products=['Outlook', 'Microsoft Copilot (Microsoft 365)'],
            platforms=['Web'],
        ),
        make_feature(
            1003,
            modified='2025-09-01T08:00:00Z',
            ga='2025-09',
            title='SharePoint: Site templates',
            status='Launched',
            products=['SharePoint'],
            platforms=['Web'],
            cloudInstances=['GCC'],
        ),
    ]


@pytest.fixture
def mock_session():
    """requests.Session double; configure session.get.return_value / side_effect per test"""
    return MagicMock()


@pytest.fixture
def mock_response():
    """Factory building a requests.Response double"""
    def _make(status_code=200, payload=None, etag=None, reason='OK'):
        response = MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        response.reason = reason
        response.headers = {'ETag': etag} if etag else {}
        response.json.return_value = payload if payload is not None else {'value': []}
        return response
    return _make
