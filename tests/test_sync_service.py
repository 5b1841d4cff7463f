"""
Tests for the sync coordinator
"""
from datetime import timedelta

import pytest

from conftest import FIXED_NOW, FakeRoadmapClient, make_feature
from constants import SYNC_STATUS_IDLE, SYNC_STATUS_SYNCING
from exceptions import RoadmapFetchException
from roadmap_client import FetchResult
from services.sync_service import SyncService
from utils import format_iso


def _service(store, client, fixed_clock):
    return SyncService(store, client, clock=fixed_clock)


class LockStealingClient(FakeRoadmapClient):
    """Lets a second sync take the lock over while the fetch is in flight"""

    def __init__(self, store, result):
        super().__init__(result)
        self.store = store
        self.stolen_token = None

    def fetch_all(self, use_cache=True):
        self.store.set_checkpoint(updated_at='2000-01-01T00:00:00.000Z')
        self.stolen_token = self.store.try_acquire_sync_lock(lock_timeout_minutes=30)
        return super().fetch_all(use_cache)


class TestPerformSync:
    """Tests for the sync state machine"""

    def test_first_sync_writes_everything(self, store, sample_features, fixed_clock):
        """Test an empty store takes the whole fetched set"""
        client = FakeRoadmapClient(FetchResult(modified=True, features=sample_features, etag='"v1"'))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is True
        assert result.records_processed == 3
        assert result.records_inserted == 3
        assert result.records_updated == 0
        assert store.count_features() == 3

        checkpoint = store.get_checkpoint()
        assert checkpoint['sync_status'] == SYNC_STATUS_IDLE
        assert checkpoint['record_count'] == 3
        assert checkpoint['watermark'] == '2026-01-20T08:00:00Z'
        assert checkpoint['last_sync'] == format_iso(FIXED_NOW)
        assert checkpoint['last_error'] is None
        assert store.get_cached_token() == '"v1"'

    def test_differential_sync_only_writes_newer_records(self, store, fixed_clock):
        """Test records not newer than the store watermark are untouched"""
        store.write_features([make_feature(1, modified='2026-01-15T00:00:00Z', title='Original')])
        older = make_feature(2, modified='2026-01-10T00:00:00Z')
        newer = make_feature(3, modified='2026-01-20T00:00:00Z')
        stale_copy = make_feature(1, modified='2026-01-15T00:00:00Z', title='Changed without bump')
        client = FakeRoadmapClient(FetchResult(modified=True, features=[older, newer, stale_copy], etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.records_processed == 1
        assert store.get_feature_by_id(3) is not None
        assert store.get_feature_by_id(2) is None
        assert store.get_feature_by_id(1)['title'] == 'Original'

    def test_counts_split_inserted_and_updated(self, store, fixed_clock):
        """Test inserted is store growth and updated is the remainder"""
        store.write_features([make_feature(1, modified='2026-01-01T00:00:00Z')])
        features = [make_feature(1, modified='2026-02-01T00:00:00Z'), make_feature(2, modified='2026-02-02T00:00:00Z')]
        client = FakeRoadmapClient(FetchResult(modified=True, features=features, etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.records_processed == 2
        assert result.records_inserted == 1
        assert result.records_updated == 1

    def test_concurrent_sync_is_skipped_without_writes(self, store, sample_features, fixed_clock):
        """Test a held lock yields a skipped result and no fetch or write"""
        assert store.try_acquire_sync_lock() is not None
        client = FakeRoadmapClient(FetchResult(modified=True, features=sample_features, etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is False
        assert result.skipped is True
        assert result.error == 'Sync already in progress'
        assert client.calls == []
        assert store.count_features() == 0
        assert store.get_checkpoint()['sync_status'] == SYNC_STATUS_SYNCING

    def test_stale_lock_is_taken_over(self, store, sample_features, fixed_clock):
        """Test a lock left by a crashed process does not block forever"""
        store.set_checkpoint(sync_status=SYNC_STATUS_SYNCING, updated_at='2000-01-01T00:00:00.000Z')
        client = FakeRoadmapClient(FetchResult(modified=True, features=sample_features, etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is True
        assert store.get_checkpoint()['sync_status'] == SYNC_STATUS_IDLE

    def test_syncing_row_without_heartbeat_is_respected(self, store, sample_features, fixed_clock):
        """Test a syncing checkpoint with no updated_at is not taken over"""
        store.set_checkpoint(sync_status=SYNC_STATUS_SYNCING, updated_at=None)
        client = FakeRoadmapClient(FetchResult(modified=True, features=sample_features, etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.skipped is True
        assert client.calls == []
        assert store.count_features() == 0

    def test_displaced_sync_writes_nothing_and_keeps_new_lock(self, store, sample_features, fixed_clock):
        """Test a sync whose lock was taken over mid-run neither writes nor releases the lock"""
        client = LockStealingClient(store, FetchResult(modified=True, features=sample_features, etag='"v1"'))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is False
        assert 'taken over' in result.error
        assert store.count_features() == 0

        checkpoint = store.get_checkpoint()
        assert checkpoint['sync_status'] == SYNC_STATUS_SYNCING
        assert checkpoint['lock_owner'] == client.stolen_token
        assert checkpoint['last_error'] is None

    def test_not_modified_short_circuits(self, store, sample_features, fixed_clock):
        """Test a 304 finalizes without writing and keeps the watermark"""
        store.write_features(sample_features)
        store.complete_sync_success('2026-03-01T00:00:00.000Z', '2026-01-20T08:00:00Z', 3, 100)
        store.set_cached_token('"v1"')
        client = FakeRoadmapClient(FetchResult(modified=False, features=[], etag='"v1"'))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is True
        assert result.not_modified is True
        assert result.records_processed == 0
        assert client.calls == [{'use_cache': True, 'etag': '"v1"'}]

        checkpoint = store.get_checkpoint()
        assert checkpoint['last_sync'] == format_iso(FIXED_NOW)
        assert checkpoint['watermark'] == '2026-01-20T08:00:00Z'
        assert checkpoint['record_count'] == 3

    def test_force_ignores_stored_token(self, store, fixed_clock):
        """Test a forced sync fetches unconditionally"""
        store.set_cached_token('"v1"')
        client = FakeRoadmapClient(FetchResult(modified=True, features=[], etag='"v2"'))

        _service(store, client, fixed_clock).perform_sync(force=True)

        assert client.calls == [{'use_cache': False, 'etag': None}]
        assert store.get_cached_token() == '"v2"'

    def test_empty_feed_keeps_prior_watermark(self, store, fixed_clock):
        """Test fetching nothing leaves the watermark as it was"""
        store.complete_sync_success('2026-03-01T00:00:00.000Z', '2026-01-20T08:00:00Z', 0, 100)
        client = FakeRoadmapClient(FetchResult(modified=True, features=[], etag=None))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is True
        assert store.get_checkpoint()['watermark'] == '2026-01-20T08:00:00Z'

    def test_fetch_failure_is_recorded(self, store, fixed_clock):
        """Test a fetch error becomes a failed result and an idle checkpoint"""
        error = RoadmapFetchException('Failed to fetch after 3 attempts: HTTP 500', url='https://x', attempts=3)
        client = FakeRoadmapClient(error=error)

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is False
        assert result.skipped is False
        assert 'HTTP 500' in result.error

        checkpoint = store.get_checkpoint()
        assert checkpoint['sync_status'] == SYNC_STATUS_IDLE
        assert 'HTTP 500' in checkpoint['last_error']

    def test_write_failure_rolls_back_and_keeps_watermark(self, store, fixed_clock):
        """Test a failing record leaves data and watermark unchanged"""
        import dataclasses

        store.write_features([make_feature(1, modified='2026-01-01T00:00:00Z', title='Before')])
        store.complete_sync_success('2026-02-01T00:00:00.000Z', '2026-01-01T00:00:00Z', 1, 100)
        features = [
            make_feature(1, modified='2026-02-01T00:00:00Z', title='After'),
            dataclasses.replace(make_feature(2, modified='2026-02-02T00:00:00Z'), status=None),
        ]
        client = FakeRoadmapClient(FetchResult(modified=True, features=features, etag='"v9"'))

        result = _service(store, client, fixed_clock).perform_sync()

        assert result.success is False
        assert 'Failed to sync feature 2' in result.error
        assert store.get_feature_by_id(1)['title'] == 'Before'
        assert store.get_feature_by_id(2) is None

        checkpoint = store.get_checkpoint()
        assert checkpoint['sync_status'] == SYNC_STATUS_IDLE
        assert checkpoint['watermark'] == '2026-01-01T00:00:00Z'
        assert store.get_cached_token() is None

    def test_success_clears_previous_error(self, store, fixed_clock):
        """Test a successful sync clears last_error"""
        store.complete_sync_failure('old failure')
        client = FakeRoadmapClient(FetchResult(modified=True, features=[make_feature(1)], etag=None))

        _service(store, client, fixed_clock).perform_sync()

        assert store.get_checkpoint()['last_error'] is None


class TestStaleness:
    """Tests for is_sync_needed and get_sync_status"""

    def test_never_synced_needs_sync(self, store, fake_client, fixed_clock):
        """Test the epoch sentinel always needs a sync"""
        assert _service(store, fake_client, fixed_clock).is_sync_needed(24) is True

    @pytest.mark.parametrize('hours_ago, threshold, expected', [
        (0.5, 1, False),
        (1, 1, True),
        (3, 1, True),
        (3, 6, False),
    ])
    def test_threshold(self, store, fake_client, fixed_clock, hours_ago, threshold, expected):
        """Test staleness compares wall-clock age with the threshold"""
        store.set_checkpoint(last_sync=format_iso(FIXED_NOW - timedelta(hours=hours_ago)))

        assert _service(store, fake_client, fixed_clock).is_sync_needed(threshold) is expected

    def test_sync_status(self, store, fake_client, fixed_clock):
        """Test status reports rounded hours since the last sync"""
        store.set_checkpoint(last_sync=format_iso(FIXED_NOW - timedelta(minutes=100)), record_count=42)

        status = _service(store, fake_client, fixed_clock).get_sync_status()

        assert status['hours_since_sync'] == 1.7
        assert status['record_count'] == 42
        assert status['sync_status'] == SYNC_STATUS_IDLE
        assert status['is_syncing'] is False
