"""
Tests for maintenance scripts
"""
from conftest import FakeRoadmapClient, make_feature
from constants import EPOCH_SENTINEL, SYNC_STATUS_IDLE, SYNC_STATUS_SYNCING
from roadmap_client import FetchResult
from scripts.clear_db import clear_db
from scripts.generate_seed_db import generate_seed_db
from scripts.reset_checkpoint import reset_checkpoint
from store import FeatureStore
from utils import hours_since


class TestResetCheckpoint:
    def test_moves_last_sync_back(self, store):
        """Test last_sync is set the given hours in the past"""
        checkpoint = reset_checkpoint(store, hours=2)

        assert round(hours_since(checkpoint['last_sync']), 1) == 2.0

    def test_unlock(self, store):
        """Test --unlock clears a stuck syncing status"""
        store.try_acquire_sync_lock()

        assert reset_checkpoint(store, hours=2)['sync_status'] == SYNC_STATUS_SYNCING
        assert reset_checkpoint(store, hours=2, unlock=True)['sync_status'] == SYNC_STATUS_IDLE


class TestGenerateSeedDb:
    def test_builds_usable_seed(self, tmp_path):
        """Test the seed holds every feature and a filled checkpoint"""
        features = [make_feature(1, modified='2026-01-01T00:00:00Z'), make_feature(2, modified='2026-02-01T00:00:00Z')]
        client = FakeRoadmapClient(FetchResult(modified=True, features=features, etag='"v1"'))
        output = str(tmp_path / 'seed.db')

        processed, stats = generate_seed_db(client, output)

        assert processed == 2
        assert stats['feature_count'] == 2
        assert client.calls == [{'use_cache': False, 'etag': None}]

        with FeatureStore(db_path=str(tmp_path / 'home' / 'roadmap.db'), seed_path=output) as store:
            checkpoint = store.get_checkpoint()
            assert store.count_features() == 2
            assert checkpoint['record_count'] == 2
            assert checkpoint['watermark'] == '2026-02-01T00:00:00Z'
            assert checkpoint['last_sync'] != EPOCH_SENTINEL


class TestClearDb:
    def test_drops_all_data(self, tmp_path):
        """Test the schema is recreated empty"""
        path = str(tmp_path / 'roadmap.db')
        with FeatureStore(db_path=path, seed_path=None) as store:
            store.write_features([make_feature(1)])

        clear_db(path)

        with FeatureStore(db_path=path, seed_path=None) as store:
            assert store.count_features() == 0
            assert store.get_checkpoint()['last_sync'] == EPOCH_SENTINEL
