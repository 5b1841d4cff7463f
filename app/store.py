"""
FeatureStore - the storage engine of the local roadmap mirror.

An explicitly constructed handle owning one SQLAlchemy engine and session
factory. Components receive the store they should use; nothing here is a
process-wide singleton.
"""
import uuid
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import structlog

from constants import DB_FILE, SEED_DB_FILE
from db import create_db_engine, copy_seed_database_if_needed, ensure_schema
from exceptions import DatabaseException, SyncLockLostException, SyncWriteException
from models.feature import Feature, FeatureCloudInstance, FeaturePlatform, FeatureProduct
from repositories.apicache_repository import ApiCacheRepository
from repositories.feature_repository import FeatureRepository
from repositories.synccheckpoint_repository import SyncCheckpointRepository
from utils import format_iso, now_utc

logger = structlog.get_logger("store")


class FeatureStore:
    """Durable, queryable storage for features, sync checkpoint and fetch cache token"""

    def __init__(self, db_path=None, busy_timeout_ms=5000, seed_path=SEED_DB_FILE):
        self.db_path = db_path or DB_FILE
        self.busy_timeout_ms = busy_timeout_ms
        self.seed_path = seed_path
        self.engine = None
        self._session_factory = None

    @classmethod
    def from_settings(cls, settings):
        database = settings["database"]
        return cls(
            db_path=database.get("path") or DB_FILE,
            busy_timeout_ms=int(database.get("busy_timeout_ms", 5000)),
            seed_path=database.get("seed_path"),
        )

    # Lifecycle

    def open(self):
        if self.engine is not None:
            return self

        seeded = copy_seed_database_if_needed(self.db_path, self.seed_path)
        self.engine = create_db_engine(self.db_path, self.busy_timeout_ms)
        try:
            ensure_schema(self.engine)
        except SQLAlchemyError as e:
            self.engine.dispose()
            self.engine = None
            raise DatabaseException(f"Could not initialize database at {self.db_path}: {e}") from e
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

        self.check_search_index()
        logger.info("Database opened", path=self.db_path, seeded=seeded, features=self.count_features())
        return self

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self._session_factory = None
            logger.info("Database closed", path=self.db_path)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def is_open(self):
        return self.engine is not None

    @contextmanager
    def session_scope(self):
        """One unit of work: commit on success, roll back on any error"""
        if self._session_factory is None:
            raise DatabaseException("Database is not open")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseException(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Features

    def upsert_feature(self, feature):
        with self.session_scope() as session:
            FeatureRepository.upsert(session, feature)

    def replace_associations(self, feature_id, kind, tags):
        with self.session_scope() as session:
            FeatureRepository.replace_associations(session, feature_id, kind, tags)

    def replace_availabilities(self, feature_id, availabilities):
        with self.session_scope() as session:
            FeatureRepository.replace_availabilities(session, feature_id, availabilities)

    def get_associations(self, feature_id, kind):
        with self.session_scope() as session:
            return FeatureRepository.get_associations(session, feature_id, kind)

    def get_feature_by_id(self, feature_id):
        with self.session_scope() as session:
            return FeatureRepository.get_by_id(session, feature_id)

    def delete_feature(self, feature_id):
        with self.session_scope() as session:
            return FeatureRepository.delete(session, feature_id)

    def write_features(self, features):
        """
        Upsert each feature and fully replace its tag sets and availabilities,
        all inside one transaction. A failing record rolls back the whole
        batch and raises SyncWriteException.
        """
        processed = 0
        with self.session_scope() as session:
            for feature in features:
                try:
                    FeatureRepository.upsert(session, feature)
                    for kind, tags in feature.associations().items():
                        FeatureRepository.replace_associations(session, feature.id, kind, tags)
                    FeatureRepository.replace_availabilities(session, feature.id, feature.availabilities)
                except Exception as e:
                    logger.warning("Failed to sync feature", feature_id=feature.id, error=str(e))
                    raise SyncWriteException(f"Failed to sync feature {feature.id}: {e}", feature_id=feature.id) from e

                processed += 1
                if processed % 100 == 0:
                    logger.debug("Sync progress", processed=processed, total=len(features))
        return processed

    def search(self, criteria):
        with self.session_scope() as session:
            return FeatureRepository.search(session, criteria)

    def count_features(self):
        with self.session_scope() as session:
            return FeatureRepository.count(session)

    def get_last_modified_watermark(self):
        with self.session_scope() as session:
            return FeatureRepository.get_last_modified(session)

    def get_all_products(self):
        with self.session_scope() as session:
            return FeatureRepository.get_distinct(session, FeatureProduct.product)

    def get_all_platforms(self):
        with self.session_scope() as session:
            return FeatureRepository.get_distinct(session, FeaturePlatform.platform)

    def get_all_cloud_instances(self):
        with self.session_scope() as session:
            return FeatureRepository.get_distinct(session, FeatureCloudInstance.cloud_instance)

    def get_all_statuses(self):
        with self.session_scope() as session:
            return FeatureRepository.get_distinct(session, Feature.status)

    # Full-text index

    def check_search_index(self):
        """Rebuild the FTS index if it does not mirror the features table (e.g. older seed files)"""
        with self.session_scope() as session:
            features = FeatureRepository.count(session)
            indexed = FeatureRepository.count_indexed(session)
            if features != indexed:
                logger.warning("Search index out of step, rebuilding", features=features, indexed=indexed)
                FeatureRepository.rebuild_search_index(session)
                return False
        return True

    def rebuild_search_index(self):
        with self.session_scope() as session:
            FeatureRepository.rebuild_search_index(session)

    # Sync checkpoint

    def get_checkpoint(self):
        with self.session_scope() as session:
            checkpoint = SyncCheckpointRepository.get(session)
            return checkpoint.to_dict() if checkpoint else None

    def set_checkpoint(self, **fields):
        with self.session_scope() as session:
            return SyncCheckpointRepository.update(session, **fields)

    def try_acquire_sync_lock(self, lock_timeout_minutes=None):
        """
        Take the sync lock. Returns the owner token to pass to renew and
        complete calls, or None when another live sync holds the lock.
        """
        now = now_utc()
        stale_before = None
        if lock_timeout_minutes:
            stale_before = format_iso(now - timedelta(minutes=lock_timeout_minutes))
        lock_token = uuid.uuid4().hex
        with self.session_scope() as session:
            acquired = SyncCheckpointRepository.try_acquire(session, lock_token, format_iso(now), stale_before)
        return lock_token if acquired else None

    def renew_sync_lock(self, lock_token):
        """Push the lock's stale deadline forward, raising SyncLockLostException if it was taken over"""
        with self.session_scope() as session:
            renewed = SyncCheckpointRepository.renew(session, lock_token, format_iso(now_utc()))
        if not renewed:
            raise SyncLockLostException()

    def complete_sync_success(self, last_sync, watermark, record_count, duration_ms, lock_token=None):
        """Record a finished sync and release the lock. False if `lock_token` no longer holds it."""
        with self.session_scope() as session:
            return SyncCheckpointRepository.complete_success(
                session, last_sync, watermark, record_count, duration_ms, format_iso(now_utc()), lock_token
            )

    def complete_sync_failure(self, error_message, duration_ms=None, lock_token=None):
        with self.session_scope() as session:
            return SyncCheckpointRepository.complete_failure(
                session, error_message, duration_ms, format_iso(now_utc()), lock_token
            )

    # Fetch cache token

    def get_cached_token(self):
        with self.session_scope() as session:
            return ApiCacheRepository.get_etag(session)

    def set_cached_token(self, etag):
        with self.session_scope() as session:
            return ApiCacheRepository.save_etag(session, etag, format_iso(now_utc()))

    def get_cache_info(self):
        with self.session_scope() as session:
            cache = ApiCacheRepository.get(session)
            if not cache:
                return None
            return {"etag": cache.etag, "last_checked": cache.last_checked}

    # Statistics

    def get_stats(self):
        with self.session_scope() as session:
            page_count = session.execute(text("PRAGMA page_count")).scalar() or 0
            page_size = session.execute(text("PRAGMA page_size")).scalar() or 0
            return {
                "feature_count": FeatureRepository.count(session),
                "product_count": FeatureRepository.count_distinct(session, FeatureProduct.product),
                "platform_count": FeatureRepository.count_distinct(session, FeaturePlatform.platform),
                "database_size_kb": round(page_count * page_size / 1024),
            }
