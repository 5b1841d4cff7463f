"""
Sync coordinator: mirrors the remote roadmap feed into the local store

A sync run is serialized across processes by the checkpoint lock, skips all
work when the feed answers 304, only writes features modified after the
store's watermark, and releases the lock only while it still owns it.
"""
import time

import structlog

from constants import EPOCH_SENTINEL, SYNC_STATUS_SYNCING
from exceptions import SyncLockLostException
from metrics import ACTIVE_SYNCS, record_sync_result
from schemas import SyncResult
from utils import format_iso, hours_since, is_newer, latest_timestamp, now_utc

logger = structlog.get_logger("sync")

SYNC_IN_PROGRESS = "Sync already in progress"


class SyncService:
    def __init__(self, store, client, clock=now_utc, lock_timeout_minutes=30):
        self.store = store
        self.client = client
        self.clock = clock
        self.lock_timeout_minutes = lock_timeout_minutes

    @classmethod
    def from_settings(cls, store, client, settings, clock=now_utc):
        return cls(store, client, clock=clock, lock_timeout_minutes=settings["sync"]["lock_timeout_minutes"])

    def perform_sync(self, force: bool = False) -> SyncResult:
        """
        Run one sync. Never raises: failures are recorded on the checkpoint
        and returned as SyncResult(success=False, error=...).
        """
        start_time = time.monotonic()
        logger.info("Starting roadmap sync", force=force)

        try:
            lock_token = self.store.try_acquire_sync_lock(self.lock_timeout_minutes)
        except Exception as e:
            logger.error("Could not acquire sync lock", error=str(e))
            result = SyncResult(success=False, duration_ms=self._elapsed_ms(start_time), error=str(e))
            record_sync_result(result)
            return result

        if lock_token is None:
            logger.warning("Sync already in progress, skipping")
            result = SyncResult(
                success=False,
                duration_ms=self._elapsed_ms(start_time),
                error=SYNC_IN_PROGRESS,
                skipped=True,
            )
            record_sync_result(result)
            return result

        with ACTIVE_SYNCS.track_inprogress():
            try:
                result = self._run_locked(force, start_time, lock_token)
            except Exception as e:
                duration_ms = self._elapsed_ms(start_time)
                logger.error("Sync failed", error=str(e), duration_ms=duration_ms, exc_info=True)
                try:
                    if not self.store.complete_sync_failure(str(e), duration_ms, lock_token=lock_token):
                        logger.warning("Sync lock was taken over, leaving checkpoint to its new holder")
                except Exception as checkpoint_error:
                    logger.error("Could not record sync failure", error=str(checkpoint_error))
                result = SyncResult(success=False, duration_ms=duration_ms, error=str(e))

        record_sync_result(result)
        return result

    def _run_locked(self, force, start_time, lock_token):
        checkpoint = self.store.get_checkpoint() or {}
        record_count_before = self.store.count_features()
        prior_watermark = checkpoint.get("watermark")

        # Restore the persisted ETag into the client
        stored_etag = self.store.get_cached_token()
        if stored_etag and not force:
            self.client.set_cached_etag(stored_etag)

        logger.info(
            "Sync checkpoint",
            last_sync=checkpoint.get("last_sync"),
            watermark=prior_watermark,
            record_count_before=record_count_before,
            stored_etag="exists" if stored_etag else "none",
        )

        fetch_result = self.client.fetch_all(use_cache=not force)

        if not fetch_result.modified:
            self.store.set_cached_token(fetch_result.etag)
            duration_ms = self._elapsed_ms(start_time)
            self._complete(format_iso(self.clock()), prior_watermark, record_count_before, duration_ms, lock_token)
            logger.info("Sync completed, no changes (304 Not Modified)", duration_ms=duration_ms)
            return SyncResult(success=True, duration_ms=duration_ms, not_modified=True)

        features = fetch_result.features
        store_watermark = self.store.get_last_modified_watermark()
        if store_watermark:
            changed = [f for f in features if is_newer(f.modified, store_watermark)]
        else:
            changed = features

        logger.info(
            "Differential sync",
            total_features=len(features),
            changed_features=len(changed),
            store_watermark=store_watermark,
        )

        processed = 0
        if changed:
            self.store.renew_sync_lock(lock_token)
            processed = self.store.write_features(changed)
        record_count_after = self.store.count_features()

        if fetch_result.etag:
            self.store.set_cached_token(fetch_result.etag)

        new_watermark = latest_timestamp((f.modified for f in features), default=prior_watermark)
        duration_ms = self._elapsed_ms(start_time)
        self._complete(format_iso(self.clock()), new_watermark, record_count_after, duration_ms, lock_token)

        inserted = max(0, record_count_after - record_count_before)
        updated = processed - inserted

        logger.info(
            "Sync completed successfully",
            records_processed=processed,
            records_inserted=inserted,
            records_updated=updated,
            total_records=record_count_after,
            duration_ms=duration_ms,
        )
        return SyncResult(
            success=True,
            records_processed=processed,
            records_inserted=inserted,
            records_updated=updated,
            duration_ms=duration_ms,
        )

    def is_sync_needed(self, staleness_hours) -> bool:
        """True when the store never synced or its last sync is at least `staleness_hours` old"""
        checkpoint = self.store.get_checkpoint()
        if not checkpoint or checkpoint["last_sync"] in (None, EPOCH_SENTINEL):
            return True

        elapsed = hours_since(checkpoint["last_sync"], self.clock())
        if elapsed is None:
            return True
        return elapsed >= staleness_hours

    def get_sync_status(self):
        checkpoint = self.store.get_checkpoint()
        if not checkpoint:
            return None

        elapsed = hours_since(checkpoint["last_sync"], self.clock())
        return {
            "last_sync": checkpoint["last_sync"],
            "watermark": checkpoint["watermark"],
            "sync_status": checkpoint["sync_status"],
            "is_syncing": checkpoint["sync_status"] == SYNC_STATUS_SYNCING,
            "record_count": checkpoint["record_count"],
            "last_sync_duration_ms": checkpoint["last_sync_duration_ms"],
            "last_error": checkpoint["last_error"],
            "hours_since_sync": round(elapsed, 1) if elapsed is not None else None,
        }

    def _complete(self, last_sync, watermark, record_count, duration_ms, lock_token):
        if not self.store.complete_sync_success(last_sync, watermark, record_count, duration_ms, lock_token=lock_token):
            raise SyncLockLostException()

    @staticmethod
    def _elapsed_ms(start_time):
        return int((time.monotonic() - start_time) * 1000)
