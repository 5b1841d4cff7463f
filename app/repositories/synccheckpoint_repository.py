"""
Repository for the SyncCheckpoint singleton

The sync lock is the checkpoint row in 'syncing' state, tagged with the
holder's `lock_owner` token. Renewals and completions carrying a token only
apply while that token still holds the lock.
"""

from sqlalchemy import and_, or_, update

from constants import CHECKPOINT_ID, SYNC_STATUS_IDLE, SYNC_STATUS_SYNCING
from models.synccheckpoint import SyncCheckpoint


def _held_by(lock_token):
    if lock_token is None:
        return SyncCheckpoint.id == CHECKPOINT_ID
    return and_(SyncCheckpoint.sync_status == SYNC_STATUS_SYNCING, SyncCheckpoint.lock_owner == lock_token)


class SyncCheckpointRepository:
    """Repository for SyncCheckpoint database operations"""

    @staticmethod
    def get(session):
        return session.get(SyncCheckpoint, CHECKPOINT_ID)

    @staticmethod
    def try_acquire(session, lock_token, now, stale_before=None):
        """
        Atomically flip the checkpoint to 'syncing' under `lock_token`.

        Succeeds only if no other sync holds it, or if the holder stopped
        renewing it before `stale_before`. Returns True when acquired.
        """
        free = SyncCheckpoint.sync_status != SYNC_STATUS_SYNCING
        if stale_before is not None:
            free = or_(free, SyncCheckpoint.updated_at < stale_before)

        result = session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.id == CHECKPOINT_ID, free)
            .values(sync_status=SYNC_STATUS_SYNCING, lock_owner=lock_token, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    def renew(session, lock_token, now):
        result = session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.id == CHECKPOINT_ID, _held_by(lock_token))
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    def complete_success(session, last_sync, watermark, record_count, duration_ms, now, lock_token=None):
        result = session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.id == CHECKPOINT_ID, _held_by(lock_token))
            .values(
                last_sync=last_sync,
                watermark=watermark,
                sync_status=SYNC_STATUS_IDLE,
                record_count=record_count,
                last_sync_duration_ms=duration_ms,
                last_error=None,
                lock_owner=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    def complete_failure(session, error_message, duration_ms, now, lock_token=None):
        result = session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.id == CHECKPOINT_ID, _held_by(lock_token))
            .values(
                sync_status=SYNC_STATUS_IDLE,
                last_error=error_message,
                last_sync_duration_ms=duration_ms,
                lock_owner=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    def update(session, **kwargs):
        """Update arbitrary checkpoint columns"""
        values = {key: value for key, value in kwargs.items() if hasattr(SyncCheckpoint, key) and key != "id"}
        if not values:
            return False
        result = session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.id == CHECKPOINT_ID)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
