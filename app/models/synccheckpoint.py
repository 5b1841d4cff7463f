"""
Model: SyncCheckpoint
Singleton row (id = 1) acting as sync lock and observability record
"""

from sqlalchemy import CheckConstraint, Column, Integer, String, Text

from db import Base
from constants import EPOCH_SENTINEL, SYNC_STATUS_IDLE


class SyncCheckpoint(Base):
    __tablename__ = "sync_checkpoint"

    id = Column(Integer, primary_key=True, autoincrement=False)
    last_sync = Column(String, nullable=False, default=EPOCH_SENTINEL)  # Wall-clock time of last successful sync
    watermark = Column(String)  # Max feature `modified` seen by the last successful sync
    sync_status = Column(String, nullable=False, default=SYNC_STATUS_IDLE)  # 'idle' | 'syncing'
    record_count = Column(Integer, nullable=False, default=0)
    last_sync_duration_ms = Column(Integer)
    last_error = Column(Text)
    updated_at = Column(String)  # Heartbeat of the lock holder while syncing
    lock_owner = Column(String)  # Token of the sync holding the lock

    __table_args__ = (CheckConstraint("id = 1", name="ck_sync_checkpoint_singleton"),)

    def to_dict(self):
        return {
            "last_sync": self.last_sync,
            "watermark": self.watermark,
            "sync_status": self.sync_status,
            "record_count": self.record_count,
            "last_sync_duration_ms": self.last_sync_duration_ms,
            "last_error": self.last_error,
            "updated_at": self.updated_at,
            "lock_owner": self.lock_owner,
        }
