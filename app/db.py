from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy import inspect
from sqlalchemy import text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import table, column
import os
import shutil
import sqlite3

import structlog

from constants import CHECKPOINT_ID, EPOCH_SENTINEL, SCHEMA_VERSION, SYNC_STATUS_IDLE
from utils import now_utc, format_iso

logger = structlog.get_logger("db")

Base = declarative_base()

# FTS5 index over features(title, description); rowid is the feature id.
# Declared as a lightweight table so create_all never tries to build it.
SEARCH_INDEX = table("features_fts", column("rowid"), column("title"), column("description"))

SEARCH_INDEX_DDL = "CREATE VIRTUAL TABLE IF NOT EXISTS features_fts USING fts5(title, description)"


def copy_seed_database_if_needed(target_path, seed_path):
    """Materialize the store from the shipped seed snapshot, only when no store exists yet"""
    if os.path.exists(target_path):
        return False
    if not seed_path or not os.path.exists(seed_path):
        logger.debug("No seed database available", seed_path=seed_path)
        return False

    os.makedirs(os.path.dirname(os.path.abspath(target_path)), exist_ok=True)
    tmp_path = target_path + ".tmp"
    shutil.copyfile(seed_path, tmp_path)
    os.replace(tmp_path, target_path)
    logger.info("Initialized database from seed", seed_path=seed_path, path=target_path)
    return True


def create_db_engine(db_path, busy_timeout_ms=5000):
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": busy_timeout_ms / 1000},
    )

    # Ensure WAL mode, foreign keys and a bounded lock wait on every new connection
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        if not isinstance(dbapi_connection, sqlite3.Connection):
            return

        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA temp_store=MEMORY;")
        cursor.execute("PRAGMA cache_size=-64000;")
        cursor.close()

    return engine


def ensure_schema(engine):
    """
    Create missing tables and apply additive migrations.

    Stores written by older versions may lack the api_cache table or the
    checkpoint watermark column; both are added in place.
    """
    # Register models on Base.metadata
    import models  # noqa: F401

    inspector = inspect(engine)
    fresh = not inspector.has_table("features")
    if fresh:
        logger.info("Initializing database tables...")

    Base.metadata.create_all(engine)

    with engine.begin() as conn:
        conn.execute(text(SEARCH_INDEX_DDL))

        inspector = inspect(conn)
        checkpoint_columns = [c["name"] for c in inspector.get_columns("sync_checkpoint")]
        new_cols = [
            ("watermark", "TEXT"),
            ("last_sync_duration_ms", "INTEGER"),
            ("last_error", "TEXT"),
            ("updated_at", "TEXT"),
            ("lock_owner", "TEXT"),
        ]
        for col_name, col_type in new_cols:
            if col_name not in checkpoint_columns:
                logger.info("Adding missing column to sync_checkpoint", column=col_name)
                conn.execute(text(f"ALTER TABLE sync_checkpoint ADD COLUMN {col_name} {col_type}"))

        now = format_iso(now_utc())
        # Older stores left updated_at empty; give a stuck lock a start for the stale timeout
        conn.execute(text("UPDATE sync_checkpoint SET updated_at = :now WHERE updated_at IS NULL"), {"now": now})
        conn.execute(
            text(
                "INSERT OR IGNORE INTO sync_checkpoint (id, last_sync, sync_status, record_count, updated_at) "
                "VALUES (:id, :last_sync, :status, 0, :now)"
            ),
            {"id": CHECKPOINT_ID, "last_sync": EPOCH_SENTINEL, "status": SYNC_STATUS_IDLE, "now": now},
        )
        conn.execute(
            text("INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (:version, :now)"),
            {"version": SCHEMA_VERSION, "now": now},
        )

    if fresh:
        logger.info("Database created", schema_version=SCHEMA_VERSION)
    return fresh
