#!/usr/bin/env python3
"""
Move the sync checkpoint back in time so the next staleness check syncs.

Usage:
    python app/scripts/reset_checkpoint.py [--hours 2] [--unlock] [--db PATH]
"""

import argparse
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import SYNC_STATUS_IDLE
from settings import load_settings
from store import FeatureStore
from utils import format_iso, now_utc


def reset_checkpoint(store, hours=2, unlock=False):
    fields = {"last_sync": format_iso(now_utc() - timedelta(hours=hours))}
    if unlock:
        fields.update(sync_status=SYNC_STATUS_IDLE, lock_owner=None)
    store.set_checkpoint(**fields)
    return store.get_checkpoint()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Move the sync checkpoint back to force the next sync")
    parser.add_argument("--hours", type=float, default=2, help="How many hours ago the last sync should appear")
    parser.add_argument("--unlock", action="store_true", help="Also clear a stuck 'syncing' status")
    parser.add_argument("--db", help="Database file (defaults to the configured path)")
    args = parser.parse_args()

    settings = load_settings()
    store = FeatureStore.from_settings(settings)
    if args.db:
        store.db_path = args.db

    with store:
        checkpoint = reset_checkpoint(store, hours=args.hours, unlock=args.unlock)

    print(f"Checkpoint updated to {args.hours:g} hours ago")
    print(f"New last_sync: {checkpoint['last_sync']}")
    print(f"Sync status: {checkpoint['sync_status']}")
