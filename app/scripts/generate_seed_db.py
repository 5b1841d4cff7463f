#!/usr/bin/env python3
"""
Build the seed database shipped with the package

Fetches the whole roadmap feed and writes it through the regular store code
into resources/seed.db, with the checkpoint filled in, so a fresh install can
serve queries before its first sync.

Usage:
    python app/scripts/generate_seed_db.py [--output resources/seed.db]
"""

import argparse
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import SEED_DB_FILE
from roadmap_client import RoadmapClient
from settings import load_settings
from store import FeatureStore
from utils import configure_logging, format_iso, latest_timestamp, now_utc


def generate_seed_db(client, output_path):
    start_time = time.monotonic()

    result = client.fetch_all(use_cache=False)
    print(f"  Total features fetched: {len(result.features)}")

    # Build next to the target and move into place once complete
    tmp_path = output_path + ".tmp"
    for path in (tmp_path, tmp_path + "-wal", tmp_path + "-shm"):
        if os.path.exists(path):
            os.remove(path)

    store = FeatureStore(db_path=tmp_path, seed_path=None)
    with store:
        processed = store.write_features(result.features)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        store.complete_sync_success(
            format_iso(now_utc()),
            latest_timestamp(f.modified for f in result.features),
            store.count_features(),
            duration_ms,
        )
        with store.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA wal_checkpoint(TRUNCATE)")
        stats = store.get_stats()

    os.replace(tmp_path, output_path)
    for path in (tmp_path + "-wal", tmp_path + "-shm"):
        if os.path.exists(path):
            os.remove(path)

    return processed, stats


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate the seed roadmap database")
    parser.add_argument("--output", default=SEED_DB_FILE, help="Seed database path")
    args = parser.parse_args()

    configure_logging()
    client = RoadmapClient.from_settings(load_settings())
    os.makedirs(os.path.dirname(os.path.abspath(args.output)), exist_ok=True)

    print("Fetching M365 Roadmap data from API...")
    processed, stats = generate_seed_db(client, args.output)
    print(f"  Features written: {processed}")
    print(f"  Products: {stats['product_count']}, platforms: {stats['platform_count']}")
    print(f"Seed database created: {args.output} ({stats['database_size_kb']} KB)")
