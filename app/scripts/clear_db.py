
import argparse
import os
import sys

# Add the app directory to the path so we can import modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text

from db import Base, create_db_engine, ensure_schema
from settings import load_settings


def clear_db(db_path, busy_timeout_ms=5000):
    engine = create_db_engine(db_path, busy_timeout_ms)
    try:
        print("Dropping all tables...")
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE IF EXISTS features_fts"))
        import models  # noqa: F401
        Base.metadata.drop_all(engine)
        print("Recreating all tables...")
        ensure_schema(engine)
        print("Database cleared successfully!")
    finally:
        engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Drop and recreate the roadmap database schema")
    parser.add_argument("--db", help="Database file (defaults to the configured path)")
    args = parser.parse_args()

    database = load_settings()["database"]
    clear_db(args.db or database["path"], database["busy_timeout_ms"])
