"""
scripts/setup_db.py — Initialize the database schema.

Run once before starting the application for the first time:
    python scripts/setup_db.py [--seed]

This creates all tables defined in lead_engine/db/models.py directly via
SQLAlchemy metadata. --seed adds a small demo roster of Kingston-area reps
so the assignment endpoints have something to work with.
"""

import argparse
import logging
import os
import sys

# Ensure the project root is on the path so we can import `lead_engine`
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import inspect, text

from lead_engine.config import settings
from lead_engine.db.models import Base
from lead_engine.db.repository import upsert_rep
from lead_engine.db.session import engine, get_session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEMO_REPS = [
    {"rep_id": "rep-001", "name": "Andre Campbell", "territories": ["Kingston", "St. Andrew"],
     "max_capacity": 20, "conversion_rate": 0.32, "avg_days_to_close": 21},
    {"rep_id": "rep-002", "name": "Simone Reid", "territories": ["Kingston", "St. Catherine"],
     "max_capacity": 15, "conversion_rate": 0.41, "avg_days_to_close": 18},
    {"rep_id": "rep-003", "name": "Marcus Brown", "territories": ["St. James", "Hanover", "Westmoreland"],
     "max_capacity": 20, "conversion_rate": 0.27, "avg_days_to_close": 26},
]


def setup_db(seed: bool = False) -> None:
    print("🔌 Connecting to database...")
    print(f"   URL: {settings.database_url[:40]}...")

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    print("✅ Connection successful.")

    print("\n📦 Creating tables if they don't exist...")
    Base.metadata.create_all(bind=engine)

    # Report which tables were found
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print(f"✅ Tables in database: {tables}")

    if seed:
        print("\n🌱 Seeding demo sales reps...")
        with get_session() as db:
            for rep in DEMO_REPS:
                upsert_rep(db, **rep)
        print(f"✅ Seeded {len(DEMO_REPS)} reps.")

    print("\n🎉 Database setup complete!")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the lead-engine database schema.")
    parser.add_argument("--seed", action="store_true", help="Insert a demo sales-rep roster")
    args = parser.parse_args()
    setup_db(seed=args.seed)


if __name__ == "__main__":
    main()
