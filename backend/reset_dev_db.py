#!/usr/bin/env python3
"""
Reset development database - migrates a fresh schema and seeds dev users.
Run from the backend/ directory.
"""
import os
import sys
from pathlib import Path

# Ensure we're in the backend directory
backend_dir = Path(__file__).parent
os.chdir(backend_dir)
sys.path.insert(0, str(backend_dir))

# Force load .env before importing revas modules
from dotenv import load_dotenv  # noqa: E402

load_dotenv(backend_dir / ".env", override=True)

# Always target the local sqlite dev DB for this script.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///./revas-dev.db"

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402

from revas.database import SessionLocal  # noqa: E402
from revas.services.dev_seed import seed_dev_users  # noqa: E402


def main():
    db_path = backend_dir / "revas-dev.db"

    if db_path.exists():
        print(f"Removing existing database: {db_path}")
        db_path.unlink()

    print("Applying migrations...")
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    command.upgrade(alembic_cfg, "head")
    print("Schema at head")

    password = os.getenv("DEV_SEED_PASSWORD", "revas-dev-123")
    db = SessionLocal()
    try:
        for user, _ in seed_dev_users(db, password=password):
            print(f"  {user.email}")
        db.commit()
        print(f"Users created (password: {password})")
        print(f"\nDevelopment database reset complete: {db_path}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
