from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure "revas" is importable when running as a script (python scripts/seed_users.py)
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from revas.database import SessionLocal  # noqa: E402
from revas.services.dev_seed import DEV_DOMAIN, seed_dev_users  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed account managers and clients for dev.")
    parser.add_argument("--password", default="revas-dev-123", help="Password for all seeded users")
    parser.add_argument("--domain", default=DEV_DOMAIN, help=f"Email domain (default: {DEV_DOMAIN})")
    args = parser.parse_args()

    pwd = str(args.password)
    domain = str(args.domain).strip().lstrip("@") or DEV_DOMAIN

    db = SessionLocal()
    try:
        results = seed_dev_users(db, password=pwd, domain=domain, reset_password=True)
        db.commit()

        print("Seed users OK:")
        for user, created in results:
            kind = (
                f"account manager ({user.account_manager_role.value})"
                if user.account_manager_role
                else f"client ({user.client_type.value})"
            )
            print(f"- {user.email} {kind} [{'created' if created else 'updated'}]")
        print("Password:", pwd)
    finally:
        db.close()


if __name__ == "__main__":
    main()
