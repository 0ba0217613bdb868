#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from food_ordering.core.database import SessionLocal, engine  # noqa: E402
from food_ordering.services.admin_bootstrap import ensure_users_table, upsert_admin_user  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an admin user or promote an existing one.")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", help="Password (required when the user does not exist yet)")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        ensure_users_table(engine)
    except RuntimeError as exc:
        print(str(exc))
        return 1

    db = SessionLocal()
    try:
        admin, created = upsert_admin_user(
            db,
            email=args.email,
            first_name=args.first_name,
            last_name=args.last_name,
            password=args.password,
        )
    except ValueError as exc:
        print(str(exc))
        return 1
    finally:
        db.close()

    action = "created" if created else "promoted"
    print(f"Admin {action}: id={admin.id} email={admin.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
