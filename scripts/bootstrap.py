"""Create the database tables and seed or refresh the admin account.

Run any time after configuring your .env, e.g.:
    python scripts/bootstrap.py --email admin@example.com --name "Shop Admin"

You will be prompted for a password if --password is not supplied.
"""

from __future__ import annotations

import argparse
from getpass import getpass

from craftstore.core.cache import CacheService
from craftstore.core.config import get_settings
from craftstore.core.errors import AppError
from craftstore.db.models import Base
from craftstore.db.session import get_engine, get_session_factory
from craftstore.dependencies import Repositories


def create_tables() -> None:
    """Create all database tables defined on the metadata (no-op for existing ones)."""
    Base.metadata.create_all(bind=get_engine(), checkfirst=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Setup database tables and seed the admin user.")
    parser.add_argument("--email", required=True, help="Email address of the admin account.")
    parser.add_argument(
        "--password",
        help="Password for the admin account (omit to receive an interactive prompt).",
    )
    parser.add_argument("--name", default="Administrator", help="Display name for the admin account.")
    parser.add_argument(
        "--skip-tables",
        action="store_true",
        help="Skip creating tables (useful when migrations manage the schema).",
    )
    parser.add_argument(
        "--clear-catalog",
        action="store_true",
        help="Remove all products and categories before finishing.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # Loading settings validates the environment early.
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    if not args.skip_tables:
        print("Creating database tables (no-op if already present)...")
        create_tables()
        print("Tables ensured.")
    else:
        print("Skipping table creation.")

    password = args.password or getpass("Admin password: ").strip()
    if len(password) < 6:
        print("Error: the admin password must be at least 6 characters.")
        return 1

    repositories = Repositories.build(get_session_factory(), CacheService(enabled=False))
    try:
        admin = repositories.users.upsert_admin(args.email, password, args.name)
        print(f"Admin user ready: {admin.email}")

        if args.clear_catalog:
            products = repositories.products.clear_all_products()
            categories = repositories.categories.clear_all()
            print(f"Catalog cleared: {products} products, {categories} categories.")
    except AppError as exc:
        print(f"Error: {exc.message}")
        return 1

    print("Bootstrap complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
