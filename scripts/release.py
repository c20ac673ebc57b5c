"""
Release step: migrate the schema to head, then seed the first firm and owner.

Usage:
  python scripts/release.py              # migrate + seed
  python scripts/release.py --no-seed    # migrate only
  python scripts/release.py --sql        # print migration SQL, touch nothing
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.practice.config import load_settings  # noqa: E402


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def migrate(db_url: str, *, sql: bool = False) -> None:
    from alembic import command

    command.upgrade(_alembic_config(db_url), "head", sql=sql)


def run_release(*, seed: bool = True) -> None:
    settings = load_settings()
    # The settings default is a local sqlite file; production must name a real database.
    if settings.env in ("prod", "production") and settings.database_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at Postgres for a production release.")

    print(f"Migrating {settings.database_url.split('@')[-1]} (ENV={settings.env})", flush=True)
    migrate(settings.database_url)

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=settings.database_url)


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate and seed the practice database")
    parser.add_argument("--no-seed", action="store_true", help="Skip the firm/owner seed")
    parser.add_argument("--sql", action="store_true", help="Print migration SQL instead of applying it")
    args = parser.parse_args()

    if args.sql:
        migrate(load_settings().database_url, sql=True)
        return
    run_release(seed=not args.no_seed)


if __name__ == "__main__":
    main()
