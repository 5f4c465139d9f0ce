# src/mindbox_relay/scripts/migrate.py
"""Apply or roll back the queue table migrations.

Usage:
    python -m mindbox_relay.scripts.migrate [upgrade|downgrade] [REVISION]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from mindbox_relay.core.settings import settings

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def build_config(database_url: str | None = None) -> Config:
    """Return an Alembic config pointing at the bundled migrations."""
    cfg = Config(str(MIGRATIONS_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url)
    return cfg


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Migrate the Mindbox queue table")
    parser.add_argument("action", choices=("upgrade", "downgrade"), nargs="?", default="upgrade")
    parser.add_argument("revision", nargs="?", default=None)
    args = parser.parse_args(argv)

    cfg = build_config()
    if args.action == "upgrade":
        command.upgrade(cfg, args.revision or "head")
    else:
        command.downgrade(cfg, args.revision or "-1")
    return 0


if __name__ == "__main__":
    sys.exit(main())
