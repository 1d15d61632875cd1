"""Create or upgrade the seed target schema using Alembic migrations."""

from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from surge_seed.config import resolve_database_url


def main() -> None:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", resolve_database_url())

    command.upgrade(cfg, "head")
    print("Seed database migrated to head")


if __name__ == "__main__":
    main()
