"""Run the project's Alembic migrations against a SQLite file."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def upgrade_head(db_path: Path) -> None:
    """Create the database directory if needed and migrate it to head."""

    db_path.parent.mkdir(parents=True, exist_ok=True)
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    logger.debug("Migrating %s to head", db_path)
    command.upgrade(config, "head")
