"""
Schema evolution for the presence database.

Revisions live in ``alembic/versions`` and are applied with Alembic when the
repository initializes. The service hands Alembic its own connection, so an
upgrade commits or rolls back with the surrounding transaction.
"""
import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).parent / "alembic"


def alembic_config(database_url: Optional[str] = None) -> Config:
    """Alembic configuration pointing at the presence revisions."""
    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    if database_url:
        # escape configparser interpolation
        cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def head_revision() -> Optional[str]:
    return ScriptDirectory.from_config(alembic_config()).get_current_head()


def current_revision(connection: Connection) -> Optional[str]:
    """Revision stamped in ``alembic_version``, None for an empty database."""
    return MigrationContext.configure(connection).get_current_revision()


def run_migrations(connection: Connection) -> Optional[str]:
    """Upgrade the schema to head; returns the revision now applied."""
    before = current_revision(connection)

    cfg = alembic_config()
    cfg.attributes["connection"] = connection
    command.upgrade(cfg, "head")

    after = current_revision(connection)
    if before == after:
        logger.info("Database schema is up to date")
    else:
        logger.info(f"Upgraded database schema from {before} to {after}")
    return after
