import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Set
from sqlalchemy import inspect, insert, select, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from .database import engine, Base
from .models import SchemaMigration
from .errors import MigrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """A forward-only schema step with a post-condition check."""
    version: int
    description: str
    upgrade: Callable[[AsyncConnection], Awaitable[None]]
    verify: Callable[[AsyncConnection], Awaitable[bool]]


async def get_columns(conn: AsyncConnection, table: str) -> Set[str]:
    """Column names of table, or an empty set when the table is missing."""
    def _inspect(sync_conn):
        inspector = inspect(sync_conn)
        if not inspector.has_table(table):
            return set()
        return {column["name"] for column in inspector.get_columns(table)}
    return await conn.run_sync(_inspect)


async def _add_column_if_missing(conn: AsyncConnection, table: str, column: str, ddl: str):
    if column in await get_columns(conn, table):
        return
    await conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
    logger.info(f"Added column {column} to {table}")


async def _drop_column_if_present(conn: AsyncConnection, table: str, column: str):
    if column not in await get_columns(conn, table):
        return
    await conn.execute(text(f"ALTER TABLE {table} DROP COLUMN {column}"))
    logger.info(f"Dropped column {column} from {table}")


def _column_present(table: str, column: str):
    async def check(conn: AsyncConnection) -> bool:
        return column in await get_columns(conn, table)
    return check


def _column_absent(table: str, column: str):
    async def check(conn: AsyncConnection) -> bool:
        return column not in await get_columns(conn, table)
    return check


async def _add_comment_attachments(conn: AsyncConnection):
    await _add_column_if_missing(conn, "markup_comments", "attachments", "JSON NOT NULL DEFAULT '[]'")


async def _add_comment_has_attachments(conn: AsyncConnection):
    await _add_column_if_missing(conn, "markup_comments", "has_attachments", "BOOLEAN NOT NULL DEFAULT FALSE")


async def _add_thread_has_attachments(conn: AsyncConnection):
    await _add_column_if_missing(conn, "markup_threads", "has_attachments", "BOOLEAN NOT NULL DEFAULT FALSE")
    # Backfill threads whose comments are already flagged
    await conn.execute(text(
        """
        UPDATE markup_threads SET has_attachments = TRUE
        WHERE EXISTS (
            SELECT 1 FROM markup_comments c
            WHERE c.thread_id = markup_threads.id AND c.has_attachments = TRUE
        )
        """
    ))


async def _drop_project_raw_payload(conn: AsyncConnection):
    await _drop_column_if_present(conn, "markup_projects", "raw_payload")


async def _drop_thread_local_image_path(conn: AsyncConnection):
    # image_path is the single canonical image location
    await _drop_column_if_present(conn, "markup_threads", "local_image_path")


async def _add_project_has_attachments(conn: AsyncConnection):
    await _add_column_if_missing(conn, "markup_projects", "has_attachments", "BOOLEAN NOT NULL DEFAULT FALSE")
    await conn.execute(text(
        """
        UPDATE markup_projects SET has_attachments = TRUE
        WHERE EXISTS (
            SELECT 1 FROM markup_threads t
            WHERE t.project_id = markup_projects.id AND t.has_attachments = TRUE
        )
        """
    ))


# Applied in order; never reorder or renumber released entries.
MIGRATIONS: List[Migration] = [
    Migration(1, "Add attachments list to markup_comments",
              _add_comment_attachments, _column_present("markup_comments", "attachments")),
    Migration(2, "Add has_attachments flag to markup_comments",
              _add_comment_has_attachments, _column_present("markup_comments", "has_attachments")),
    Migration(3, "Add has_attachments flag to markup_threads",
              _add_thread_has_attachments, _column_present("markup_threads", "has_attachments")),
    Migration(4, "Remove raw_payload from markup_projects",
              _drop_project_raw_payload, _column_absent("markup_projects", "raw_payload")),
    Migration(5, "Remove duplicate local_image_path from markup_threads",
              _drop_thread_local_image_path, _column_absent("markup_threads", "local_image_path")),
    Migration(6, "Add has_attachments flag to markup_projects",
              _add_project_has_attachments, _column_present("markup_projects", "has_attachments")),
]


async def get_applied_versions(bind: Optional[AsyncEngine] = None) -> List[int]:
    target = bind or engine
    async with target.connect() as conn:
        result = await conn.execute(select(SchemaMigration.version).order_by(SchemaMigration.version))
        return [row[0] for row in result.fetchall()]


async def _is_recorded(conn: AsyncConnection, version: int) -> bool:
    result = await conn.execute(select(SchemaMigration.version).where(SchemaMigration.version == version))
    return result.first() is not None


async def apply_migration(conn: AsyncConnection, migration: Migration) -> bool:
    """
    Apply one migration on an open transaction.

    Returns True when the upgrade ran, False when it was already applied and
    its post-condition still holds.
    """
    recorded = await _is_recorded(conn, migration.version)
    if recorded and await migration.verify(conn):
        return False

    logger.info(f"Applying migration {migration.version:04d}: {migration.description}")
    await migration.upgrade(conn)
    if not await migration.verify(conn):
        raise MigrationError(migration.version, f"post-condition failed for '{migration.description}'")
    if not recorded:
        await conn.execute(
            insert(SchemaMigration).values(version=migration.version, description=migration.description)
        )
    return True


async def run_migrations(bind: Optional[AsyncEngine] = None, migrations: Optional[List[Migration]] = None) -> List[int]:
    """
    Bring the schema to the current version.
    This function should be called during application startup.

    Args:
        bind: Engine to migrate (defaults to the application engine)
        migrations: Migration list (defaults to MIGRATIONS)

    Returns:
        Versions whose upgrade ran during this call
    """
    target = bind or engine
    steps = sorted(migrations if migrations is not None else MIGRATIONS, key=lambda m: m.version)
    logger.info("Running database migrations...")

    # Create any table that does not exist yet, including schema_migrations
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    applied = []
    for migration in steps:
        # One transaction per step so a failure leaves earlier steps committed
        async with target.begin() as conn:
            if await apply_migration(conn, migration):
                applied.append(migration.version)

    logger.info(f"Database migrations completed successfully ({len(applied)} applied).")
    return applied


if __name__ == "__main__":
    # Run migrations when script is executed directly
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_migrations())
