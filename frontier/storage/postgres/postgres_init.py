from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from frontier.errors import StoreUnavailableError
from frontier.partition import PARTITION_COLUMNS
from frontier.storage.models.work_item_model import PARTITION_INDEX_NAME, WORK_ITEMS_TABLE, Base
from frontier.utils.db_utils import to_sqlalchemy_dsn

STALE_INDEX_QUERY = (
    "SELECT indexname FROM pg_indexes "
    f"WHERE tablename = '{WORK_ITEMS_TABLE}' "
    f"AND indexname LIKE '{WORK_ITEMS_TABLE}\\_identity\\_%\\_uq' "
    f"AND indexname <> '{PARTITION_INDEX_NAME}'"
)


def partition_migration_statements() -> list[str]:
    """DDL that brings an existing ``work_items`` table up to the current partition layout.

    New dimensions are added with an empty-string default, which keeps every
    existing row in its current partition.
    """
    statements = [
        f"ALTER TABLE {WORK_ITEMS_TABLE} ADD COLUMN IF NOT EXISTS {column} "
        f"VARCHAR(255) NOT NULL DEFAULT ''"
        for column in PARTITION_COLUMNS
    ]
    statements.append(
        f"CREATE UNIQUE INDEX IF NOT EXISTS {PARTITION_INDEX_NAME} "
        f"ON {WORK_ITEMS_TABLE} (identity, {', '.join(PARTITION_COLUMNS)})"
    )
    return statements


async def _migrate_partition_layout(conn) -> None:
    for statement in partition_migration_statements():
        await conn.execute(text(statement))

    # unique indexes from a narrower layout would reject rows the current one allows
    result = await conn.execute(text(STALE_INDEX_QUERY))
    for index_name in result.scalars().all():
        logger.warning(f"Dropping outdated frontier index {index_name}")
        await conn.execute(text(f'DROP INDEX IF EXISTS "{index_name}"'))


async def init_postgres(database_url: str, engine_factory=create_async_engine) -> None:
    """
    Create or verify the frontier schema.

    Failing here is fatal: nothing may claim or ingest against a store whose
    schema could not be verified.
    """
    logger.info("Initializing PostgreSQL frontier schema...")

    engine = engine_factory(to_sqlalchemy_dsn(database_url))
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await _migrate_partition_layout(conn)
    except (SQLAlchemyError, OSError) as exc:
        raise StoreUnavailableError(f"Could not initialize frontier schema: {exc}") from exc
    finally:
        await engine.dispose()

    logger.info("PostgreSQL frontier tables created or verified.")
