import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.schema import CreateIndex, CreateTable

from frontier.errors import StoreUnavailableError
from frontier.storage.models import PARTITION_INDEX_NAME, Base, WorkItem
from frontier.storage.postgres.postgres_init import (
    init_postgres,
    partition_migration_statements,
)


class FakeResult:
    def __init__(self, names):
        self.names = names

    def scalars(self):
        return self

    def all(self):
        return list(self.names)


class FakeConnection:
    def __init__(self, stale_indexes=(), fail_on=None):
        self.stale_indexes = stale_indexes
        self.fail_on = fail_on
        self.synced = []
        self.statements = []

    async def run_sync(self, fn):
        self.synced.append(fn)

    async def execute(self, clause):
        statement = str(clause)
        if self.fail_on and self.fail_on in statement:
            raise OperationalError(statement, {}, Exception("connection refused"))
        self.statements.append(statement)
        if "pg_indexes" in statement:
            return FakeResult(self.stale_indexes)
        return FakeResult([])


class BeginContext:
    def __init__(self, connection):
        self.connection = connection

    async def __aenter__(self):
        return self.connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    def __init__(self, connection):
        self.connection = connection
        self.disposed = False

    def begin(self):
        return BeginContext(self.connection)

    async def dispose(self):
        self.disposed = True


def engine_factory_for(engine, seen):
    def factory(url):
        seen.append(url)
        return engine

    return factory


def test_work_items_table_ddl():
    ddl = str(CreateTable(WorkItem.__table__).compile(dialect=postgresql.dialect()))

    assert "CREATE TABLE work_items" in ddl
    assert "id BIGSERIAL" in ddl
    assert "identity VARCHAR(32) NOT NULL" in ddl
    assert "crawl_id VARCHAR(255) DEFAULT '' NOT NULL" in ddl
    assert "tenant VARCHAR(255) DEFAULT '' NOT NULL" in ddl
    assert "result_code INTEGER" in ddl


def test_identity_is_unique_per_partition():
    index = next(i for i in WorkItem.__table__.indexes if i.name == PARTITION_INDEX_NAME)
    ddl = str(CreateIndex(index).compile(dialect=postgresql.dialect()))

    assert index.unique
    assert ddl == f"CREATE UNIQUE INDEX {PARTITION_INDEX_NAME} ON work_items (identity, crawl_id, tenant)"


def test_migration_adds_every_dimension_before_the_index():
    statements = partition_migration_statements()

    assert statements[:2] == [
        "ALTER TABLE work_items ADD COLUMN IF NOT EXISTS crawl_id VARCHAR(255) NOT NULL DEFAULT ''",
        "ALTER TABLE work_items ADD COLUMN IF NOT EXISTS tenant VARCHAR(255) NOT NULL DEFAULT ''",
    ]
    assert statements[-1].startswith(f"CREATE UNIQUE INDEX IF NOT EXISTS {PARTITION_INDEX_NAME}")


@pytest.mark.asyncio
async def test_init_creates_schema_and_drops_outdated_indexes():
    conn = FakeConnection(stale_indexes=["work_items_identity_crawl_id_uq"])
    engine = FakeEngine(conn)
    seen = []

    await init_postgres("postgresql://u:p@db:5432/frontier", engine_factory_for(engine, seen))

    assert seen == ["postgresql+asyncpg://u:p@db:5432/frontier"]
    assert conn.synced == [Base.metadata.create_all]
    assert conn.statements[-1] == 'DROP INDEX IF EXISTS "work_items_identity_crawl_id_uq"'
    assert engine.disposed is True


@pytest.mark.asyncio
async def test_init_failure_is_fatal_and_releases_engine():
    engine = FakeEngine(FakeConnection(fail_on="ALTER TABLE"))

    with pytest.raises(StoreUnavailableError):
        await init_postgres("postgresql://u:p@db/frontier", engine_factory_for(engine, []))

    assert engine.disposed is True
