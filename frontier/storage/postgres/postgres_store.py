from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg
from loguru import logger

from frontier.errors import StoreError, StoreUnavailableError
from frontier.partition import PARTITION_COLUMNS, Partition, partition_clause
from frontier.records import FrontierTask, ItemState, UrlDescriptor, WorkItemRecord
from frontier.storage.base import FrontierStore, IngestSession
from frontier.storage.models.work_item_model import WORK_ITEMS_TABLE
from frontier.utils.db_utils import to_postgres_dsn


STORE_EXCEPTIONS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

PAYLOAD_COLUMNS = (
    "url",
    "link_raw",
    "link_text",
    "link_code",
    "referring_url",
    "link_depth",
    "is_redirect",
)

_INSERT_COLUMNS = ("identity", "priority_level", "state") + PAYLOAD_COLUMNS + PARTITION_COLUMNS

INSERT_SQL = (
    f"INSERT INTO {WORK_ITEMS_TABLE} ({', '.join(_INSERT_COLUMNS)}, created_at) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(_INSERT_COLUMNS) + 1))}, NOW()) "
    f"ON CONFLICT (identity, {', '.join(PARTITION_COLUMNS)}) DO NOTHING "
    "RETURNING id"
)


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 3``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


def _row_to_task(row) -> FrontierTask:
    return FrontierTask(
        identity=row["identity"],
        priority=row["priority_level"],
        link=UrlDescriptor(
            url=row["url"],
            link_raw=row["link_raw"],
            link_text=row["link_text"],
            link_code=row["link_code"],
            referring_url=row["referring_url"],
            link_depth=row["link_depth"],
            is_redirect=row["is_redirect"],
        ),
    )


class PostgresIngestSession(IngestSession):
    """Batch insert session holding one pooled connection.

    Each insert runs in a savepoint so a failed statement only rolls back
    itself, not the commit window it belongs to.
    """

    def __init__(self, conn, partition: Partition) -> None:
        self.conn = conn
        self.partition = partition
        self.inserted = 0
        self._insert_stmt = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            async with self.conn.transaction():
                yield
        except STORE_EXCEPTIONS as exc:
            raise StoreError(f"Ingest transaction failed: {exc}") from exc

    async def reset_insert_plan(self) -> None:
        self._insert_stmt = None

    async def insert(self, record: WorkItemRecord) -> bool:
        link = record.link
        args = (
            record.identity,
            record.priority_level,
            ItemState.PENDING.value,
            link.url,
            link.link_raw,
            link.link_text,
            link.link_code,
            link.referring_url,
            link.link_depth,
            link.is_redirect,
            *self.partition.values(),
        )

        try:
            async with self.conn.transaction():
                if self._insert_stmt is None:
                    self._insert_stmt = await self.conn.prepare(INSERT_SQL)
                row_id = await self._insert_stmt.fetchval(*args)
        except STORE_EXCEPTIONS as exc:
            raise StoreError(f"Insert of {link.url} failed: {exc}") from exc

        if row_id is None:
            return False
        self.inserted += 1
        return True


class PostgresFrontierStore(FrontierStore):
    """Frontier table in PostgreSQL, shared by any number of crawler processes."""

    def __init__(
        self,
        database_url: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        connect_retries: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        self.database_url = to_postgres_dsn(database_url)
        self.min_size = min_size
        self.max_size = max_size
        self.connect_retries = max(1, connect_retries)
        self.retry_delay = retry_delay
        self.pool: Optional[asyncpg.Pool] = None
        self._analyzed = False

    # -------------------------------------------------------
    # Connection
    # -------------------------------------------------------

    async def connect(self) -> None:
        if self.pool is not None:
            return

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.connect_retries + 1):
            try:
                self.pool = await asyncpg.create_pool(
                    self.database_url, min_size=self.min_size, max_size=self.max_size
                )
                logger.info("Connected to frontier database")
                return
            except STORE_EXCEPTIONS as exc:
                last_error = exc
                logger.warning(f"[Frontier] Connection attempt {attempt} failed: {exc}")
                if attempt < self.connect_retries:
                    await asyncio.sleep(self.retry_delay)

        raise StoreUnavailableError(
            f"Could not connect to frontier database after {self.connect_retries} attempts"
        ) from last_error

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Frontier database connection closed")

    def _require_pool(self):
        if self.pool is None:
            raise StoreError("Frontier store is not connected")
        return self.pool

    # -------------------------------------------------------
    # Ingest
    # -------------------------------------------------------

    @asynccontextmanager
    async def ingest_session(self, partition: Partition) -> AsyncIterator[PostgresIngestSession]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                session = PostgresIngestSession(conn, partition)
                yield session
        except STORE_EXCEPTIONS as exc:
            raise StoreError(f"Ingest session failed: {exc}") from exc

        if session.inserted and not self._analyzed:
            await self._analyze()

    async def _analyze(self) -> None:
        # planner statistics once the table has real content
        try:
            async with self._require_pool().acquire() as conn:
                await conn.execute(f"ANALYZE {WORK_ITEMS_TABLE}")
            self._analyzed = True
        except STORE_EXCEPTIONS as exc:
            logger.warning(f"ANALYZE {WORK_ITEMS_TABLE} failed: {exc}")

    # -------------------------------------------------------
    # Claim
    # -------------------------------------------------------

    async def claim_next(self, partition: Partition) -> Optional[FrontierTask]:
        clause, partition_args = partition_clause(partition, start=3)
        returning = ", ".join(f"w.{column}" for column in ("identity", "priority_level") + PAYLOAD_COLUMNS)

        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        WITH next_item AS (
                            SELECT id
                            FROM {WORK_ITEMS_TABLE}
                            WHERE state = $1 AND {clause}
                            ORDER BY priority_level DESC, id ASC
                            FOR UPDATE SKIP LOCKED
                            LIMIT 1
                        )
                        UPDATE {WORK_ITEMS_TABLE} AS w
                        SET state = $2, claimed_at = NOW()
                        FROM next_item
                        WHERE w.id = next_item.id
                        RETURNING {returning};
                        """,
                        ItemState.PENDING.value,
                        ItemState.CLAIMED.value,
                        *partition_args,
                    )
        except STORE_EXCEPTIONS as exc:
            raise StoreError(f"Claim failed: {exc}") from exc

        if not row:
            return None
        return _row_to_task(row)

    # -------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------

    async def mark_done(self, partition: Partition, identity: str, result_code: Optional[int]) -> bool:
        clause, partition_args = partition_clause(partition, start=4)
        status = await self._execute(
            f"""
            UPDATE {WORK_ITEMS_TABLE}
            SET state = $1, result_code = $2, completed_at = NOW()
            WHERE identity = $3 AND state <> $1 AND {clause}
            """,
            ItemState.DONE.value,
            result_code,
            identity,
            *partition_args,
        )
        return _affected_rows(status) > 0

    async def reset_claimed(self, partition: Partition) -> int:
        clause, partition_args = partition_clause(partition, start=3)
        status = await self._execute(
            f"""
            UPDATE {WORK_ITEMS_TABLE}
            SET state = $1, claimed_at = NULL
            WHERE state = $2 AND {clause}
            """,
            ItemState.PENDING.value,
            ItemState.CLAIMED.value,
            *partition_args,
        )
        return _affected_rows(status)

    async def has_pending(self, partition: Partition) -> bool:
        clause, partition_args = partition_clause(partition, start=3)
        return bool(
            await self._fetchval(
                f"SELECT EXISTS (SELECT 1 FROM {WORK_ITEMS_TABLE} "
                f"WHERE state IN ($1, $2) AND {clause})",
                ItemState.PENDING.value,
                ItemState.CLAIMED.value,
                *partition_args,
            )
        )

    async def count_pending(self, partition: Partition) -> int:
        clause, partition_args = partition_clause(partition, start=2)
        count = await self._fetchval(
            f"SELECT count(*) FROM {WORK_ITEMS_TABLE} WHERE state = $1 AND {clause}",
            ItemState.PENDING.value,
            *partition_args,
        )
        return int(count or 0)

    async def contains_any(self, partition: Partition) -> bool:
        clause, partition_args = partition_clause(partition, start=1)
        return bool(
            await self._fetchval(
                f"SELECT EXISTS (SELECT 1 FROM {WORK_ITEMS_TABLE} WHERE {clause})",
                *partition_args,
            )
        )

    async def _execute(self, query: str, *args) -> str:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.execute(query, *args)
        except STORE_EXCEPTIONS as exc:
            raise StoreError(str(exc)) from exc

    async def _fetchval(self, query: str, *args):
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(query, *args)
        except STORE_EXCEPTIONS as exc:
            raise StoreError(str(exc)) from exc
