"""In-process frontier store.

Rows live in an insertion-ordered dict guarded by an ``asyncio.Lock``. When a
``journal_path`` is given every mutation is appended to a JSON-lines file and
replayed on ``connect``, so a new store opened over the same journal sees
what a restarted process would see in PostgreSQL, stale claims included.

Coordination happens through the lock, so all workers have to share one
event loop. Use :class:`PostgresFrontierStore` across processes.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from loguru import logger

from frontier.errors import StoreError, StoreUnavailableError
from frontier.partition import Partition
from frontier.records import FrontierTask, ItemState, UrlDescriptor, WorkItemRecord
from frontier.storage.base import FrontierStore, IngestSession


RowKey = tuple[tuple[str, ...], str]


@dataclass
class _Row:
    identity: str
    priority_level: int
    link: UrlDescriptor
    state: ItemState = ItemState.PENDING
    result_code: Optional[int] = None


class MemoryIngestSession(IngestSession):
    """Buffers one commit window and applies it atomically on exit."""

    def __init__(self, store: "MemoryFrontierStore", partition: Partition) -> None:
        self.store = store
        self.partition = partition
        self._window: Optional[dict[str, WorkItemRecord]] = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        self._window = {}
        try:
            yield
            await self.store._commit(self.partition, list(self._window.values()))
        finally:
            self._window = None

    async def insert(self, record: WorkItemRecord) -> bool:
        if self._window is None:
            raise StoreError("insert() called outside of a transaction")
        if record.identity in self._window or self.store._exists(self.partition, record.identity):
            return False
        self._window[record.identity] = record
        return True

    async def reset_insert_plan(self) -> None:
        # nothing is prepared in memory
        return None


class MemoryFrontierStore(FrontierStore):
    def __init__(self, journal_path: Union[str, Path, None] = None) -> None:
        self.journal_path = Path(journal_path) if journal_path else None
        self._rows: dict[RowKey, _Row] = {}
        self._lock = asyncio.Lock()
        self._journal = None

    # -------------------------------------------------------
    # Connection / journal
    # -------------------------------------------------------

    async def connect(self) -> None:
        if self._journal is not None or self.journal_path is None:
            return
        try:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)
            if self.journal_path.exists():
                self._replay()
            self._journal = self.journal_path.open("a", encoding="utf-8")
        except (OSError, ValueError, KeyError) as exc:
            raise StoreUnavailableError(f"Cannot open frontier journal {self.journal_path}: {exc}") from exc
        logger.info(f"Opened frontier journal {self.journal_path} ({len(self._rows)} items)")

    async def close(self) -> None:
        if self._journal is not None:
            self._journal.close()
            self._journal = None

    def _replay(self) -> None:
        data = self.journal_path.read_bytes()
        lines = data.splitlines(keepends=True)

        offset = 0
        for index, raw in enumerate(lines):
            if raw.strip():
                try:
                    entry = json.loads(raw)
                except ValueError:
                    # only the record being appended at crash time may be incomplete
                    if index < len(lines) - 1:
                        raise
                    logger.warning(
                        f"Dropping torn final record ({len(raw)} bytes) of frontier journal "
                        f"{self.journal_path}"
                    )
                    with self.journal_path.open("r+b") as fh:
                        fh.truncate(offset)
                    return
                self._apply(entry)
            offset += len(raw)

        if data and not data.endswith(b"\n"):
            with self.journal_path.open("ab") as fh:
                fh.write(b"\n")

    def _apply(self, entry: dict) -> None:
        key: RowKey = (tuple(entry["partition"]), entry["identity"])
        op = entry["op"]
        if op == "insert":
            self._rows[key] = _Row(
                identity=entry["identity"],
                priority_level=entry["priority_level"],
                link=UrlDescriptor(**entry["link"]),
            )
        elif op == "claim":
            self._rows[key].state = ItemState.CLAIMED
        elif op == "done":
            self._rows[key].state = ItemState.DONE
            self._rows[key].result_code = entry["result_code"]
        elif op == "reset":
            self._rows[key].state = ItemState.PENDING
        else:
            raise ValueError(f"Unknown journal operation {op!r}")

    def _log(self, op: str, key: RowKey, **extra) -> None:
        if self._journal is None:
            return
        entry = {"op": op, "partition": list(key[0]), "identity": key[1], **extra}
        try:
            self._journal.write(json.dumps(entry) + "\n")
            self._journal.flush()
        except OSError as exc:
            raise StoreError(f"Journal write failed: {exc}") from exc

    # -------------------------------------------------------
    # Ingest
    # -------------------------------------------------------

    def _exists(self, partition: Partition, identity: str) -> bool:
        return (partition.values(), identity) in self._rows

    async def _commit(self, partition: Partition, records: list[WorkItemRecord]) -> None:
        async with self._lock:
            for record in records:
                key = (partition.values(), record.identity)
                if key in self._rows:
                    continue
                self._log(
                    "insert",
                    key,
                    priority_level=record.priority_level,
                    link=asdict(record.link),
                )
                self._rows[key] = _Row(
                    identity=record.identity,
                    priority_level=record.priority_level,
                    link=record.link,
                )

    @asynccontextmanager
    async def ingest_session(self, partition: Partition) -> AsyncIterator[MemoryIngestSession]:
        yield MemoryIngestSession(self, partition)

    # -------------------------------------------------------
    # Claim
    # -------------------------------------------------------

    def _partition_rows(self, partition: Partition):
        return ((key, row) for key, row in self._rows.items() if partition.matches(key[0]))

    async def claim_next(self, partition: Partition) -> Optional[FrontierTask]:
        async with self._lock:
            pending = [
                (key, row)
                for key, row in self._partition_rows(partition)
                if row.state is ItemState.PENDING
            ]
            if not pending:
                return None

            max_level = max(row.priority_level for _, row in pending)
            key, row = next((k, r) for k, r in pending if r.priority_level == max_level)

            self._log("claim", key)
            row.state = ItemState.CLAIMED
            return FrontierTask(identity=row.identity, priority=row.priority_level, link=row.link)

    # -------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------

    async def mark_done(self, partition: Partition, identity: str, result_code: Optional[int]) -> bool:
        key = (partition.values(), identity)
        async with self._lock:
            row = self._rows.get(key)
            if row is None or row.state is ItemState.DONE:
                return False
            self._log("done", key, result_code=result_code)
            row.state = ItemState.DONE
            row.result_code = result_code
            return True

    async def reset_claimed(self, partition: Partition) -> int:
        async with self._lock:
            claimed = [
                key for key, row in self._partition_rows(partition)
                if row.state is ItemState.CLAIMED
            ]
            for key in claimed:
                self._log("reset", key)
                self._rows[key].state = ItemState.PENDING
            return len(claimed)

    async def has_pending(self, partition: Partition) -> bool:
        return any(
            row.state is not ItemState.DONE for _, row in self._partition_rows(partition)
        )

    async def count_pending(self, partition: Partition) -> int:
        return sum(
            1 for _, row in self._partition_rows(partition) if row.state is ItemState.PENDING
        )

    async def contains_any(self, partition: Partition) -> bool:
        return any(True for _ in self._partition_rows(partition))

    def result_code(self, partition: Partition, identity: str) -> Optional[int]:
        row = self._rows.get((partition.values(), identity))
        return row.result_code if row else None

    def state_of(self, partition: Partition, identity: str) -> Optional[ItemState]:
        row = self._rows.get((partition.values(), identity))
        return row.state if row else None
