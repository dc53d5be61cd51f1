from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional

from frontier.partition import Partition
from frontier.records import FrontierTask, WorkItemRecord


class IngestSession(ABC):
    """Write side used by batch ingest, bound to one partition.

    ``transaction()`` delimits one commit window; ``insert`` is only valid
    inside it.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        ...

    @abstractmethod
    async def insert(self, record: WorkItemRecord) -> bool:
        """Insert ``record`` as pending unless its identity already exists.

        Returns True when a row was created, False for a duplicate. Raises
        :class:`frontier.errors.StoreError` on store failure.
        """

    @abstractmethod
    async def reset_insert_plan(self) -> None:
        """Drop any cached prepared insert so the next insert re-creates it."""


class FrontierStore(ABC):
    """Persistent table of work items, always scoped by a partition."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    def ingest_session(self, partition: Partition) -> AsyncContextManager[IngestSession]:
        ...

    @abstractmethod
    async def claim_next(self, partition: Partition) -> Optional[FrontierTask]:
        """Atomically move the highest priority pending item to claimed."""

    @abstractmethod
    async def mark_done(self, partition: Partition, identity: str, result_code: Optional[int]) -> bool:
        ...

    @abstractmethod
    async def reset_claimed(self, partition: Partition) -> int:
        ...

    @abstractmethod
    async def has_pending(self, partition: Partition) -> bool:
        """True while any item is pending or claimed."""

    @abstractmethod
    async def count_pending(self, partition: Partition) -> int:
        ...

    @abstractmethod
    async def contains_any(self, partition: Partition) -> bool:
        ...
