"""Logical queues sharing the ``work_items`` table.

A deployment defines its partition dimensions once, as the fields of
:class:`Partition`. Each field maps to a ``VARCHAR(255) NOT NULL DEFAULT ''`` column,
so an unset dimension is the empty string and adding a field later leaves
every existing row in the ``''`` slot of the new dimension.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from typing import Sequence


@dataclass(frozen=True)
class Partition:
    crawl_id: str = ""
    tenant: str = ""

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def values(self) -> tuple[str, ...]:
        return astuple(self)

    def matches(self, values: Sequence[str]) -> bool:
        return tuple(values) == self.values()

    def label(self) -> str:
        if not any(self.values()):
            return "default"
        return ",".join(
            f"{column}={value}"
            for column, value in zip(self.columns(), self.values())
            if value
        )


DEFAULT_PARTITION = Partition()

PARTITION_COLUMNS = Partition.columns()


def partition_clause(partition: Partition, start: int = 1) -> tuple[str, list[str]]:
    """Render the partition predicate with asyncpg placeholders.

    ``start`` is the index of the first ``$n`` placeholder so the clause can be
    appended after the statement's own parameters.
    """
    parts = [
        f"{column} = ${start + offset}"
        for offset, column in enumerate(PARTITION_COLUMNS)
    ]
    return " AND ".join(parts), list(partition.values())
