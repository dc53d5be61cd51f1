from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from frontier.partition import PARTITION_COLUMNS
from frontier.records import ItemState


WORK_ITEMS_TABLE = "work_items"

# named after the dimensions it covers so a wider layout gets a fresh index
PARTITION_INDEX_NAME = f"{WORK_ITEMS_TABLE}_identity_{'_'.join(PARTITION_COLUMNS)}_uq"


class Base(DeclarativeBase):
    pass


class WorkItem(Base):
    """
    One row per distinct URL ever queued in a partition.

    Rows are never deleted: ``done`` is terminal and the table doubles as the
    crawl history.
    """

    __tablename__ = WORK_ITEMS_TABLE

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    identity: Mapped[str] = mapped_column(String(32))
    priority_level: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    state: Mapped[str] = mapped_column(
        String(16), default=ItemState.PENDING.value, server_default=ItemState.PENDING.value
    )

    url: Mapped[str] = mapped_column(Text)
    link_raw: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referring_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_depth: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    is_redirect: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")

    # set on completion only
    result_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # partition dimensions, one per field of frontier.partition.Partition
    crawl_id: Mapped[str] = mapped_column(String(255), default="", server_default="")
    tenant: Mapped[str] = mapped_column(String(255), default="", server_default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index(f"{WORK_ITEMS_TABLE}_selection_idx", "crawl_id", "tenant", "state", "priority_level"),
        Index(PARTITION_INDEX_NAME, "identity", *PARTITION_COLUMNS, unique=True),
    )

    def __str__(self):
        return f"{self.url} [{self.state}]"
