from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ItemState(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    DONE = "done"


@dataclass(frozen=True)
class UrlDescriptor:
    """A discovered link as handed to the frontier by the link extractor."""

    url: str
    link_raw: Optional[str] = None
    link_text: Optional[str] = None
    link_code: Optional[str] = None
    referring_url: Optional[str] = None
    link_depth: int = 0
    is_redirect: bool = False


@dataclass(frozen=True)
class WorkItemRecord:
    identity: str
    priority_level: int
    link: UrlDescriptor


@dataclass(frozen=True)
class FrontierTask:
    """A claimed unit of work. Report it back with ``report_done(task.identity, ...)``."""

    identity: str
    priority: int
    link: UrlDescriptor

    @property
    def url(self) -> str:
        return self.link.url

    @property
    def depth(self) -> int:
        return self.link.link_depth


@dataclass
class EnqueueReport:
    submitted: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    def merge(self, other: "EnqueueReport") -> None:
        self.submitted += other.submitted
        self.inserted += other.inserted
        self.duplicates += other.duplicates
        self.skipped += other.skipped
        self.failed += other.failed
