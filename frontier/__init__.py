from frontier.errors import (
    FrontierError,
    StoreError,
    StoreUnavailableError,
    UnsupportedOperationError,
)
from frontier.partition import DEFAULT_PARTITION, Partition
from frontier.priority import PriorityRules
from frontier.queue_manager import FrontierQueueManager
from frontier.records import EnqueueReport, FrontierTask, ItemState, UrlDescriptor

__all__ = [
    "DEFAULT_PARTITION",
    "EnqueueReport",
    "FrontierError",
    "FrontierQueueManager",
    "FrontierTask",
    "ItemState",
    "Partition",
    "PriorityRules",
    "StoreError",
    "StoreUnavailableError",
    "UnsupportedOperationError",
    "UrlDescriptor",
]
