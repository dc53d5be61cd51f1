from .work_item_model import PARTITION_INDEX_NAME, WORK_ITEMS_TABLE, Base, WorkItem

__all__ = [
    "Base",
    "PARTITION_INDEX_NAME",
    "WORK_ITEMS_TABLE",
    "WorkItem",
]
