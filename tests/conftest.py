import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from frontier.partition import Partition
from frontier.queue_manager import FrontierQueueManager
from frontier.storage.memory_store import MemoryFrontierStore


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Keep developer .env files and shell variables out of every test."""

    for key in list(os.environ.keys()):
        if key.startswith("FRONTIER_"):
            monkeypatch.delenv(key, raising=False)

    for key in [
        "DATABASE_URL",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POSTGRES_DB",
    ]:
        monkeypatch.delenv(key, raising=False)

    # no config file unless a test provides one
    monkeypatch.setenv("FRONTIER_CONFIG_PATH", str(tmp_path / "missing-config.yaml"))
    monkeypatch.chdir(tmp_path)

    yield


@pytest.fixture
def partition():
    return Partition(crawl_id="X")


@pytest.fixture
def store():
    return MemoryFrontierStore()


@pytest.fixture
def queue(store, partition):
    return FrontierQueueManager(store, partition=partition)
