import os
from typing import Any, Dict, List, Optional

import yaml

from pydantic_settings import BaseSettings, SettingsConfigDict

from frontier.partition import Partition
from frontier.utils.db_utils import database_url_from_env
from frontier.utils.env_loader import load_environment


DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "../config/config.yaml")


class FrontierConfig(BaseSettings):
    database_url: str
    store_backend: str = "postgres"
    journal_path: Optional[str] = None

    crawl_id: str = ""
    tenant: str = ""

    batch_size: int = 1000
    pool_min_size: int = 1
    pool_max_size: int = 10
    connect_retries: int = 3
    connect_retry_delay: float = 2.0
    metrics_port: int = 8000

    seed_urls: List[str] = []
    priority_rules: List[Dict[str, Any]] = []

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FRONTIER_", extra="ignore")

    log_level: str = "INFO"
    log_path: Optional[str] = "/data/logs/frontier.log"

    def partition(self) -> Partition:
        return Partition(crawl_id=self.crawl_id, tenant=self.tenant)


def _load_yaml_config() -> Dict[str, Any]:
    config_path = os.getenv("FRONTIER_CONFIG_PATH") or DEFAULT_CONFIG_PATH
    if not os.path.exists(config_path):
        return {}

    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config() -> FrontierConfig:
    """Build the frontier config: environment, then the YAML ``frontier`` section, then defaults."""
    load_environment()
    file_data = _load_yaml_config()
    file_settings: Dict[str, Any] = file_data.get("frontier") or {}

    # FRONTIER_* variables are read by pydantic itself; only pass file values
    # for keys the environment leaves unset
    overrides = {
        key: value
        for key, value in file_settings.items()
        if os.getenv(f"FRONTIER_{key.upper()}") is None
    }

    overrides.setdefault("database_url", database_url_from_env())
    if os.getenv("FRONTIER_DATABASE_URL") or os.getenv("DATABASE_URL"):
        overrides["database_url"] = database_url_from_env()

    return FrontierConfig(**overrides)
