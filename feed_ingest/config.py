"""Configuration management for the feed ingestion pipeline."""

import os
from dataclasses import dataclass

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; FeedIngest/1.0; +https://example.com/bot)"


@dataclass
class FetchConfig:
    """Configuration for downloading feed documents."""

    timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class StorageConfig:
    """DynamoDB tables backing accounts and imported posts."""

    posts_table: str = "feed-ingest-posts"
    accounts_table: str = "feed-ingest-accounts"
    region: str = "us-east-1"


@dataclass
class ImportLimits:
    """Item limits for the on-demand import path."""

    default_item_limit: int = 10
    max_item_limit: int = 100


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class Config:
    """Main configuration manager."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.posts_table = os.getenv("POSTS_TABLE", "feed-ingest-posts")
        self.accounts_table = os.getenv("ACCOUNTS_TABLE", "feed-ingest-accounts")
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.fetch_timeout = _env_int("FETCH_TIMEOUT", 30)
        self.user_agent = os.getenv("FEED_USER_AGENT", DEFAULT_USER_AGENT)
        self.default_item_limit = _env_int("DEFAULT_ITEM_LIMIT", 10)
        self.max_item_limit = _env_int("MAX_ITEM_LIMIT", 100)
        self.metrics_namespace = os.getenv("METRICS_NAMESPACE", "FeedIngest")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        if self.default_item_limit > self.max_item_limit:
            raise ValueError(
                "DEFAULT_ITEM_LIMIT cannot exceed MAX_ITEM_LIMIT "
                f"({self.default_item_limit} > {self.max_item_limit})"
            )

    def get_fetch_config(self) -> FetchConfig:
        return FetchConfig(timeout=self.fetch_timeout, user_agent=self.user_agent)

    def get_storage_config(self) -> StorageConfig:
        return StorageConfig(
            posts_table=self.posts_table,
            accounts_table=self.accounts_table,
            region=self.aws_region,
        )

    def get_import_limits(self) -> ImportLimits:
        return ImportLimits(
            default_item_limit=self.default_item_limit,
            max_item_limit=self.max_item_limit,
        )
