"""Data models for the feed ingestion pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

YOUTUBE_HOST_MARKERS = ("youtube.com", "youtu.be")


class SourcePlatform(StrEnum):
    YOUTUBE = "youtube"
    RSS = "rss"


class PostStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"


class ItemOutcome(StrEnum):
    """Terminal state of one feed item during materialization."""

    IMPORTED = "imported"
    SKIPPED_NO_ID = "skipped_no_id"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    ERROR = "error"


def platform_for_url(url: str) -> SourcePlatform:
    lowered = url.lower()
    if any(marker in lowered for marker in YOUTUBE_HOST_MARKERS):
        return SourcePlatform.YOUTUBE
    return SourcePlatform.RSS


@dataclass(frozen=True)
class FeedSource:
    """One externally hosted feed document and the accounts subscribed to it."""

    url: str
    owner_account_ids: tuple[str, ...] = ()

    @property
    def platform(self) -> SourcePlatform:
        return platform_for_url(self.url)


@dataclass
class FeedItem:
    """Represents a single RSS/Atom feed item."""

    title: str = ""
    link: str = ""
    guid: str = ""
    published_at: datetime | None = None
    summary: str = ""
    body_html: str = ""
    media_url: str | None = None

    @property
    def external_id(self) -> str:
        """Identifier used to recognise the same item across fetches."""
        return self.guid or self.link


@dataclass
class AccountSettings:
    """Per-account feed preferences read from the accounts table."""

    account_id: str
    feed_url: str | None = None
    auto_publish_from_feed: bool = False
    last_feed_sync_at: datetime | None = None


@dataclass
class Post:
    """One imported piece of content owned by one account."""

    owner_account_id: str
    external_id: str
    title: str
    slug: str
    content: str
    excerpt: str
    status: PostStatus
    source_feed_url: str
    source_platform: SourcePlatform
    featured_image_url: str | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None

    def to_item(self) -> dict[str, Any]:
        """Serialize to a DynamoDB item; absent optional values are omitted."""
        item: dict[str, Any] = {
            "owner_account_id": self.owner_account_id,
            "external_id": self.external_id,
            "title": self.title,
            "slug": self.slug,
            "content": self.content,
            "excerpt": self.excerpt,
            "status": str(self.status),
            "source_feed_url": self.source_feed_url,
            "source_platform": str(self.source_platform),
        }
        if self.featured_image_url:
            item["featured_image_url"] = self.featured_image_url
        if self.published_at:
            item["published_at"] = self.published_at.isoformat()
        if self.created_at:
            item["created_at"] = self.created_at.isoformat()
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Post":
        published_at = item.get("published_at")
        created_at = item.get("created_at")
        return cls(
            owner_account_id=item["owner_account_id"],
            external_id=item["external_id"],
            title=item.get("title", ""),
            slug=item.get("slug", ""),
            content=item.get("content", ""),
            excerpt=item.get("excerpt", ""),
            status=PostStatus(item.get("status", PostStatus.DRAFT)),
            source_feed_url=item.get("source_feed_url", ""),
            source_platform=SourcePlatform(
                item.get("source_platform", SourcePlatform.RSS)
            ),
            featured_image_url=item.get("featured_image_url"),
            published_at=datetime.fromisoformat(published_at) if published_at else None,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )


@dataclass
class ImportTally:
    """Counts of item outcomes for one account and one feed."""

    imported: int = 0
    skipped_no_id: int = 0
    skipped_duplicate: int = 0
    failed: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_no_id + self.skipped_duplicate

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.failed

    def record(self, outcome: ItemOutcome) -> None:
        if outcome is ItemOutcome.IMPORTED:
            self.imported += 1
        elif outcome is ItemOutcome.SKIPPED_NO_ID:
            self.skipped_no_id += 1
        elif outcome is ItemOutcome.SKIPPED_DUPLICATE:
            self.skipped_duplicate += 1
        else:
            self.failed += 1

    def merge(self, other: "ImportTally") -> None:
        self.imported += other.imported
        self.skipped_no_id += other.skipped_no_id
        self.skipped_duplicate += other.skipped_duplicate
        self.failed += other.failed

    def to_dict(self) -> dict[str, int]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "total": self.total,
            "failed": self.failed,
        }


@dataclass
class FeedSyncResult:
    """Outcome of syncing one distinct feed URL to its subscribers."""

    feed_url: str
    accounts: int
    items_found: int = 0
    tally: ImportTally = field(default_factory=ImportTally)
    error: str | None = None
    failed_accounts: dict[str, str] = field(default_factory=dict)

    @property
    def synced(self) -> int:
        return self.tally.imported

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "feedUrl": self.feed_url,
            "accounts": self.accounts,
            "itemsFound": self.items_found,
            "synced": self.synced,
        }
        if self.error:
            result["error"] = self.error
        if self.failed_accounts:
            result["failedAccounts"] = sorted(self.failed_accounts)
        return result


@dataclass
class SyncResult:
    """Outcome of a scheduled sync across every subscribed account."""

    feeds: list[FeedSyncResult] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(feed.synced for feed in self.feeds)

    @property
    def feeds_failed(self) -> int:
        return sum(1 for feed in self.feeds if feed.error)

    @property
    def accounts_failed(self) -> int:
        return sum(len(feed.failed_accounts) for feed in self.feeds)

    @property
    def tally(self) -> ImportTally:
        combined = ImportTally()
        for feed in self.feeds:
            combined.merge(feed.tally)
        return combined
