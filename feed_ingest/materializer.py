"""Turns parsed feed items into per-account Post rows."""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from .errors import DuplicatePostError, PersistError
from .logging_config import create_execution_logger
from .models import (
    AccountSettings,
    FeedItem,
    FeedSource,
    ImportTally,
    ItemOutcome,
    Post,
    PostStatus,
)
from .text import SlugAllocator, first_image_src, make_excerpt

UNTITLED = "Untitled"
EXCERPT_LENGTH = 200


class PostMaterializer:
    """Persists new feed items as Posts for one account at a time."""

    def __init__(
        self,
        post_store,
        slug_allocator: SlugAllocator | None = None,
        clock: Callable[[], datetime] | None = None,
        execution_id: str | None = None,
    ):
        """Initialize the materializer.

        Args:
            post_store: Store exposing ``insert(post)``
            slug_allocator: Source of unique slug suffixes
            clock: Returns the current UTC time
            execution_id: Execution ID for logging context
        """
        self.post_store = post_store
        self.slug_allocator = slug_allocator or SlugAllocator()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = create_execution_logger("materializer", execution_id)

    def materialize(
        self,
        account: AccountSettings,
        source: FeedSource,
        items: Iterable[FeedItem],
        existing_ids: set[str],
    ) -> ImportTally:
        """Import every new item for ``account``.

        ``existing_ids`` holds the external ids the account already owns; it
        is updated in place as items are imported.
        """
        tally = ImportTally()
        for item in items:
            outcome = self.materialize_item(account, source, item, existing_ids)
            tally.record(outcome)

        self.logger.info(
            f"Materialized feed for account {account.account_id}",
            account_id=account.account_id,
            feed_url=source.url,
            **tally.to_dict(),
        )
        return tally

    def materialize_item(
        self,
        account: AccountSettings,
        source: FeedSource,
        item: FeedItem,
        existing_ids: set[str],
    ) -> ItemOutcome:
        external_id = item.external_id
        if not external_id:
            self.logger.log_item_processing(
                item.title or UNTITLED,
                ItemOutcome.SKIPPED_NO_ID,
                account_id=account.account_id,
            )
            return ItemOutcome.SKIPPED_NO_ID

        if external_id in existing_ids:
            self.logger.log_item_processing(
                item.title or UNTITLED,
                ItemOutcome.SKIPPED_DUPLICATE,
                account_id=account.account_id,
                external_id=external_id,
            )
            return ItemOutcome.SKIPPED_DUPLICATE

        post = self.build_post(account, source, item)

        try:
            self.post_store.insert(post)
        except DuplicatePostError:
            existing_ids.add(external_id)
            self.logger.log_item_processing(
                post.title,
                ItemOutcome.SKIPPED_DUPLICATE,
                account_id=account.account_id,
                external_id=external_id,
            )
            return ItemOutcome.SKIPPED_DUPLICATE
        except PersistError as e:
            self.logger.log_item_processing(
                post.title,
                ItemOutcome.ERROR,
                success=False,
                account_id=account.account_id,
                external_id=external_id,
                error=str(e),
            )
            return ItemOutcome.ERROR
        except Exception as e:
            self.logger.log_item_processing(
                post.title,
                ItemOutcome.ERROR,
                success=False,
                account_id=account.account_id,
                external_id=external_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ItemOutcome.ERROR

        existing_ids.add(external_id)
        self.logger.log_item_processing(
            post.title,
            ItemOutcome.IMPORTED,
            account_id=account.account_id,
            external_id=external_id,
            status=str(post.status),
        )
        return ItemOutcome.IMPORTED

    def build_post(
        self, account: AccountSettings, source: FeedSource, item: FeedItem
    ) -> Post:
        """Derive the Post fields for one item and account."""
        title = item.title or UNTITLED
        body = item.body_html or item.summary
        now = self.clock()

        if account.auto_publish_from_feed:
            status = PostStatus.PUBLISHED
            published_at = item.published_at or now
        else:
            status = PostStatus.DRAFT
            published_at = None

        return Post(
            owner_account_id=account.account_id,
            external_id=item.external_id,
            title=title,
            slug=self.slug_allocator.allocate(title),
            content=body,
            excerpt=make_excerpt(body, EXCERPT_LENGTH),
            status=status,
            source_feed_url=source.url,
            source_platform=source.platform,
            featured_image_url=item.media_url or first_image_src(body),
            published_at=published_at,
            created_at=now,
        )
