"""Feed ingestion pipeline: fetch, parse, materialize.

One pipeline serves two entry points. ``SingleAccountScope`` imports a
limited number of items from one URL into one account and lets feed-level
errors reach the caller. ``AllSubscribedScope`` walks every account with a
configured feed, fetches each distinct URL once and fans the items out to
all of its subscribers, recording feed-level failures instead of raising.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from itertools import islice

from .errors import FeedIngestError, NoItemsFoundError
from .fetcher import FeedFetcher
from .logging_config import create_execution_logger
from .materializer import PostMaterializer
from .models import (
    AccountSettings,
    FeedItem,
    FeedSource,
    FeedSyncResult,
    ImportTally,
    SyncResult,
)
from .parser import FeedParser


@dataclass(frozen=True)
class SingleAccountScope:
    account_id: str
    feed_url: str
    limit: int


@dataclass(frozen=True)
class AllSubscribedScope:
    pass


def group_by_feed_url(accounts: list[AccountSettings]) -> list[FeedSource]:
    """Collapse accounts onto distinct feed URLs, keeping first-seen order."""
    grouped: dict[str, list[str]] = {}
    for account in accounts:
        if not account.feed_url:
            continue
        owners = grouped.setdefault(account.feed_url, [])
        if account.account_id not in owners:
            owners.append(account.account_id)
    return [FeedSource(url=url, owner_account_ids=tuple(ids)) for url, ids in grouped.items()]


class FeedIngestionPipeline:
    """Coordinates fetcher, parser, stores and materializer for one run."""

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        post_store,
        account_store,
        materializer: PostMaterializer | None = None,
        clock: Callable[[], datetime] | None = None,
        execution_id: str | None = None,
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.post_store = post_store
        self.account_store = account_store
        self.clock = clock or (lambda: datetime.now(UTC))
        self.materializer = materializer or PostMaterializer(
            post_store, clock=self.clock, execution_id=execution_id
        )
        self.logger = create_execution_logger("pipeline", execution_id)

    def run(self, scope: SingleAccountScope | AllSubscribedScope):
        if isinstance(scope, SingleAccountScope):
            return self.import_feed(scope.account_id, scope.feed_url, scope.limit)
        if isinstance(scope, AllSubscribedScope):
            return self.sync_all()
        raise TypeError(f"Unsupported pipeline scope: {scope!r}")

    def load_items(self, feed_url: str, limit: int | None = None) -> list[FeedItem]:
        """Fetch and parse a feed.

        Raises:
            FetchError, InvalidFeedUrlError, NotAFeedError: From the fetcher
            NoItemsFoundError: If the document holds no items
        """
        text = self.fetcher.fetch(feed_url)
        items = self.parser.parse(text, feed_url=feed_url)
        if limit is not None:
            items = islice(items, limit)
        parsed = list(items)
        if not parsed:
            raise NoItemsFoundError(f"No items found in feed {feed_url}")
        self.logger.log_feed_processing(feed_url, len(parsed))
        return parsed

    def import_feed(self, account_id: str, feed_url: str, limit: int) -> ImportTally:
        """Import up to ``limit`` items of one feed into one account."""
        self.logger.info(
            "Starting on-demand import",
            account_id=account_id,
            feed_url=feed_url,
            item_limit=limit,
        )
        items = self.load_items(feed_url, limit)

        account = self.account_store.get_account(account_id)
        existing_ids = self.post_store.existing_external_ids(account_id)
        source = FeedSource(url=feed_url, owner_account_ids=(account_id,))

        return self.materializer.materialize(account, source, items, existing_ids)

    def sync_all(self) -> SyncResult:
        """Import new items of every subscribed feed for every subscriber."""
        accounts = self.account_store.list_subscribed_accounts()
        accounts_by_id = {account.account_id: account for account in accounts}
        sources = group_by_feed_url(accounts)

        self.logger.info(
            f"Syncing {len(sources)} feeds for {len(accounts_by_id)} accounts",
            feed_count=len(sources),
            account_count=len(accounts_by_id),
        )

        result = SyncResult()
        for source in sources:
            feed_result = self.sync_source(source, accounts_by_id)
            result.feeds.append(feed_result)

        self.logger.info(
            f"Sync complete: {result.synced} new posts",
            synced=result.synced,
            feeds_failed=result.feeds_failed,
            accounts_failed=result.accounts_failed,
        )
        return result

    def sync_source(
        self, source: FeedSource, accounts_by_id: dict[str, AccountSettings]
    ) -> FeedSyncResult:
        feed_result = FeedSyncResult(
            feed_url=source.url, accounts=len(source.owner_account_ids)
        )
        try:
            items = self.load_items(source.url)
        except FeedIngestError as e:
            feed_result.error = str(e)
            self.logger.error(
                f"Skipping feed {source.url}: {e}",
                feed_url=source.url,
                error_type=type(e).__name__,
                error=str(e),
            )
            return feed_result
        except Exception as e:
            feed_result.error = f"Unexpected error: {e}"
            self.logger.exception(
                f"Unexpected error syncing feed {source.url}",
                feed_url=source.url,
                error=str(e),
            )
            return feed_result

        feed_result.items_found = len(items)

        for account_id in source.owner_account_ids:
            account = accounts_by_id[account_id]
            try:
                existing_ids = self.post_store.existing_external_ids(account_id)
                tally = self.materializer.materialize(
                    account, source, items, existing_ids
                )
            except Exception as e:
                feed_result.failed_accounts[account_id] = str(e)
                self.logger.exception(
                    f"Failed to sync feed {source.url} for account {account_id}",
                    feed_url=source.url,
                    account_id=account_id,
                    error=str(e),
                )
                continue

            feed_result.tally.merge(tally)
            self._mark_synced(account_id)

        return feed_result

    def _mark_synced(self, account_id: str) -> None:
        try:
            self.account_store.mark_synced(account_id, self.clock())
        except Exception as e:
            self.logger.warning(
                f"Could not record sync time for account {account_id}: {e}",
                account_id=account_id,
                error=str(e),
            )
