"""Exception types raised by the feed ingestion pipeline."""


class FeedIngestError(Exception):
    """Base class for pipeline failures tied to a single feed or item."""


class InvalidFeedUrlError(FeedIngestError):
    """The feed URL is not an http(s) URL with a host."""


class FetchError(FeedIngestError):
    """The feed URL could not be reached or answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotAFeedError(FeedIngestError):
    """The URL served an HTML page instead of an RSS/Atom document."""


class NoItemsFoundError(FeedIngestError):
    """The document was fetched but yielded no items."""


class PersistError(FeedIngestError):
    """A single post could not be written to the store."""


class DuplicatePostError(PersistError):
    """The store already holds a post for this account and external id."""
